"""
State enums for order and milestone models.

These are Django TextChoices for database storage and admin integration.
Mutation of the stored values happens only through the django-fsm
transitions declared on the models.

State Machines Overview:

Order Status (production workflow):
    SUBMITTED → DEPOSIT_PAID → ACCEPTED → MEASUREMENT_CONFIRMED
        → FABRIC_SOURCED → CUTTING_STARTED → SEWING_IN_PROGRESS
        → FITTING_SCHEDULED → FITTING_COMPLETED
        → [ADJUSTMENTS_IN_PROGRESS] → FINAL_INSPECTION
        → READY_FOR_DELIVERY → DELIVERED → COMPLETED
    SUBMITTED/DEPOSIT_PAID/DISPUTED → CANCELLED
    ACCEPTED/SEWING_IN_PROGRESS/FITTING_SCHEDULED/READY_FOR_DELIVERY → DISPUTED
    DISPUTED → SEWING_IN_PROGRESS (resolution)

Milestone Approval:
    PENDING → APPROVED | REJECTED | AUTO_APPROVED (all terminal)
"""

from django.db import models


class OrderStatus(models.TextChoices):
    """
    Coarse-grained order workflow status.

    Terminal states: COMPLETED, CANCELLED
    """

    SUBMITTED = "SUBMITTED", "Submitted"
    DEPOSIT_PAID = "DEPOSIT_PAID", "Deposit Paid"
    ACCEPTED = "ACCEPTED", "Accepted"
    MEASUREMENT_CONFIRMED = "MEASUREMENT_CONFIRMED", "Measurement Confirmed"
    FABRIC_SOURCED = "FABRIC_SOURCED", "Fabric Sourced"
    CUTTING_STARTED = "CUTTING_STARTED", "Cutting Started"
    SEWING_IN_PROGRESS = "SEWING_IN_PROGRESS", "Sewing In Progress"
    FITTING_SCHEDULED = "FITTING_SCHEDULED", "Fitting Scheduled"
    FITTING_COMPLETED = "FITTING_COMPLETED", "Fitting Completed"
    ADJUSTMENTS_IN_PROGRESS = "ADJUSTMENTS_IN_PROGRESS", "Adjustments In Progress"
    FINAL_INSPECTION = "FINAL_INSPECTION", "Final Inspection"
    READY_FOR_DELIVERY = "READY_FOR_DELIVERY", "Ready For Delivery"
    DELIVERED = "DELIVERED", "Delivered"
    COMPLETED = "COMPLETED", "Completed"
    CANCELLED = "CANCELLED", "Cancelled"
    DISPUTED = "DISPUTED", "Disputed"


# Statuses in which a tailor may upload milestone photos
MILESTONE_SUBMISSION_STATUSES = (
    OrderStatus.DEPOSIT_PAID,
    OrderStatus.ACCEPTED,
    OrderStatus.MEASUREMENT_CONFIRMED,
    OrderStatus.FABRIC_SOURCED,
    OrderStatus.CUTTING_STARTED,
    OrderStatus.SEWING_IN_PROGRESS,
    OrderStatus.FITTING_SCHEDULED,
    OrderStatus.FITTING_COMPLETED,
    OrderStatus.ADJUSTMENTS_IN_PROGRESS,
    OrderStatus.FINAL_INSPECTION,
)

# Statuses from which final milestone approval completes the order
COMPLETABLE_STATUSES = (
    *MILESTONE_SUBMISSION_STATUSES,
    OrderStatus.READY_FOR_DELIVERY,
    OrderStatus.DELIVERED,
)

# Statuses in which a confirmed deposit is released to the tailor
DEPOSIT_RELEASE_STATUSES = COMPLETABLE_STATUSES

DISPUTABLE_STATUSES = (
    OrderStatus.ACCEPTED,
    OrderStatus.SEWING_IN_PROGRESS,
    OrderStatus.FITTING_SCHEDULED,
    OrderStatus.READY_FOR_DELIVERY,
)


class MilestoneType(models.TextChoices):
    """
    Ordered production checkpoints reported by the tailor.

    Declaration order is production order; see MilestoneType.ordinal().
    """

    FABRIC_SELECTED = "FABRIC_SELECTED", "Fabric Selected"
    CUTTING_STARTED = "CUTTING_STARTED", "Cutting Started"
    INITIAL_ASSEMBLY = "INITIAL_ASSEMBLY", "Initial Assembly"
    FITTING_READY = "FITTING_READY", "Fitting Ready"
    ADJUSTMENTS_COMPLETE = "ADJUSTMENTS_COMPLETE", "Adjustments Complete"
    FINAL_PRESSING = "FINAL_PRESSING", "Final Pressing"
    READY_FOR_DELIVERY = "READY_FOR_DELIVERY", "Ready For Delivery"

    @classmethod
    def ordinal(cls, value: str) -> int:
        return cls.values.index(value)


class MilestoneApprovalStatus(models.TextChoices):
    """
    Approval lifecycle of one milestone submission.

    Terminal states: APPROVED, REJECTED, AUTO_APPROVED
    """

    PENDING = "PENDING", "Pending"
    APPROVED = "APPROVED", "Approved"
    REJECTED = "REJECTED", "Rejected"
    AUTO_APPROVED = "AUTO_APPROVED", "Auto Approved"


class MilestoneAction(models.TextChoices):
    """Resolution actions accepted by MilestoneApprovalService.resolve()."""

    APPROVED = "APPROVED", "Approved"
    REJECTED = "REJECTED", "Rejected"
    AUTO_APPROVED = "AUTO_APPROVED", "Auto Approved"


APPROVING_ACTIONS = (MilestoneAction.APPROVED, MilestoneAction.AUTO_APPROVED)
