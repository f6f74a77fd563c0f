"""
OrderMilestone and MilestoneApproval models.

OrderMilestone is one row per (order, milestone type): created on the
tailor's first photo upload, updatable while PENDING, and resolved
exactly once per lifecycle by the customer or the auto-approval sweep.

Concurrency:
    ConcurrentTransitionMixin turns every save() after a transition into
    a conditional UPDATE ... WHERE approval_status = <status at fetch>.
    When a customer approval and the sweep race, the loser's save()
    raises ConcurrentTransition and its transaction rolls back.

Usage:
    from orders.models import OrderMilestone

    with transaction.atomic():
        milestone = OrderMilestone.objects.get(pk=milestone_id)
        milestone.approve(actor=customer)
        milestone.save()
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

from django_fsm import ConcurrentTransitionMixin, FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from orders.state_machines import (
    MilestoneAction,
    MilestoneApprovalStatus,
    MilestoneType,
)


class OrderMilestone(ConcurrentTransitionMixin, UUIDPrimaryKeyMixin, BaseModel):
    """
    A tailor-reported production checkpoint awaiting customer review.

    State Flow:
        PENDING -> APPROVED | REJECTED | AUTO_APPROVED

    A REJECTED milestone may be resubmitted; resubmission starts a new
    lifecycle (lifecycle + 1) rather than reopening the old one, and the
    previous lifecycle stays in the MilestoneApproval audit trail.

    Fields:
        order: Order the milestone belongs to
        milestone: Milestone type (unique per order)
        photo_urls: 1-5 progress photo URLs
        approval_status: Current FSM state
        auto_approval_deadline: submitted_at + review window
        customer_reviewed_at: When the milestone was resolved
        rejection_reason: Set only when REJECTED
        lifecycle: Submission generation, bumped on resubmission
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="milestones",
    )

    milestone = models.CharField(
        max_length=32,
        choices=MilestoneType.choices,
        help_text="Production checkpoint type",
    )

    # ==========================================================================
    # Submission
    # ==========================================================================

    photo_urls = models.JSONField(
        default=list,
        help_text="Progress photo URLs (1-5)",
    )

    notes = models.TextField(blank=True, default="")

    submitted_at = models.DateTimeField(default=timezone.now)

    submitted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    lifecycle = models.PositiveIntegerField(default=1)

    # ==========================================================================
    # Approval
    # ==========================================================================

    approval_status = FSMField(
        default=MilestoneApprovalStatus.PENDING,
        choices=MilestoneApprovalStatus.choices,
        db_index=True,
        help_text="Approval state (managed by FSM)",
    )

    auto_approval_deadline = models.DateTimeField(
        db_index=True,
        help_text="When the sweep may auto-approve this milestone",
    )

    customer_reviewed_at = models.DateTimeField(null=True, blank=True)

    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="Null for system (auto) approvals",
    )

    rejection_reason = models.TextField(null=True, blank=True)

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["auto_approval_deadline"]
        verbose_name = "Order Milestone"
        verbose_name_plural = "Order Milestones"
        constraints = [
            models.UniqueConstraint(
                fields=["order", "milestone"],
                name="unique_milestone_per_order",
            ),
        ]
        indexes = [
            models.Index(
                fields=["approval_status", "auto_approval_deadline"],
                name="milestone_status_deadline_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"OrderMilestone({self.order_id}, {self.milestone}, {self.approval_status})"

    @property
    def is_pending(self) -> bool:
        return self.approval_status == MilestoneApprovalStatus.PENDING

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=approval_status,
        source=MilestoneApprovalStatus.PENDING,
        target=MilestoneApprovalStatus.APPROVED,
    )
    def approve(self, actor=None):
        self.customer_reviewed_at = timezone.now()
        self.reviewed_by = actor

    @transition(
        field=approval_status,
        source=MilestoneApprovalStatus.PENDING,
        target=MilestoneApprovalStatus.REJECTED,
    )
    def reject(self, reason: str, actor=None):
        self.customer_reviewed_at = timezone.now()
        self.reviewed_by = actor
        self.rejection_reason = reason

    @transition(
        field=approval_status,
        source=MilestoneApprovalStatus.PENDING,
        target=MilestoneApprovalStatus.AUTO_APPROVED,
    )
    def auto_approve(self):
        self.customer_reviewed_at = timezone.now()
        self.reviewed_by = None

    @transition(
        field=approval_status,
        source=MilestoneApprovalStatus.REJECTED,
        target=MilestoneApprovalStatus.PENDING,
    )
    def resubmit(self, photo_urls: list[str], notes: str, deadline):
        """Start a new review lifecycle after a rejection."""
        self.photo_urls = photo_urls
        self.notes = notes
        self.submitted_at = timezone.now()
        self.auto_approval_deadline = deadline
        self.customer_reviewed_at = None
        self.reviewed_by = None
        self.rejection_reason = None
        self.lifecycle += 1


class MilestoneApproval(UUIDPrimaryKeyMixin, BaseModel):
    """
    Append-only audit record of one milestone resolution.

    Fields:
        milestone: Resolved milestone
        order: Denormalised for per-order audit queries
        action: APPROVED, REJECTED or AUTO_APPROVED
        actor: Reviewer (null for system auto-approval)
        comment: Reviewer comment or rejection reason
        lifecycle: Milestone lifecycle the resolution belongs to
    """

    milestone = models.ForeignKey(
        OrderMilestone,
        on_delete=models.CASCADE,
        related_name="approvals",
    )

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="milestone_approvals",
    )

    action = models.CharField(max_length=20, choices=MilestoneAction.choices)

    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    comment = models.CharField(max_length=500, blank=True, default="")

    lifecycle = models.PositiveIntegerField(default=1)

    reviewed_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-reviewed_at"]
        verbose_name = "Milestone Approval"
        verbose_name_plural = "Milestone Approvals"
        constraints = [
            models.UniqueConstraint(
                fields=["milestone", "lifecycle"],
                name="one_resolution_per_milestone_lifecycle",
            ),
        ]

    def __str__(self) -> str:
        return f"MilestoneApproval({self.milestone_id}, {self.action})"
