"""
State machine enums for order and milestone models.
"""

from orders.state_machines.states import (
    APPROVING_ACTIONS,
    COMPLETABLE_STATUSES,
    DEPOSIT_RELEASE_STATUSES,
    DISPUTABLE_STATUSES,
    MILESTONE_SUBMISSION_STATUSES,
    MilestoneAction,
    MilestoneApprovalStatus,
    MilestoneType,
    OrderStatus,
)

__all__ = [
    "APPROVING_ACTIONS",
    "COMPLETABLE_STATUSES",
    "DEPOSIT_RELEASE_STATUSES",
    "DISPUTABLE_STATUSES",
    "MILESTONE_SUBMISSION_STATUSES",
    "MilestoneAction",
    "MilestoneApprovalStatus",
    "MilestoneType",
    "OrderStatus",
]
