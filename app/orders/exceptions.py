"""
Order and milestone exceptions.

Exception Hierarchy:
    ValidationError (400)
    ├── InvalidMilestoneSubmissionError - Photo count, unknown type
    ├── InvalidMilestoneActionError - Unknown resolution action
    └── RejectionReasonRequiredError - REJECTED without a comment

    NotFoundError (404)
    ├── OrderNotFoundError
    └── MilestoneNotFoundError

    PermissionDeniedError (403)
    └── MilestoneAuthorizationError - Actor may not resolve this milestone

    ConflictError (409)
    ├── AlreadyResolvedError - Milestone is no longer PENDING
    └── InvalidOrderStateError - Order status forbids the operation

Usage:
    from orders.exceptions import AlreadyResolvedError

    try:
        service.resolve(milestone_id, MilestoneAction.AUTO_APPROVED, None)
    except AlreadyResolvedError:
        # Customer approved first; nothing to do
        pass
"""

from __future__ import annotations

from core.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)


class InvalidMilestoneSubmissionError(ValidationError):
    default_error_code: str = "INVALID_MILESTONE_SUBMISSION"


class InvalidMilestoneActionError(ValidationError):
    default_error_code: str = "INVALID_MILESTONE_ACTION"


class RejectionReasonRequiredError(ValidationError):
    default_error_code: str = "REJECTION_REASON_REQUIRED"


class OrderNotFoundError(NotFoundError):
    default_error_code: str = "ORDER_NOT_FOUND"


class MilestoneNotFoundError(NotFoundError):
    default_error_code: str = "MILESTONE_NOT_FOUND"


class MilestoneAuthorizationError(PermissionDeniedError):
    default_error_code: str = "MILESTONE_NOT_AUTHORIZED"


class AlreadyResolvedError(ConflictError):
    """
    Raised when resolve() finds the milestone no longer PENDING.

    This is the idempotency boundary of milestone resolution: the
    loser of an approve/auto-approve race receives it and must treat
    it as a benign no-op.
    """

    default_error_code: str = "ALREADY_RESOLVED"


class InvalidOrderStateError(ConflictError):
    default_error_code: str = "INVALID_ORDER_STATE"
