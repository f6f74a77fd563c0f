"""
Payment and escrow exceptions.

Exception Hierarchy:
    ValidationError (400)
    ├── InvalidAmountError - Negative or non-numeric amount
    └── InvalidRateError - Rate outside [0, 1]

    NotFoundError (404)
    └── EscrowNotFoundError - Order has no escrow account

    ConflictError (409)
    ├── StageMismatchError - Escrow is not in the expected from-stage
    ├── InsufficientBalanceError - Release exceeds the held balance
    ├── EscrowFrozenError - Order is disputed, releases are blocked
    ├── InvalidStageTransitionError - Not a forward escrow arrow
    └── EscrowAlreadyInitializedError - Buckets are immutable once split

    PermissionDeniedError (403)
    └── WebhookSourceNotAllowedError - Callback from a non allow-listed IP

    ExternalServiceError (502)
    └── PaymentGatewayError - Provider unreachable or rejected the request

    WebhookSignatureError (401) - Missing or wrong callback signature

Usage:
    from payments.exceptions import StageMismatchError

    if updated == 0:
        raise StageMismatchError(
            f"Escrow for order {order_id} is not in {from_stage}",
            details={"expected_stage": from_stage, "current_stage": account.stage},
        )

Note:
    StageMismatchError and InsufficientBalanceError are the expected
    outcome for the loser of a concurrent advance. Callers that can
    tell the race was legitimate treat them as a no-op.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Commission
# =============================================================================


class InvalidAmountError(ValidationError):
    default_error_code: str = "INVALID_AMOUNT"


class InvalidRateError(ValidationError):
    default_error_code: str = "INVALID_RATE"


# =============================================================================
# Escrow
# =============================================================================


class EscrowNotFoundError(NotFoundError):
    default_error_code: str = "ESCROW_NOT_FOUND"


class StageMismatchError(ConflictError):
    """
    Raised when the escrow account is not in the caller's from-stage.

    This is how the second of two concurrent advance() calls fails: the
    conditional update keyed on the from-stage matches no rows.
    """

    default_error_code: str = "STAGE_MISMATCH"


class InsufficientBalanceError(ConflictError):
    default_error_code: str = "INSUFFICIENT_BALANCE"


class EscrowFrozenError(ConflictError):
    """Raised when a release is attempted while the order is disputed."""

    default_error_code: str = "ESCROW_FROZEN"


class InvalidStageTransitionError(ConflictError):
    default_error_code: str = "INVALID_STAGE_TRANSITION"


class EscrowAlreadyInitializedError(ConflictError):
    default_error_code: str = "ESCROW_ALREADY_INITIALIZED"


# =============================================================================
# Payment Gateway
# =============================================================================


class PaymentGatewayError(ExternalServiceError):
    """
    Raised when the payment provider call fails.

    is_retryable distinguishes transient failures (timeouts, 5xx) from
    permanent ones (rejected request) for the retrying task.
    """

    default_error_code: str = "PAYMENT_GATEWAY_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
        is_retryable: bool = False,
    ):
        super().__init__(message, error_code=error_code, details=details)
        self.is_retryable = is_retryable


# =============================================================================
# Webhook Verification
# =============================================================================


class WebhookSignatureError(BaseApplicationError):
    """Missing or invalid HMAC signature on a provider callback."""

    default_error_code: str = "INVALID_WEBHOOK_SIGNATURE"
    http_status: int = 401


class WebhookSourceNotAllowedError(PermissionDeniedError):
    """Callback source IP is not allow-listed, or no check is configured."""

    default_error_code: str = "WEBHOOK_SOURCE_NOT_ALLOWED"
