"""
Base exception classes for application-wide error handling.

Every domain error raised by the settlement engine derives from
BaseApplicationError so views can translate it into a consistent
JSON body and HTTP status without knowing the concrete class.

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Malformed input, bad enum values (400)
    ├── NotFoundError - Order, milestone or escrow account missing (404)
    ├── PermissionDeniedError - Wrong actor for an approval (403)
    ├── ConflictError - Races and illegal state transitions (409)
    └── ExternalServiceError - Payment gateway / notification failures (502)

Usage:
    from core.exceptions import ConflictError, NotFoundError

    raise NotFoundError(
        f"Order {order_id} not found",
        error_code="ORDER_NOT_FOUND",
        details={"order_id": str(order_id)},
    )

    try:
        ...
    except BaseApplicationError as e:
        return Response(e.to_dict(), status=http_status_for(e))

Note:
    Conflict errors are expected under concurrency. Callers that lose a
    legitimate race should treat them as a no-op signal.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (ids, amounts, stages)
    """

    default_error_code: str = "APPLICATION_ERROR"
    http_status: int = 400

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API response.

        Example:
            {
                "error": "Milestone already resolved",
                "error_code": "ALREADY_RESOLVED",
                "details": {"milestone_id": "..."}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input validation fails in the service layer.

    DRF serializers cover request-shape validation; this covers business
    rules such as a rejection without a reason or a negative amount.
    """

    default_error_code: str = "VALIDATION_ERROR"
    http_status: int = 400


class NotFoundError(BaseApplicationError):
    """Raised when a requested resource is not found."""

    default_error_code: str = "NOT_FOUND"
    http_status: int = 404


class PermissionDeniedError(BaseApplicationError):
    """
    Raised when an authenticated user may not perform an operation.

    Example:
        raise PermissionDeniedError(
            "Only the customer can reject a milestone",
            error_code="REJECTION_CUSTOMER_ONLY",
        )
    """

    default_error_code: str = "PERMISSION_DENIED"
    http_status: int = 403


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with current resource state.

    Use for:
    - Concurrent modification (a conditional update matched no rows)
    - Invalid state transitions
    - Duplicate resources
    """

    default_error_code: str = "CONFLICT"
    http_status: int = 409


class ExternalServiceError(BaseApplicationError):
    """
    Raised when an external service call fails.

    Log the original error for debugging but don't expose internal
    details to clients in production.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
    http_status: int = 502
