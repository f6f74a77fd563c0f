"""
Service layer primitives.

This module provides:
- ServiceResult: Result wrapper for calls whose failure is expected and
  must not raise (payment initiation, notification dispatch)
- BaseService: Base class with logging and transaction helpers

Authoritative state changes (escrow stage, milestone status) raise
core.exceptions errors instead of returning a failed ServiceResult, so
they propagate to the caller as the result of the request.

Usage:
    from core.services import BaseService, ServiceResult

    class HubtelPaymentAdapter(BaseService):
        def initiate_payment(self, request) -> ServiceResult[PaymentInitiation]:
            try:
                ...
            except requests.RequestException as e:
                return ServiceResult.from_exception(e, "GATEWAY_UNREACHABLE")
            return ServiceResult.success(initiation)

    result = adapter.initiate_payment(request)
    if not result:
        logger.warning("Payment initiation failed: %s", result.error)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Generator
    from typing import Any

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Standard result wrapper for service operations.

    Attributes:
        success: Whether the operation succeeded
        data: Result data if successful (None if failed)
        error: Error message if failed (None if successful)
        error_code: Machine-readable error code for client handling
        errors: Field-level errors for validation failures
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = field(default=None)

    @classmethod
    def ok(cls, data: T) -> ServiceResult[T]:
        """Alias for success()."""
        return cls(success=True, data=data)

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
    ) -> ServiceResult[T]:
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            errors=errors,
        )

    @classmethod
    def from_exception(
        cls, exc: Exception, error_code: str | None = None
    ) -> ServiceResult[T]:
        """
        Create a failed result from an exception.

        The error code defaults to the exception's own error_code when it
        is a BaseApplicationError, else to the upper-cased class name.
        """
        code = error_code or getattr(exc, "error_code", None)
        return cls(
            success=False,
            error=str(exc),
            error_code=code or exc.__class__.__name__.upper(),
        )

    def to_response(self) -> dict[str, Any]:
        """Convert to API response format."""
        if self.success:
            return {"success": True, "data": self.data}

        response: dict[str, Any] = {
            "success": False,
            "error": self.error,
        }
        if self.error_code:
            response["error_code"] = self.error_code
        if self.errors:
            response["errors"] = self.errors
        return response

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Base class for service layer classes.

    Settlement services are instantiated with their collaborators
    injected (see OrderStatusOrchestrator), so unlike purely static
    services they may hold references, but never per-request state.
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Logger named after the service class for easy filtering."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Execute operations in a database transaction.

        Thin wrapper around transaction.atomic() that makes transaction
        boundaries explicit in service code.
        """
        with transaction.atomic():
            yield
