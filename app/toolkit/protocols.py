"""
Protocol definitions for the settlement engine's external collaborators.

The orchestrator depends on these interfaces rather than on concrete
gateway or notification classes, so both can be swapped or mocked.

Available Protocols:
    NotificationSender: Fire-and-forget notification dispatch
    PaymentInitiator: Request a stage payment from a customer

Usage:
    from toolkit.protocols import NotificationSender, PaymentInitiator

    class OrderStatusOrchestrator:
        def __init__(self, payments: PaymentInitiator, notifier: NotificationSender):
            ...

    class FakeNotifier:
        def send(self, recipient_id, notification_type, title, message,
                 data=None, priority="normal") -> bool:
            return True

    assert isinstance(FakeNotifier(), NotificationSender)

Note:
    @runtime_checkable allows isinstance() checks in tests.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from typing import Any

    from core.services import ServiceResult


@runtime_checkable
class NotificationSender(Protocol):
    """
    Protocol for notification dispatch.

    Implementations must not raise on delivery failure; they return
    False (or log) so callers never roll back on a failed send.
    """

    def send(
        self,
        recipient_id: Any,
        notification_type: str,
        title: str,
        message: str,
        data: dict[str, Any] | None = None,
        priority: str = "normal",
    ) -> bool:
        """
        Queue a notification for a user.

        Args:
            recipient_id: User the notification is for
            notification_type: Machine-readable type (e.g. MILESTONE_APPROVED)
            title: Short title
            message: Body text
            data: Structured payload (order id, milestone id, amounts)
            priority: "low", "normal" or "high"

        Returns:
            True if the notification was queued
        """
        ...


@runtime_checkable
class PaymentInitiator(Protocol):
    """Protocol for requesting a stage payment from a customer."""

    def initiate_payment(
        self,
        amount: Any,
        stage: str,
        customer_phone: str,
        reference: str,
        description: str = "",
    ) -> ServiceResult:
        """
        Ask the payment provider to collect a stage payment.

        Returns:
            ServiceResult whose data carries the provider transaction id
            and an optional payment URL; failure results are expected
            and must not raise.
        """
        ...
