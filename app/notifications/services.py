"""
Notification dispatch for settlement events.

Delivery itself (SMS, WhatsApp, push) belongs to an external
notification service. This module implements the "send notification"
contract the orchestrator depends on: it validates the request and
queues a Celery task after the surrounding database transaction
commits, so no notification is sent for a state change that rolled
back and no request blocks on delivery.

Design Principles:
    - send() never raises; it returns False and logs on failure
    - Delivery happens in notifications.tasks.deliver_notification
    - Notification types are plain strings (see NotificationType)

Usage:
    from notifications.services import NotificationService

    NotificationService().send(
        recipient_id=order.tailor_id,
        notification_type=NotificationType.MILESTONE_APPROVED,
        title="Milestone approved",
        message="The customer approved Fitting Ready.",
        data={"order_id": str(order.id)},
        priority="high",
    )
"""

from __future__ import annotations

import logging
from functools import partial
from typing import TYPE_CHECKING

from django.db import models, transaction

from core.services import BaseService

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)

PRIORITIES = ("low", "normal", "high")


class NotificationType(models.TextChoices):
    MILESTONE_SUBMITTED = "MILESTONE_SUBMITTED", "Milestone Submitted"
    MILESTONE_APPROVED = "MILESTONE_APPROVED", "Milestone Approved"
    MILESTONE_REJECTED = "MILESTONE_REJECTED", "Milestone Rejected"
    MILESTONE_AUTO_APPROVED = "MILESTONE_AUTO_APPROVED", "Milestone Auto Approved"
    PAYMENT_REMINDER = "PAYMENT_REMINDER", "Payment Reminder"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED", "Payment Received"
    ORDER_COMPLETED = "ORDER_COMPLETED", "Order Completed"


def enqueue_delivery(payload: dict[str, Any]) -> None:
    """
    Hand a notification to the delivery task.

    Runs after commit, when the state change it reports is already
    durable, so a broker failure is logged and never raised.
    """
    from notifications.tasks import deliver_notification

    try:
        deliver_notification.delay(payload)
    except Exception as e:
        logger.error(
            f"Failed to enqueue notification delivery: {type(e).__name__}",
            extra={
                "recipient_id": payload.get("recipient_id"),
                "notification_type": payload.get("notification_type"),
            },
            exc_info=True,
        )


class NotificationService(BaseService):
    """
    Queues notifications for asynchronous delivery.

    Satisfies toolkit.protocols.NotificationSender.
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
        Queue a notification once the current transaction commits.

        Returns:
            True if the delivery task was scheduled, False otherwise
        """
        if recipient_id is None:
            logger.warning(
                "Notification skipped: no recipient",
                extra={"notification_type": notification_type},
            )
            return False

        if priority not in PRIORITIES:
            priority = "normal"

        payload = {
            "recipient_id": str(recipient_id),
            "notification_type": str(notification_type),
            "title": title,
            "message": message,
            "data": data or {},
            "priority": priority,
        }

        try:
            transaction.on_commit(partial(enqueue_delivery, payload))
        except Exception as e:
            logger.error(
                f"Failed to queue notification: {type(e).__name__}",
                extra={
                    "recipient_id": str(recipient_id),
                    "notification_type": str(notification_type),
                },
                exc_info=True,
            )
            return False

        logger.info(
            "Notification queued",
            extra={
                "recipient_id": str(recipient_id),
                "notification_type": str(notification_type),
                "priority": priority,
            },
        )
        return True
