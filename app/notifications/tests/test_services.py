"""
Tests for NotificationService.
"""

from unittest.mock import patch

import pytest

from notifications.services import NotificationService, NotificationType


@pytest.mark.django_db
class TestSend:
    def test_queues_after_commit(self, django_capture_on_commit_callbacks):
        with patch("notifications.tasks.deliver_notification.delay") as delay:
            with django_capture_on_commit_callbacks(execute=True) as callbacks:
                sent = NotificationService().send(
                    recipient_id=42,
                    notification_type=NotificationType.PAYMENT_REMINDER,
                    title="Final payment due",
                    message="Please pay the final GHS 62.50.",
                    data={"order_id": "abc"},
                    priority="high",
                )

        assert sent is True
        assert len(callbacks) == 1
        delay.assert_called_once_with(
            {
                "recipient_id": "42",
                "notification_type": "PAYMENT_REMINDER",
                "title": "Final payment due",
                "message": "Please pay the final GHS 62.50.",
                "data": {"order_id": "abc"},
                "priority": "high",
            }
        )

    def test_nothing_sent_when_transaction_rolls_back(
        self, django_capture_on_commit_callbacks
    ):
        with patch("notifications.tasks.deliver_notification.delay") as delay:
            with django_capture_on_commit_callbacks(execute=False) as callbacks:
                NotificationService().send(
                    recipient_id=1,
                    notification_type=NotificationType.MILESTONE_APPROVED,
                    title="Approved",
                    message="Approved",
                )

        assert len(callbacks) == 1
        delay.assert_not_called()

    def test_unknown_priority_becomes_normal(self, django_capture_on_commit_callbacks):
        with patch("notifications.tasks.deliver_notification.delay") as delay:
            with django_capture_on_commit_callbacks(execute=True):
                NotificationService().send(
                    recipient_id=1,
                    notification_type=NotificationType.ORDER_COMPLETED,
                    title="Done",
                    message="Done",
                    priority="urgent",
                )

        assert delay.call_args.args[0]["priority"] == "normal"

    def test_broker_failure_after_commit_is_logged(
        self, django_capture_on_commit_callbacks
    ):
        with patch(
            "notifications.tasks.deliver_notification.delay",
            side_effect=ConnectionError("broker unreachable"),
        ) as delay:
            with patch("notifications.services.logger") as service_logger:
                with django_capture_on_commit_callbacks(execute=True):
                    sent = NotificationService().send(
                        recipient_id=1,
                        notification_type=NotificationType.PAYMENT_RECEIVED,
                        title="Deposit received",
                        message="Deposit received",
                    )

        assert sent is True
        delay.assert_called_once()
        service_logger.error.assert_called_once()

    def test_missing_recipient_is_skipped(self):
        assert (
            NotificationService().send(
                recipient_id=None,
                notification_type=NotificationType.ORDER_COMPLETED,
                title="Done",
                message="Done",
            )
            is False
        )

    def test_queue_failure_returns_false(self):
        with patch(
            "notifications.services.transaction.on_commit",
            side_effect=RuntimeError("no connection"),
        ):
            sent = NotificationService().send(
                recipient_id=1,
                notification_type=NotificationType.ORDER_COMPLETED,
                title="Done",
                message="Done",
            )

        assert sent is False
