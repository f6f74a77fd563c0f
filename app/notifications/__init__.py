"""
Notifications app: the "send notification" contract for settlement events.

This app provides:
- NotificationService: queues notifications after commit (never raises)
- deliver_notification: Celery task posting to the external delivery service

Usage:
    from notifications.services import NotificationService, NotificationType

    NotificationService().send(
        recipient_id=order.customer_id,
        notification_type=NotificationType.PAYMENT_REMINDER,
        title="Payment due",
        message="Your fitting was approved. Please complete the final payment.",
    )
"""
