"""
Celery tasks for notification delivery.

Tasks:
    deliver_notification: POST a queued notification to the external
        notification service

Design:
    - Transport errors and 5xx responses are retried with backoff
    - 4xx responses are permanent and dropped with a warning
    - The task is fire-and-forget; nothing in the settlement engine
      waits on its result

Usage:
    from notifications.tasks import deliver_notification

    deliver_notification.delay({
        "recipient_id": "...",
        "notification_type": "MILESTONE_APPROVED",
        "title": "...",
        "message": "...",
        "data": {},
        "priority": "normal",
    })
"""

from __future__ import annotations

import logging

import requests
from celery import shared_task
from django.conf import settings

logger = logging.getLogger(__name__)


class TransientDeliveryError(Exception):
    """Delivery failed in a way worth retrying."""


@shared_task(
    bind=True,
    autoretry_for=(TransientDeliveryError,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": 5},
    acks_late=True,
)
def deliver_notification(self, payload: dict) -> dict:
    """
    Deliver one notification to the external notification service.

    Returns:
        Dict with status: "delivered", "skipped" or "rejected"

    Raises:
        TransientDeliveryError: Re-raised to trigger Celery retry
    """
    url = getattr(settings, "NOTIFICATION_SERVICE_URL", "")
    log_context = {
        "recipient_id": payload.get("recipient_id"),
        "notification_type": payload.get("notification_type"),
        "attempt": self.request.retries + 1,
    }

    if not url:
        logger.info("Notification service not configured, skipping", extra=log_context)
        return {"status": "skipped"}

    try:
        response = requests.post(
            url,
            json=payload,
            headers={
                "Authorization": f"Bearer {getattr(settings, 'NOTIFICATION_SERVICE_TOKEN', '')}"
            },
            timeout=getattr(settings, "NOTIFICATION_TIMEOUT_SECONDS", 5),
        )
    except requests.RequestException as e:
        logger.warning(
            f"Notification delivery failed: {type(e).__name__}",
            extra=log_context,
        )
        raise TransientDeliveryError(str(e))

    if response.status_code >= 500:
        logger.warning(
            f"Notification service error {response.status_code}",
            extra=log_context,
        )
        raise TransientDeliveryError(f"status {response.status_code}")

    if response.status_code >= 400:
        logger.warning(
            f"Notification rejected with {response.status_code}",
            extra=log_context,
        )
        return {"status": "rejected", "status_code": response.status_code}

    logger.info("Notification delivered", extra=log_context)
    return {"status": "delivered"}
