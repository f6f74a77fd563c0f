"""
WebhookEvent model for durable payment-webhook deduplication.

The unique (transaction_id, payment_status) constraint is what makes a
redelivered webhook a no-op: the row is inserted inside the same
database transaction that applies the payment, so a crash before
commit leaves no row and the provider's retry is processed again.

A transaction progressing Pending -> Success produces two rows; only
an exact (id, status) repeat collides.

Usage:
    from payments.models import WebhookEvent

    event, created = WebhookEvent.objects.get_or_create(
        transaction_id="tx_123",
        payment_status="Success",
        defaults={"payload": payload},
    )
    if not created:
        return HttpResponse("Already processed", status=200)
"""

from __future__ import annotations

from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import WebhookEventStatus


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Tracks processed payment-provider webhooks.

    Fields:
        transaction_id: Transaction the webhook reports on
        payment_status: Provider status in this delivery
        payload: Full validated payload
        status: Outcome of processing
        processed_at: When processing finished
    """

    transaction_id = models.CharField(max_length=100, db_index=True)

    payment_status = models.CharField(max_length=32)

    payload = models.JSONField(default=dict)

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PROCESSED,
    )

    processed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        constraints = [
            models.UniqueConstraint(
                fields=["transaction_id", "payment_status"],
                name="unique_webhook_transaction_status",
            ),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.transaction_id}, {self.payment_status})"
