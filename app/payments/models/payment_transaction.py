"""
PaymentTransaction model for provider-side stage payments.

One row per payment attempt, created when a stage payment is initiated
and updated in place (never duplicated) when the provider's webhook
reports a new status. transaction_id is the dedup key.

Usage:
    from payments.models import PaymentTransaction

    payment, created = PaymentTransaction.objects.update_or_create(
        transaction_id="tx_123",
        defaults={"status": PaymentStatus.SUCCESS},
    )
"""

from __future__ import annotations

import re

from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import EscrowStage, PaymentStatus

REFERENCE_PATTERN = re.compile(
    r"^ORDER_(?P<order_id>[a-fA-F0-9-]{36})_(?P<stage>DEPOSIT|FITTING|FINAL)$"
)


def parse_reference(reference: str | None) -> tuple[str, str] | None:
    """
    Extract (order_id, stage) from an ORDER_<uuid>_<STAGE> reference.

    Returns None when the reference does not match.
    """
    if not reference:
        return None
    match = REFERENCE_PATTERN.match(reference.strip())
    if not match:
        return None
    return match.group("order_id").lower(), match.group("stage")


class PaymentTransaction(UUIDPrimaryKeyMixin, BaseModel):
    """
    A stage payment requested from the customer.

    Fields:
        transaction_id: Our id sent to the provider (globally unique)
        provider_transaction_id: Provider's own id, reported in webhooks
        order: Order being paid for
        escrow_stage: Which bucket this payment funds
        amount: Amount requested (GHS)
        status: Last provider-reported status
        reference: ORDER_<order_id>_<STAGE> fallback correlation key
        payment_url: Checkout URL returned on initiation
    """

    transaction_id = models.CharField(
        max_length=100,
        unique=True,
        help_text="Unique transaction id (dedup key for webhooks)",
    )

    provider_transaction_id = models.CharField(
        max_length=100,
        null=True,
        blank=True,
        db_index=True,
    )

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="payment_transactions",
    )

    escrow_stage = models.CharField(
        max_length=16,
        choices=[
            (stage.value, stage.label)
            for stage in (EscrowStage.DEPOSIT, EscrowStage.FITTING, EscrowStage.FINAL)
        ],
    )

    amount = models.DecimalField(max_digits=12, decimal_places=2)

    status = models.CharField(
        max_length=16,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
        db_index=True,
    )

    reference = models.CharField(max_length=100, db_index=True)

    payment_url = models.URLField(max_length=500, null=True, blank=True)

    confirmed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment Transaction"
        verbose_name_plural = "Payment Transactions"
        indexes = [
            models.Index(fields=["order", "escrow_stage"], name="payment_order_stage_idx"),
        ]

    def __str__(self) -> str:
        return f"PaymentTransaction({self.transaction_id}, {self.escrow_stage}, {self.status})"
