"""
EscrowAccount and EscrowTransaction models.

EscrowAccount holds an order's funds in three sequential buckets
(deposit, fitting, final). Bucket amounts are computed once when the
account is created and never change; the balance only decreases, and
the stage only moves forward except through the dispute override.

The stage and balance are never written with instance.save(): the
only writer is EscrowStageTracker, which uses a conditional
queryset.update() keyed on the expected from-stage.

Usage:
    from payments.models import EscrowAccount

    account = EscrowAccount.objects.get(order_id=order.id)
    account.bucket_amount(EscrowStage.FITTING)  # Decimal("125.00")
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import (
    BUCKET_STAGES,
    EscrowStage,
    EscrowTransactionType,
)


class EscrowAccount(UUIDPrimaryKeyMixin, BaseModel):
    """
    Per-order escrow state.

    Invariants:
        deposit_amount + fitting_amount + final_amount == total_amount
        balance == total_amount - sum(buckets with *_released_at set)
        balance >= 0 and never increases

    Fields:
        order: The order whose funds are held (1:1)
        stage: Current holding phase
        *_amount: Immutable stage buckets
        balance: Amount still held
        *_released_at: When each bucket was released to the tailor
        *_paid_at: When the provider confirmed each stage payment
        version: Incremented on every advance or override
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    order = models.OneToOneField(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="escrow",
    )

    # ==========================================================================
    # Stage & Amounts
    # ==========================================================================

    stage = models.CharField(
        max_length=16,
        choices=EscrowStage.choices,
        default=EscrowStage.DEPOSIT,
        db_index=True,
    )

    total_amount = models.DecimalField(max_digits=12, decimal_places=2)
    deposit_amount = models.DecimalField(max_digits=12, decimal_places=2)
    fitting_amount = models.DecimalField(max_digits=12, decimal_places=2)
    final_amount = models.DecimalField(max_digits=12, decimal_places=2)

    balance = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Amount still held in escrow",
    )

    # ==========================================================================
    # Stage Timestamps
    # ==========================================================================

    deposit_released_at = models.DateTimeField(null=True, blank=True)
    fitting_released_at = models.DateTimeField(null=True, blank=True)
    final_released_at = models.DateTimeField(null=True, blank=True)

    deposit_paid_at = models.DateTimeField(null=True, blank=True)
    fitting_paid_at = models.DateTimeField(null=True, blank=True)
    final_paid_at = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Concurrency Control
    # ==========================================================================

    version = models.PositiveIntegerField(default=1)

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Escrow Account"
        verbose_name_plural = "Escrow Accounts"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(balance__gte=0),
                name="escrow_balance_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"EscrowAccount({self.order_id}, {self.stage}, {self.balance})"

    def bucket_amount(self, stage: str) -> Decimal:
        """Amount held for a bucket stage; RELEASED holds nothing."""
        if stage not in BUCKET_STAGES:
            return Decimal("0.00")
        return getattr(self, f"{stage.lower()}_amount")

    def released_at(self, stage: str):
        return getattr(self, f"{stage.lower()}_released_at", None)

    def paid_at(self, stage: str):
        return getattr(self, f"{stage.lower()}_paid_at", None)


class EscrowTransaction(UUIDPrimaryKeyMixin, BaseModel):
    """
    Append-only history of escrow stage changes.

    One row per release (amount = bucket released, with its commission
    split) and one per dispute override (amount = 0). Feeds the stage
    history projection and the ledger side of reconciliation.
    """

    account = models.ForeignKey(
        EscrowAccount,
        on_delete=models.CASCADE,
        related_name="transactions",
    )

    transaction_type = models.CharField(
        max_length=20,
        choices=EscrowTransactionType.choices,
    )

    from_stage = models.CharField(max_length=16, choices=EscrowStage.choices)
    to_stage = models.CharField(max_length=16, choices=EscrowStage.choices)

    amount = models.DecimalField(max_digits=12, decimal_places=2)
    commission_amount = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00")
    )
    net_amount = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00")
    )

    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="Null when the system (sweep, webhook) moved the stage",
    )

    notes = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["created_at"]
        verbose_name = "Escrow Transaction"
        verbose_name_plural = "Escrow Transactions"

    def __str__(self) -> str:
        return f"EscrowTransaction({self.transaction_type}, {self.amount})"
