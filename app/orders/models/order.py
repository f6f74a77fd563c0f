"""
Order model for customer-tailor garment orders.

Order is the coarse-grained workflow record the settlement engine
advances. Its status is a django-fsm field: code paths outside the
declared transitions never write it directly.

Usage:
    from orders.models import Order
    from orders.state_machines import OrderStatus

    order = Order.objects.create(
        customer=customer,
        tailor=tailor,
        total_amount=Decimal("250.00"),
        garment_type="Kaba and slit",
        customer_phone="+233241234567",
    )

    order.mark_deposit_paid()  # SUBMITTED -> DEPOSIT_PAID
    order.save(update_fields=["status", "updated_at"])
"""

from __future__ import annotations

import uuid

from django.conf import settings
from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin
from toolkit.validators import validate_ghana_phone

from orders.state_machines import (
    COMPLETABLE_STATUSES,
    DISPUTABLE_STATUSES,
    OrderStatus,
)


def generate_order_number() -> str:
    return f"ORD-{uuid.uuid4().hex[:10].upper()}"


class Order(UUIDPrimaryKeyMixin, BaseModel):
    """
    A garment order between one customer and one tailor.

    Fields:
        customer: User paying for the garment
        tailor: User making the garment
        order_number: Human-facing reference
        total_amount: Order total (2 dp); split into escrow buckets once
        status: Current FSM status
        customer_phone: Mobile-money number used for stage payments
        last_rejection_at: Most recent milestone rejection (dispute eligibility)
        *_at timestamps: When each stage payment was confirmed

    Transitions:
        The settlement engine drives mark_deposit_paid, complete_fitting,
        begin_final_inspection and complete. The production transitions
        (accept through mark_delivered) and dispute, resolve_dispute and
        cancel are hooks for the surrounding order workflow and for
        dispute handling; nothing in this project calls them itself.
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    customer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="customer_orders",
        help_text="Customer placing the order",
    )

    tailor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="tailor_orders",
        help_text="Tailor fulfilling the order",
    )

    # ==========================================================================
    # Order Details
    # ==========================================================================

    order_number = models.CharField(
        max_length=32,
        unique=True,
        default=generate_order_number,
        help_text="Human-readable order reference",
    )

    garment_type = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Garment being made (e.g. 'Kente dress')",
    )

    total_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Order total in GHS",
    )

    customer_phone = models.CharField(
        max_length=20,
        blank=True,
        default="",
        validators=[validate_ghana_phone],
        help_text="Customer mobile-money number for stage payments",
    )

    # ==========================================================================
    # Status
    # ==========================================================================

    status = FSMField(
        default=OrderStatus.SUBMITTED,
        choices=OrderStatus.choices,
        db_index=True,
        help_text="Current workflow status (managed by FSM)",
    )

    last_rejection_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When a milestone on this order was last rejected",
    )

    # ==========================================================================
    # Payment Timestamps
    # ==========================================================================

    deposit_paid_at = models.DateTimeField(null=True, blank=True)
    fitting_paid_at = models.DateTimeField(null=True, blank=True)
    final_paid_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Order"
        verbose_name_plural = "Orders"
        indexes = [
            models.Index(fields=["customer", "status"], name="order_customer_status_idx"),
            models.Index(fields=["tailor", "status"], name="order_tailor_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(total_amount__gt=0),
                name="order_total_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"Order({self.order_number}, {self.status}, {self.total_amount})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=OrderStatus.SUBMITTED,
        target=OrderStatus.DEPOSIT_PAID,
    )
    def mark_deposit_paid(self):
        """Deposit payment confirmed by the provider."""
        self.deposit_paid_at = self.deposit_paid_at or timezone.now()

    @transition(
        field=status,
        source=OrderStatus.DEPOSIT_PAID,
        target=OrderStatus.ACCEPTED,
    )
    def accept(self):
        """Tailor accepts the order."""

    @transition(
        field=status,
        source=OrderStatus.ACCEPTED,
        target=OrderStatus.MEASUREMENT_CONFIRMED,
    )
    def confirm_measurements(self):
        pass

    @transition(
        field=status,
        source=OrderStatus.MEASUREMENT_CONFIRMED,
        target=OrderStatus.FABRIC_SOURCED,
    )
    def source_fabric(self):
        pass

    @transition(
        field=status,
        source=OrderStatus.FABRIC_SOURCED,
        target=OrderStatus.CUTTING_STARTED,
    )
    def start_cutting(self):
        pass

    @transition(
        field=status,
        source=OrderStatus.CUTTING_STARTED,
        target=OrderStatus.SEWING_IN_PROGRESS,
    )
    def start_sewing(self):
        pass

    @transition(
        field=status,
        source=OrderStatus.SEWING_IN_PROGRESS,
        target=OrderStatus.FITTING_SCHEDULED,
    )
    def schedule_fitting(self):
        pass

    @transition(
        field=status,
        source=OrderStatus.FITTING_SCHEDULED,
        target=OrderStatus.FITTING_COMPLETED,
    )
    def complete_fitting(self):
        """Fitting milestone approved (manually or automatically)."""

    @transition(
        field=status,
        source=OrderStatus.FITTING_COMPLETED,
        target=OrderStatus.ADJUSTMENTS_IN_PROGRESS,
    )
    def start_adjustments(self):
        pass

    @transition(
        field=status,
        source=[OrderStatus.FITTING_COMPLETED, OrderStatus.ADJUSTMENTS_IN_PROGRESS],
        target=OrderStatus.FINAL_INSPECTION,
    )
    def begin_final_inspection(self):
        pass

    @transition(
        field=status,
        source=OrderStatus.FINAL_INSPECTION,
        target=OrderStatus.READY_FOR_DELIVERY,
    )
    def mark_ready_for_delivery(self):
        pass

    @transition(
        field=status,
        source=OrderStatus.READY_FOR_DELIVERY,
        target=OrderStatus.DELIVERED,
    )
    def mark_delivered(self):
        pass

    @transition(
        field=status,
        source=list(COMPLETABLE_STATUSES),
        target=OrderStatus.COMPLETED,
    )
    def complete(self):
        """
        Final milestone approved or final payment confirmed.

        Allowed from any active production status: the final milestone
        may be approved before the courier marks the order delivered.
        """
        self.completed_at = timezone.now()

    @transition(
        field=status,
        source=list(DISPUTABLE_STATUSES),
        target=OrderStatus.DISPUTED,
    )
    def dispute(self):
        """Open a dispute. Escrow releases are frozen until resolution."""

    @transition(
        field=status,
        source=OrderStatus.DISPUTED,
        target=OrderStatus.SEWING_IN_PROGRESS,
    )
    def resolve_dispute(self):
        pass

    @transition(
        field=status,
        source=[
            OrderStatus.SUBMITTED,
            OrderStatus.DEPOSIT_PAID,
            OrderStatus.DISPUTED,
        ],
        target=OrderStatus.CANCELLED,
    )
    def cancel(self):
        pass

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_disputed(self) -> bool:
        return self.status == OrderStatus.DISPUTED

    def payment_reference(self, stage: str) -> str:
        """Reference string sent to the payment provider for a stage."""
        return f"ORDER_{self.id}_{stage.upper()}"
