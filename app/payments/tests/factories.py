"""
Factory Boy factories for payment test data.

Usage:
    from payments.tests.factories import PaymentTransactionFactory

    # Pending deposit request for an order
    payment = PaymentTransactionFactory(order=order)

    # Final-stage request
    payment = PaymentTransactionFactory(order=order, escrow_stage=EscrowStage.FINAL)

Escrow accounts are opened with EscrowStageTracker.initialize() rather
than a factory so the bucket split is always the real one.
"""

from decimal import Decimal

import factory
from django.utils import timezone

from orders.tests.factories import OrderFactory, UserFactory  # noqa: F401
from payments.models import PaymentTransaction, WebhookEvent
from payments.state_machines import EscrowStage, PaymentStatus, WebhookEventStatus


class PaymentTransactionFactory(factory.django.DjangoModelFactory):
    """
    Factory for PaymentTransaction instances.

    Default creates a Pending 62.50 deposit request whose reference
    follows the ORDER_<order_id>_<STAGE> format.
    """

    class Meta:
        model = PaymentTransaction

    transaction_id = factory.Sequence(lambda n: f"TXN_TEST_{n:06d}")
    order = factory.SubFactory(OrderFactory)
    escrow_stage = EscrowStage.DEPOSIT
    amount = Decimal("62.50")
    status = PaymentStatus.PENDING
    reference = factory.LazyAttribute(
        lambda o: o.order.payment_reference(o.escrow_stage)
    )


class WebhookEventFactory(factory.django.DjangoModelFactory):
    """Factory for an already processed webhook delivery."""

    class Meta:
        model = WebhookEvent

    transaction_id = factory.Sequence(lambda n: f"TXN_HOOK_{n:06d}")
    payment_status = PaymentStatus.SUCCESS
    payload = factory.LazyFunction(dict)
    status = WebhookEventStatus.PROCESSED
    processed_at = factory.LazyFunction(timezone.now)
