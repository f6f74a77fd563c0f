"""
Pytest fixtures for order tests.

Collaborators that leave the process (payment gateway, notification
delivery) are replaced with mocks; the escrow tracker is real.
"""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from core.services import ServiceResult
from orders.services import MilestoneApprovalService, OrderStatusOrchestrator
from orders.state_machines import OrderStatus
from orders.tests.factories import OrderFactory, UserFactory
from payments.adapters import PaymentInitiation
from payments.services import EscrowStageTracker


@pytest.fixture
def customer(db):
    return UserFactory(username="customer")


@pytest.fixture
def tailor(db):
    return UserFactory(username="tailor")


@pytest.fixture
def staff_user(db):
    return UserFactory(username="staff", is_staff=True)


@pytest.fixture
def stranger(db):
    return UserFactory(username="stranger")


@pytest.fixture
def notifier():
    sender = MagicMock()
    sender.send.return_value = True
    return sender


@pytest.fixture
def payment_initiator():
    """Gateway double that accepts every request."""
    initiator = MagicMock()
    counter = iter(range(1, 1000))

    def initiate(amount, stage, customer_phone, reference, description=""):
        return ServiceResult.success(
            PaymentInitiation(
                transaction_id=f"TXN_{stage}_{next(counter)}",
                payment_url="https://pay.example.com/checkout",
            )
        )

    initiator.initiate_payment.side_effect = initiate
    return initiator


@pytest.fixture
def tracker():
    return EscrowStageTracker()


@pytest.fixture
def milestone_service(notifier):
    return MilestoneApprovalService(notifier=notifier)


@pytest.fixture
def orchestrator(tracker, payment_initiator, notifier):
    return OrderStatusOrchestrator(
        tracker=tracker, payment_initiator=payment_initiator, notifier=notifier
    )


@pytest.fixture
def order(customer, tailor):
    """Order in production with its deposit bucket already released."""
    order = OrderFactory(
        customer=customer,
        tailor=tailor,
        total_amount=Decimal("250.00"),
        status=OrderStatus.FITTING_SCHEDULED,
    )
    tracker = EscrowStageTracker()
    tracker.initialize(order)
    tracker.release_stage(order.id, "DEPOSIT")
    return order
