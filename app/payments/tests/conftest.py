"""
Pytest fixtures for payment tests.

Usage:
    def test_release(tracker, funded_order):
        tracker.release_stage(funded_order.id, "FITTING")

    def test_webhook(post_webhook, submitted_order):
        response = post_webhook({"transactionId": "TXN_1", ...})
"""

import json
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from django.urls import reverse

from core.services import ServiceResult
from orders.services import MilestoneApprovalService, OrderStatusOrchestrator
from orders.state_machines import OrderStatus
from orders.tests.factories import OrderFactory, UserFactory
from payments.adapters import PaymentInitiation
from payments.services import EscrowStageTracker
from payments.webhooks.verification import compute_signature

WEBHOOK_SECRET = "test-webhook-secret"
CRON_SECRET = "test-cron-secret"


# =============================================================================
# Settings
# =============================================================================


@pytest.fixture(autouse=True)
def payment_settings(settings):
    """Known secrets; no IP allow-list unless a test sets one."""
    settings.PAYMENT_WEBHOOK_SECRET = WEBHOOK_SECRET
    settings.PAYMENT_WEBHOOK_ALLOWED_IPS = []
    settings.PAYMENT_WEBHOOK_TRUST_FORWARDED_FOR = False
    settings.CRON_SECRET = CRON_SECRET
    settings.PLATFORM_COMMISSION_RATE = "0.20"
    settings.ESCROW_STAGE_SPLIT = {"DEPOSIT": "0.25", "FITTING": "0.50", "FINAL": "0.25"}
    settings.NOTIFICATION_SERVICE_URL = ""
    return settings


# =============================================================================
# Users and Orders
# =============================================================================


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
def tracker():
    return EscrowStageTracker()


@pytest.fixture
def submitted_order(customer, tailor, tracker):
    """250.00 order with an open escrow account awaiting its deposit."""
    order = OrderFactory(
        customer=customer,
        tailor=tailor,
        total_amount=Decimal("250.00"),
        status=OrderStatus.SUBMITTED,
    )
    tracker.initialize(order)
    return order


@pytest.fixture
def funded_order(customer, tailor, tracker):
    """Order at its fitting with the deposit already released."""
    order = OrderFactory(
        customer=customer,
        tailor=tailor,
        total_amount=Decimal("250.00"),
        status=OrderStatus.FITTING_SCHEDULED,
    )
    tracker.initialize(order)
    tracker.release_stage(order.id, "DEPOSIT")
    return order


# =============================================================================
# Collaborators
# =============================================================================


@pytest.fixture
def notifier():
    sender = MagicMock()
    sender.send.return_value = True
    return sender


@pytest.fixture
def payment_initiator():
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
def orchestrator(tracker, payment_initiator, notifier):
    return OrderStatusOrchestrator(
        tracker=tracker, payment_initiator=payment_initiator, notifier=notifier
    )


@pytest.fixture
def milestone_service(notifier):
    return MilestoneApprovalService(notifier=notifier)


# =============================================================================
# HTTP Helpers
# =============================================================================


@pytest.fixture
def post_webhook(api_client):
    """POST a JSON body to the Hubtel webhook, signed unless told otherwise."""

    def post(payload, signature=None, **extra):
        body = json.dumps(payload).encode("utf-8")
        if signature is None:
            signature = compute_signature(body, WEBHOOK_SECRET)
        if signature:
            extra["HTTP_X_HUBTEL_SIGNATURE"] = signature
        return api_client.post(
            reverse("payments:hubtel_webhook"),
            data=body,
            content_type="application/json",
            **extra,
        )

    return post


@pytest.fixture
def cron_headers():
    return {"HTTP_AUTHORIZATION": f"Bearer {CRON_SECRET}"}
