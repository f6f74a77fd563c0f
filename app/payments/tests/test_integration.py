"""
End-to-end settlement of a 250.00 order.

Drives the public surfaces in order: checkout, deposit webhook, tailor
milestones, customer fitting approval, final auto-approval. Only the
payment gateway is patched.
"""

import json
from datetime import timedelta
from decimal import Decimal
from itertools import count
from unittest.mock import patch

import pytest
from django.urls import reverse
from django.utils import timezone
from freezegun import freeze_time

from core.services import ServiceResult
from orders.models import MilestoneApproval, Order
from orders.services import OrderStatusOrchestrator
from orders.state_machines import MilestoneApprovalStatus, MilestoneType, OrderStatus
from payments.adapters import HubtelPaymentAdapter, PaymentInitiation
from payments.models import EscrowAccount, PaymentTransaction
from payments.state_machines import EscrowStage, EscrowTransactionType, PaymentStatus
from payments.webhooks.verification import compute_signature

PHOTOS = ["https://cdn.example.com/progress.jpg"]


@pytest.fixture
def gateway():
    ids = count(1)

    def initiate(self, amount, stage, customer_phone, reference, description=""):
        return ServiceResult.success(
            PaymentInitiation(
                transaction_id=f"TXN_{stage}_{next(ids)}",
                payment_url=f"https://pay.example.com/{stage.lower()}",
            )
        )

    with patch.object(HubtelPaymentAdapter, "initiate_payment", initiate):
        yield


def _webhook(client, settings, transaction_id, amount):
    body = json.dumps(
        {"transactionId": transaction_id, "status": "Success", "amount": amount}
    ).encode("utf-8")
    return client.post(
        reverse("payments:hubtel_webhook"),
        data=body,
        content_type="application/json",
        HTTP_X_HUBTEL_SIGNATURE=compute_signature(body, settings.PAYMENT_WEBHOOK_SECRET),
    )


def _advance_order(order_id, *transitions):
    order = Order.objects.get(pk=order_id)
    for name in transitions:
        getattr(order, name)()
    order.save()


@pytest.mark.django_db
def test_full_settlement(api_client, settings, customer, tailor, gateway, cron_headers):
    order = OrderStatusOrchestrator().place_order(
        customer, tailor, Decimal("250.00"), "Kaba and slit", "0241234567"
    )

    # Checkout: customer asks to pay the deposit
    api_client.force_authenticate(user=customer)
    response = api_client.post(
        reverse("payments:escrow_initiate", kwargs={"order_id": order.id})
    )
    assert response.status_code == 201
    deposit_txn = response.data["transaction_id"]
    assert response.data["amount"] == "62.50"

    # Provider confirms the deposit, then redelivers it
    api_client.force_authenticate(user=None)
    assert _webhook(api_client, settings, deposit_txn, "62.50").status_code == 200
    assert _webhook(api_client, settings, deposit_txn, "62.50").data["message"] == (
        "Webhook already processed"
    )

    order.refresh_from_db()
    account = EscrowAccount.objects.get(order=order)
    assert order.status == OrderStatus.DEPOSIT_PAID
    assert account.stage == EscrowStage.FITTING
    assert account.balance == Decimal("187.50")

    # Production up to the fitting
    _advance_order(
        order.id,
        "accept",
        "confirm_measurements",
        "source_fabric",
        "start_cutting",
        "start_sewing",
        "schedule_fitting",
    )

    # Tailor shares fitting photos; customer approves
    api_client.force_authenticate(user=tailor)
    response = api_client.post(
        reverse("orders:milestone_submit", kwargs={"order_id": order.id}),
        {"milestone": MilestoneType.FITTING_READY, "photo_urls": PHOTOS},
        format="json",
    )
    assert response.status_code == 201
    fitting_id = response.data["id"]

    api_client.force_authenticate(user=customer)
    response = api_client.post(
        reverse("orders:milestone_resolve", kwargs={"milestone_id": fitting_id}),
        {"action": "APPROVED"},
        format="json",
    )
    assert response.status_code == 200
    assert response.data["settlement"]["released_amount"] == "125.00"

    order.refresh_from_db()
    account.refresh_from_db()
    assert order.status == OrderStatus.FITTING_COMPLETED
    assert account.stage == EscrowStage.FINAL
    assert account.balance == Decimal("62.50")
    final_payment = PaymentTransaction.objects.get(
        order=order, escrow_stage=EscrowStage.FINAL
    )
    assert final_payment.status == PaymentStatus.PENDING
    assert final_payment.amount == Decimal("62.50")

    # Finishing work; tailor submits the final milestone, customer stays silent
    _advance_order(order.id, "begin_final_inspection")
    api_client.force_authenticate(user=tailor)
    response = api_client.post(
        reverse("orders:milestone_submit", kwargs={"order_id": order.id}),
        {"milestone": MilestoneType.READY_FOR_DELIVERY, "photo_urls": PHOTOS},
        format="json",
    )
    assert response.status_code == 201
    final_id = response.data["id"]

    api_client.force_authenticate(user=None)
    with freeze_time(timezone.now() + timedelta(hours=49)):
        response = api_client.get(
            reverse("payments:cron_auto_approve_milestones"), **cron_headers
        )
    assert response.status_code == 200
    assert response.data["approvedMilestoneIds"] == [final_id]

    order.refresh_from_db()
    account.refresh_from_db()
    assert order.status == OrderStatus.COMPLETED
    assert account.stage == EscrowStage.RELEASED
    assert account.balance == Decimal("0.00")
    assert [t.transaction_type for t in account.transactions.order_by("created_at")] == [
        EscrowTransactionType.DEPOSIT_RELEASE,
        EscrowTransactionType.FITTING_RELEASE,
        EscrowTransactionType.FINAL_RELEASE,
    ]
    assert sum(t.net_amount for t in account.transactions.all()) == Decimal("200.00")

    auto = MilestoneApproval.objects.get(milestone_id=final_id)
    assert auto.actor is None
    assert auto.milestone.approval_status == MilestoneApprovalStatus.AUTO_APPROVED

    api_client.force_authenticate(user=customer)
    status = api_client.get(
        reverse("payments:escrow_status", kwargs={"order_id": order.id})
    ).data
    assert status["balance"] == "0.00"
    assert len(status["stage_history"]) == 3
