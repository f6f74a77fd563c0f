"""
Tests for Hubtel webhook handling: the handler and the endpoint.
"""

from decimal import Decimal
from unittest.mock import patch

import pytest
from django.urls import reverse

from orders.state_machines import OrderStatus
from payments.models import EscrowAccount, PaymentTransaction, WebhookEvent
from payments.state_machines import EscrowStage, PaymentStatus, WebhookEventStatus
from payments.tests.factories import PaymentTransactionFactory
from payments.webhooks.guard import WebhookIdempotencyGuard
from payments.webhooks.handlers import (
    DUPLICATE,
    PROCESSED,
    UNMATCHED,
    handle_payment_webhook,
)


def _data(transaction_id, status=PaymentStatus.SUCCESS, amount="62.50", **extra):
    return {
        "transactionId": transaction_id,
        "status": status,
        "amount": Decimal(amount),
        "reference": "",
        "hubtelTransactionId": "",
        **extra,
    }


def _payload(transaction_id, status="Success", amount="62.50", **extra):
    return {"transactionId": transaction_id, "status": status, "amount": amount, **extra}


@pytest.fixture
def deposit_payment(submitted_order):
    return PaymentTransactionFactory(
        transaction_id="TXN_DEPOSIT_1", order=submitted_order
    )


# =============================================================================
# Handler
# =============================================================================


@pytest.mark.django_db
class TestHandlePaymentWebhook:
    def test_success_confirms_deposit(self, deposit_payment, orchestrator):
        with WebhookIdempotencyGuard() as guard:
            outcome = handle_payment_webhook(
                _data("TXN_DEPOSIT_1", hubtelTransactionId="HUB_9"), guard, orchestrator
            )

        assert outcome == PROCESSED
        deposit_payment.refresh_from_db()
        assert deposit_payment.status == PaymentStatus.SUCCESS
        assert deposit_payment.confirmed_at is not None
        assert deposit_payment.provider_transaction_id == "HUB_9"
        order = deposit_payment.order
        order.refresh_from_db()
        assert order.status == OrderStatus.DEPOSIT_PAID
        assert EscrowAccount.objects.get(order=order).balance == Decimal("187.50")

    def test_replay_is_a_duplicate(self, deposit_payment, orchestrator):
        with WebhookIdempotencyGuard() as guard:
            handle_payment_webhook(_data("TXN_DEPOSIT_1"), guard, orchestrator)
            outcome = handle_payment_webhook(_data("TXN_DEPOSIT_1"), guard, orchestrator)

        assert outcome == DUPLICATE
        assert EscrowAccount.objects.get(order=deposit_payment.order).transactions.count() == 1

    def test_pending_then_success_are_both_applied(self, deposit_payment, orchestrator):
        with WebhookIdempotencyGuard() as guard:
            first = handle_payment_webhook(
                _data("TXN_DEPOSIT_1", status=PaymentStatus.PENDING), guard, orchestrator
            )
            deposit_payment.refresh_from_db()
            assert deposit_payment.status == PaymentStatus.PENDING

            second = handle_payment_webhook(_data("TXN_DEPOSIT_1"), guard, orchestrator)

        assert (first, second) == (PROCESSED, PROCESSED)
        deposit_payment.order.refresh_from_db()
        assert deposit_payment.order.status == OrderStatus.DEPOSIT_PAID

    def test_failure_does_not_advance(self, deposit_payment, orchestrator):
        with WebhookIdempotencyGuard() as guard:
            handle_payment_webhook(
                _data("TXN_DEPOSIT_1", status=PaymentStatus.FAILED), guard, orchestrator
            )

        deposit_payment.refresh_from_db()
        assert deposit_payment.status == PaymentStatus.FAILED
        deposit_payment.order.refresh_from_db()
        assert deposit_payment.order.status == OrderStatus.SUBMITTED

    def test_match_by_provider_id(self, deposit_payment, orchestrator):
        deposit_payment.provider_transaction_id = "HUB_42"
        deposit_payment.save()

        with WebhookIdempotencyGuard() as guard:
            outcome = handle_payment_webhook(
                _data("UNKNOWN_ID", hubtelTransactionId="HUB_42"), guard, orchestrator
            )

        assert outcome == PROCESSED
        deposit_payment.refresh_from_db()
        assert deposit_payment.status == PaymentStatus.SUCCESS

    def test_match_by_reference_creates_transaction(self, submitted_order, orchestrator):
        reference = submitted_order.payment_reference(EscrowStage.DEPOSIT)

        with WebhookIdempotencyGuard() as guard:
            outcome = handle_payment_webhook(
                _data("TXN_FROM_REF", reference=reference), guard, orchestrator
            )

        assert outcome == PROCESSED
        payment = PaymentTransaction.objects.get(transaction_id="TXN_FROM_REF")
        assert payment.order == submitted_order
        assert payment.escrow_stage == EscrowStage.DEPOSIT
        submitted_order.refresh_from_db()
        assert submitted_order.status == OrderStatus.DEPOSIT_PAID

    @pytest.mark.parametrize(
        "reference",
        ["", "garbage", "ORDER_00000000-0000-0000-0000-000000000000_DEPOSIT"],
    )
    def test_unmatched_is_recorded(self, orchestrator, reference, db):
        with WebhookIdempotencyGuard() as guard:
            outcome = handle_payment_webhook(
                _data("TXN_ORPHAN", reference=reference), guard, orchestrator
            )

        assert outcome == UNMATCHED
        event = WebhookEvent.objects.get(transaction_id="TXN_ORPHAN")
        assert event.status == WebhookEventStatus.UNMATCHED
        assert not PaymentTransaction.objects.exists()

    def test_error_releases_claim(self, deposit_payment, orchestrator):
        with patch.object(
            orchestrator, "on_payment_confirmed", side_effect=RuntimeError("db down")
        ):
            with WebhookIdempotencyGuard() as guard:
                with pytest.raises(RuntimeError):
                    handle_payment_webhook(_data("TXN_DEPOSIT_1"), guard, orchestrator)

        assert not WebhookEvent.objects.filter(transaction_id="TXN_DEPOSIT_1").exists()
        deposit_payment.refresh_from_db()
        assert deposit_payment.status == PaymentStatus.PENDING

    def test_late_deposit_for_cancelled_order(self, deposit_payment, orchestrator):
        order = deposit_payment.order
        order.cancel()
        order.save()

        with WebhookIdempotencyGuard() as guard:
            outcome = handle_payment_webhook(_data("TXN_DEPOSIT_1"), guard, orchestrator)

        assert outcome == PROCESSED
        order.refresh_from_db()
        account = EscrowAccount.objects.get(order=order)
        assert order.status == OrderStatus.CANCELLED
        assert account.stage == EscrowStage.DEPOSIT
        assert account.balance == Decimal("250.00")


# =============================================================================
# Endpoint
# =============================================================================


@pytest.mark.django_db
class TestHubtelWebhookView:
    def test_processes_signed_callback(self, post_webhook, deposit_payment):
        response = post_webhook(_payload("TXN_DEPOSIT_1"))

        assert response.status_code == 200
        assert response.data["success"] is True
        assert response.data["outcome"] == PROCESSED
        deposit_payment.order.refresh_from_db()
        assert deposit_payment.order.status == OrderStatus.DEPOSIT_PAID

    def test_replay_is_acknowledged_once(self, post_webhook, deposit_payment):
        post_webhook(_payload("TXN_DEPOSIT_1"))

        response = post_webhook(_payload("TXN_DEPOSIT_1"))

        assert response.status_code == 200
        assert response.data["message"] == "Webhook already processed"
        assert PaymentTransaction.objects.count() == 1
        account = EscrowAccount.objects.get(order=deposit_payment.order)
        assert account.transactions.count() == 1

    def test_provider_status_spelling(self, post_webhook, deposit_payment):
        response = post_webhook(_payload("TXN_DEPOSIT_1", status="PAID"))

        assert response.status_code == 200
        deposit_payment.refresh_from_db()
        assert deposit_payment.status == PaymentStatus.SUCCESS

    def test_bad_signature(self, post_webhook, deposit_payment):
        response = post_webhook(_payload("TXN_DEPOSIT_1"), signature="deadbeef")

        assert response.status_code == 401
        assert not WebhookEvent.objects.exists()

    def test_missing_signature(self, post_webhook, deposit_payment):
        response = post_webhook(_payload("TXN_DEPOSIT_1"), signature="")

        assert response.status_code == 401

    @pytest.mark.parametrize(
        "payload",
        [
            {"transactionId": "TXN_1", "status": "Success"},
            {"transactionId": "TXN_1", "status": "Refunded", "amount": "1.00"},
            {"transactionId": "TXN_1", "status": "Success", "amount": "-1.00"},
            {"transactionId": "TXN_1", "status": "Success", "amount": "1.00", "extra": 1},
        ],
    )
    def test_invalid_payload(self, post_webhook, payload):
        response = post_webhook(payload)

        assert response.status_code == 400
        assert response.data["success"] is False

    def test_unmatched_is_acknowledged(self, post_webhook):
        response = post_webhook(_payload("TXN_ORPHAN", reference="nothing"))

        assert response.status_code == 200
        assert response.data["outcome"] == UNMATCHED

    def test_processing_error_asks_for_retry(self, post_webhook, deposit_payment):
        with patch(
            "payments.webhooks.views.handle_payment_webhook",
            side_effect=RuntimeError("boom"),
        ):
            response = post_webhook(_payload("TXN_DEPOSIT_1"))

        assert response.status_code == 500
        assert response.data["success"] is False

    def test_health_check(self, api_client):
        response = api_client.get(reverse("payments:hubtel_webhook"))

        assert response.status_code == 200
        assert response.data["message"] == "Hubtel webhook endpoint is active"


@pytest.mark.django_db(transaction=True)
def test_broker_outage_after_commit_still_acknowledges(post_webhook, deposit_payment):
    with patch(
        "notifications.tasks.deliver_notification.delay",
        side_effect=ConnectionError("broker unreachable"),
    ) as delay:
        response = post_webhook(_payload("TXN_DEPOSIT_1"))

    assert response.status_code == 200
    assert response.data["outcome"] == PROCESSED
    delay.assert_called()
    deposit_payment.order.refresh_from_db()
    assert deposit_payment.order.status == OrderStatus.DEPOSIT_PAID
