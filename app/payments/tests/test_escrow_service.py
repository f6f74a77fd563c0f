"""
Tests for EscrowStageTracker.
"""

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from decimal import Decimal
from unittest.mock import patch

import pytest
from django.core.exceptions import ImproperlyConfigured
from django.db import connection

from orders.models import Order
from orders.state_machines import OrderStatus
from orders.tests.factories import OrderFactory
from payments.exceptions import (
    EscrowAlreadyInitializedError,
    EscrowFrozenError,
    EscrowNotFoundError,
    InsufficientBalanceError,
    InvalidAmountError,
    InvalidStageTransitionError,
    StageMismatchError,
)
from payments.models import EscrowAccount, EscrowTransaction
from payments.services import EscrowStageTracker, stage_split_from_settings
from payments.state_machines import EscrowStage, EscrowTransactionType


@pytest.mark.django_db
class TestInitialize:
    def test_splits_total_into_buckets(self, submitted_order):
        account = EscrowAccount.objects.get(order=submitted_order)

        assert account.stage == EscrowStage.DEPOSIT
        assert account.balance == Decimal("250.00")
        assert account.deposit_amount == Decimal("62.50")
        assert account.fitting_amount == Decimal("125.00")
        assert account.final_amount == Decimal("62.50")

    def test_final_bucket_absorbs_rounding(self, tracker):
        order = OrderFactory(total_amount=Decimal("100.01"))

        account = tracker.initialize(order)

        assert account.deposit_amount == Decimal("25.00")
        assert account.fitting_amount == Decimal("50.01")
        assert account.final_amount == Decimal("25.00")
        assert (
            account.deposit_amount + account.fitting_amount + account.final_amount
            == account.total_amount
        )

    def test_total_override(self, tracker):
        order = OrderFactory()

        account = tracker.initialize(order, total=Decimal("400.00"))

        assert account.total_amount == Decimal("400.00")
        assert account.fitting_amount == Decimal("200.00")

    @pytest.mark.parametrize("total", [Decimal("0"), Decimal("-10.00")])
    def test_total_must_be_positive(self, tracker, total):
        with pytest.raises(InvalidAmountError):
            tracker.initialize(OrderFactory(), total=total)

    def test_second_initialize_is_rejected(self, tracker, submitted_order):
        with pytest.raises(EscrowAlreadyInitializedError):
            tracker.initialize(submitted_order)

    def test_split_must_sum_to_one(self, settings):
        settings.ESCROW_STAGE_SPLIT = {"DEPOSIT": "0.30", "FITTING": "0.50", "FINAL": "0.30"}

        with pytest.raises(ImproperlyConfigured):
            stage_split_from_settings()


@pytest.mark.django_db
class TestAdvance:
    def test_advance_releases_bucket(self, tracker, submitted_order, customer):
        account = tracker.advance(
            submitted_order.id,
            EscrowStage.DEPOSIT,
            EscrowStage.FITTING,
            Decimal("62.50"),
            actor=customer,
            notes="deposit",
        )

        assert account.stage == EscrowStage.FITTING
        assert account.balance == Decimal("187.50")
        assert account.version == 2
        assert account.deposit_released_at is not None
        entry = EscrowTransaction.objects.get(account=account)
        assert entry.transaction_type == EscrowTransactionType.DEPOSIT_RELEASE
        assert entry.commission_amount == Decimal("12.50")
        assert entry.net_amount == Decimal("50.00")
        assert entry.actor == customer

    def test_repeat_advance_is_a_stage_mismatch(self, tracker, submitted_order):
        tracker.release_stage(submitted_order.id, EscrowStage.DEPOSIT)

        with pytest.raises(StageMismatchError):
            tracker.release_stage(submitted_order.id, EscrowStage.DEPOSIT)

        account = EscrowAccount.objects.get(order=submitted_order)
        assert account.balance == Decimal("187.50")
        assert account.transactions.count() == 1

    @pytest.mark.parametrize(
        "from_stage, to_stage",
        [
            (EscrowStage.DEPOSIT, EscrowStage.FINAL),
            (EscrowStage.FITTING, EscrowStage.DEPOSIT),
            (EscrowStage.RELEASED, EscrowStage.DEPOSIT),
            ("NOWHERE", EscrowStage.FITTING),
        ],
    )
    def test_only_forward_single_steps(self, tracker, submitted_order, from_stage, to_stage):
        with pytest.raises(InvalidStageTransitionError):
            tracker.advance(submitted_order.id, from_stage, to_stage, Decimal("1.00"))

    def test_amount_cannot_exceed_bucket(self, tracker, submitted_order):
        with pytest.raises(InvalidAmountError):
            tracker.advance(
                submitted_order.id, EscrowStage.DEPOSIT, EscrowStage.FITTING, Decimal("62.51")
            )

    def test_negative_amount(self, tracker, submitted_order):
        with pytest.raises(InvalidAmountError):
            tracker.advance(
                submitted_order.id, EscrowStage.DEPOSIT, EscrowStage.FITTING, Decimal("-1")
            )

    def test_partial_release_is_allowed(self, tracker, submitted_order):
        account = tracker.advance(
            submitted_order.id, EscrowStage.DEPOSIT, EscrowStage.FITTING, Decimal("50.00")
        )

        assert account.balance == Decimal("200.00")

    def test_disputed_order_is_frozen(self, tracker, funded_order):
        Order.objects.filter(pk=funded_order.pk).update(status=OrderStatus.DISPUTED)

        with pytest.raises(EscrowFrozenError):
            tracker.release_stage(funded_order.id, EscrowStage.FITTING)

        assert EscrowAccount.objects.get(order=funded_order).stage == EscrowStage.FITTING

    def test_insufficient_balance(self, tracker, funded_order):
        EscrowAccount.objects.filter(order=funded_order).update(balance=Decimal("10.00"))

        with pytest.raises(InsufficientBalanceError):
            tracker.release_stage(funded_order.id, EscrowStage.FITTING)

    def test_unknown_order(self, tracker):
        with pytest.raises(EscrowNotFoundError):
            tracker.get_status("00000000-0000-0000-0000-000000000000")

    def test_full_release(self, tracker, funded_order):
        tracker.release_stage(funded_order.id, EscrowStage.FITTING)
        account = tracker.release_stage(funded_order.id, EscrowStage.FINAL)

        assert account.stage == EscrowStage.RELEASED
        assert account.balance == Decimal("0.00")
        with pytest.raises(InvalidStageTransitionError):
            tracker.release_stage(funded_order.id, EscrowStage.RELEASED)


@pytest.mark.django_db(transaction=True)
@pytest.mark.skipif(
    connection.vendor == "sqlite", reason="SQLite serializes writers across threads"
)
class TestAdvanceConcurrent:
    """
    Concurrent releases against a real database.

    Each worker thread opens its own connection, so both conditional
    UPDATEs race for the same row.
    """

    def test_only_one_concurrent_release_wins(self, submitted_order):
        order_id = submitted_order.id
        barrier = threading.Barrier(2)

        def release():
            connection.close()  # Force new connection for thread
            try:
                barrier.wait(timeout=5)
                EscrowStageTracker().release_stage(order_id, EscrowStage.DEPOSIT)
                return "released"
            except StageMismatchError:
                return "mismatch"
            finally:
                connection.close()

        with ThreadPoolExecutor(max_workers=2) as executor:
            futures = [executor.submit(release) for _ in range(2)]
            outcomes = sorted(future.result() for future in as_completed(futures))

        assert outcomes == ["mismatch", "released"]
        account = EscrowAccount.objects.get(order=submitted_order)
        assert account.stage == EscrowStage.FITTING
        assert account.balance == Decimal("187.50")
        assert account.version == 2
        assert account.transactions.count() == 1


@pytest.mark.django_db
class TestOverrideAndPayments:
    def test_override_moves_backwards_without_money(self, tracker, funded_order, staff_user):
        account = tracker.override_stage(
            funded_order.id, EscrowStage.DEPOSIT, actor=staff_user, reason="Dispute ruling"
        )

        assert account.stage == EscrowStage.DEPOSIT
        assert account.balance == Decimal("187.50")
        entry = account.transactions.get(transaction_type=EscrowTransactionType.OVERRIDE)
        assert entry.amount == Decimal("0.00")
        assert entry.notes == "Dispute ruling"

    def test_override_requires_reason(self, tracker, funded_order, staff_user):
        with pytest.raises(InvalidStageTransitionError):
            tracker.override_stage(funded_order.id, EscrowStage.FINAL, actor=staff_user)

    def test_mark_stage_paid_first_wins(self, tracker, submitted_order):
        assert tracker.mark_stage_paid(submitted_order.id, "deposit") is True
        assert tracker.mark_stage_paid(submitted_order.id, EscrowStage.DEPOSIT) is False

        account = EscrowAccount.objects.get(order=submitted_order)
        assert account.deposit_paid_at is not None
        assert account.fitting_paid_at is None

    def test_released_has_no_payment(self, tracker, submitted_order):
        with pytest.raises(InvalidStageTransitionError):
            tracker.mark_stage_paid(submitted_order.id, EscrowStage.RELEASED)


@pytest.mark.django_db
class TestProjections:
    def test_status_projection(self, tracker, funded_order):
        status = tracker.get_status(funded_order.id)

        assert status["current_stage"] == EscrowStage.FITTING
        assert status["balance"] == "187.50"
        assert status["next_stage_amount"] == "125.00"
        assert [entry["type"] for entry in status["stage_history"]] == [
            EscrowTransactionType.DEPOSIT_RELEASE
        ]

    def test_consistent_account_validates(self, tracker, funded_order):
        report = tracker.validate(funded_order.id)

        assert report == {
            "is_valid": True,
            "errors": [],
            "expected_balance": "187.50",
            "balance": "187.50",
        }

    def test_tampered_balance_is_reported(self, tracker, funded_order):
        EscrowAccount.objects.filter(order=funded_order).update(balance=Decimal("150.00"))

        with patch("payments.services.escrow_service.reconciliation_logger") as log:
            report = tracker.validate(funded_order.id)

        assert report["is_valid"] is False
        assert report["expected_balance"] == "187.50"
        assert len(report["errors"]) == 2
        log.error.assert_called_once()
        # Advisory only
        assert EscrowAccount.objects.get(order=funded_order).balance == Decimal("150.00")

    def test_override_skips_stage_consistency(self, tracker, funded_order, staff_user):
        tracker.override_stage(
            funded_order.id, EscrowStage.FINAL, actor=staff_user, reason="Ruling"
        )

        assert tracker.validate(funded_order.id)["is_valid"] is True

    def test_split_injection(self):
        tracker = EscrowStageTracker(
            split={
                EscrowStage.DEPOSIT: Decimal("0.5"),
                EscrowStage.FITTING: Decimal("0.3"),
                EscrowStage.FINAL: Decimal("0.2"),
            }
        )

        assert tracker.split[EscrowStage.DEPOSIT] == Decimal("0.5")
