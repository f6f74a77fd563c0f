"""
Escrow stage tracking for three-bucket milestone escrow.

EscrowStageTracker owns an order's EscrowAccount: it splits the total
into deposit/fitting/final buckets, advances the stage one bucket at a
time, and reconciles stored balances against the release history.

Concurrency:
    advance() is a single conditional UPDATE keyed on
    (order_id, stage=from_stage, balance >= amount, order not disputed).
    Two concurrent advances for the same arrow cannot both match: the
    second sees zero rows and fails with StageMismatchError. No lock is
    held beyond that one statement.

Usage:
    from payments.services import EscrowStageTracker

    tracker = EscrowStageTracker()
    account = tracker.initialize(order)            # 250.00 -> 62.50/125.00/62.50
    tracker.advance(order.id, "DEPOSIT", "FITTING", Decimal("62.50"))
    tracker.release_stage(order.id, "FITTING")     # releases the 125.00 bucket
    tracker.validate(order.id)                     # {"is_valid": True, "errors": []}
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from core.services import BaseService
from orders.state_machines import OrderStatus
from payments.commission import calculate_commission
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
from payments.state_machines import (
    BUCKET_STAGES,
    ESCROW_TRANSITIONS,
    RELEASE_TRANSACTION_TYPES,
    EscrowStage,
    EscrowTransactionType,
)

if TYPE_CHECKING:
    from typing import Any
    from uuid import UUID

    from orders.models import Order

reconciliation_logger = logging.getLogger("payments.reconciliation")

TWO_PLACES = Decimal("0.01")
TOLERANCE = Decimal("0.01")

DEFAULT_STAGE_SPLIT = {
    EscrowStage.DEPOSIT: "0.25",
    EscrowStage.FITTING: "0.50",
    EscrowStage.FINAL: "0.25",
}


def _money(value: Any) -> Decimal:
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidAmountError(
            "Amount must be a number", details={"amount": str(value)}
        )
    return amount.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def stage_split_from_settings() -> dict[str, Decimal]:
    """
    Read the deposit/fitting/final split from ESCROW_STAGE_SPLIT.

    Raises:
        ImproperlyConfigured: If the ratios do not sum to 1
    """
    from django.core.exceptions import ImproperlyConfigured

    configured = getattr(settings, "ESCROW_STAGE_SPLIT", None) or DEFAULT_STAGE_SPLIT
    split = {
        stage: Decimal(str(configured[stage]))
        for stage in BUCKET_STAGES
    }
    if sum(split.values()) != Decimal("1"):
        raise ImproperlyConfigured(
            f"ESCROW_STAGE_SPLIT must sum to 1, got {sum(split.values())}"
        )
    return split


def _coerce_stage(value: str) -> EscrowStage:
    try:
        return EscrowStage(str(value).upper())
    except ValueError:
        raise InvalidStageTransitionError(
            f"Unknown escrow stage: {value}",
            details={"stage": str(value)},
        )


class EscrowStageTracker(BaseService):
    """
    Owns escrow stage and balance for every order.

    The only code path that writes EscrowAccount.stage or balance.
    """

    def __init__(self, split: dict[str, Decimal] | None = None):
        self.split = split or stage_split_from_settings()

    # =========================================================================
    # Initialization
    # =========================================================================

    def initialize(self, order: Order, total: Any = None) -> EscrowAccount:
        """
        Split an order total into stage buckets and open the account.

        The final bucket absorbs rounding so the three buckets always sum
        exactly to the total.

        Raises:
            InvalidAmountError: Total is not positive
            EscrowAlreadyInitializedError: The order already has an account
        """
        amount = _money(order.total_amount if total is None else total)
        if amount <= 0:
            raise InvalidAmountError(
                "Escrow total must be positive",
                details={"order_id": str(order.id), "total": str(amount)},
            )

        deposit = _money(amount * self.split[EscrowStage.DEPOSIT])
        fitting = _money(amount * self.split[EscrowStage.FITTING])
        final = amount - deposit - fitting

        try:
            with transaction.atomic():
                account = EscrowAccount.objects.create(
                    order=order,
                    stage=EscrowStage.DEPOSIT,
                    total_amount=amount,
                    deposit_amount=deposit,
                    fitting_amount=fitting,
                    final_amount=final,
                    balance=amount,
                )
        except IntegrityError:
            raise EscrowAlreadyInitializedError(
                f"Escrow for order {order.id} is already initialized",
                details={"order_id": str(order.id)},
            )

        self.get_logger().info(
            "Escrow initialized",
            extra={
                "order_id": str(order.id),
                "total": str(amount),
                "deposit": str(deposit),
                "fitting": str(fitting),
                "final": str(final),
            },
        )
        return account

    # =========================================================================
    # Stage Advance
    # =========================================================================

    def advance(
        self,
        order_id: UUID | str,
        from_stage: str,
        to_stage: str,
        released_amount: Any,
        actor=None,
        notes: str = "",
    ) -> EscrowAccount:
        """
        Release a bucket and move the account one stage forward.

        Args:
            order_id: Order whose escrow is advanced
            from_stage: Stage the caller believes the account is in
            to_stage: Must be the forward successor of from_stage
            released_amount: Amount released (at most the exited bucket)
            actor: User driving the release (None for system)
            notes: Free text stored on the EscrowTransaction

        Returns:
            The refreshed EscrowAccount

        Raises:
            InvalidStageTransitionError: Not a forward arrow
            InvalidAmountError: Negative amount or more than the bucket
            EscrowNotFoundError: Order has no escrow account
            EscrowFrozenError: Order is disputed
            StageMismatchError: Account is no longer in from_stage
            InsufficientBalanceError: Amount exceeds the held balance
        """
        source = _coerce_stage(from_stage)
        target = _coerce_stage(to_stage)
        if ESCROW_TRANSITIONS.get(source) != target:
            raise InvalidStageTransitionError(
                f"Invalid stage transition {source} -> {target}",
                details={"from_stage": source, "to_stage": target},
            )

        amount = _money(released_amount)
        account = self._get_account(order_id)
        bucket = account.bucket_amount(source)
        if amount < 0 or amount > bucket:
            raise InvalidAmountError(
                f"Release of {amount} does not fit the {source} bucket of {bucket}",
                details={
                    "order_id": str(order_id),
                    "released_amount": str(amount),
                    "bucket_amount": str(bucket),
                },
            )

        breakdown = calculate_commission(amount)
        now = timezone.now()

        with transaction.atomic():
            updated = (
                EscrowAccount.objects.filter(
                    order_id=order_id,
                    stage=source,
                    balance__gte=amount,
                )
                .exclude(order__status=OrderStatus.DISPUTED)
                .update(
                    stage=target,
                    balance=F("balance") - amount,
                    version=F("version") + 1,
                    updated_at=now,
                    **{f"{source.lower()}_released_at": now},
                )
            )
            if not updated:
                self._raise_advance_conflict(order_id, source, amount)

            account = EscrowAccount.objects.get(order_id=order_id)
            EscrowTransaction.objects.create(
                account=account,
                transaction_type=RELEASE_TRANSACTION_TYPES[source],
                from_stage=source,
                to_stage=target,
                amount=amount,
                commission_amount=breakdown.commission_amount,
                net_amount=breakdown.net_amount,
                actor=actor,
                notes=notes,
            )

        self.get_logger().info(
            f"Escrow advanced {source} -> {target}",
            extra={
                "order_id": str(order_id),
                "released_amount": str(amount),
                "commission": str(breakdown.commission_amount),
                "balance": str(account.balance),
                "version": account.version,
            },
        )
        return account

    def release_stage(
        self,
        order_id: UUID | str,
        from_stage: str,
        actor=None,
        notes: str = "",
    ) -> EscrowAccount:
        """Advance from from_stage releasing exactly its bucket."""
        source = _coerce_stage(from_stage)
        if source not in ESCROW_TRANSITIONS:
            raise InvalidStageTransitionError(
                f"Nothing to release from {source}",
                details={"from_stage": source},
            )
        account = self._get_account(order_id)
        return self.advance(
            order_id,
            source,
            ESCROW_TRANSITIONS[source],
            account.bucket_amount(source),
            actor=actor,
            notes=notes,
        )

    def _raise_advance_conflict(
        self, order_id: UUID | str, from_stage: str, amount: Decimal
    ) -> None:
        account = EscrowAccount.objects.select_related("order").get(order_id=order_id)
        details = {
            "order_id": str(order_id),
            "expected_stage": from_stage,
            "current_stage": account.stage,
            "balance": str(account.balance),
            "released_amount": str(amount),
        }

        if account.order.status == OrderStatus.DISPUTED:
            raise EscrowFrozenError(
                f"Escrow for order {order_id} is frozen by a dispute",
                details=details,
            )
        if account.stage != from_stage:
            raise StageMismatchError(
                f"Escrow for order {order_id} is in {account.stage}, not {from_stage}",
                details=details,
            )
        if account.balance < amount:
            raise InsufficientBalanceError(
                f"Escrow balance {account.balance} is less than {amount}",
                details=details,
            )
        # Matched on re-read: a concurrent writer moved it and back
        raise StageMismatchError(
            f"Escrow for order {order_id} changed during advance",
            details=details,
        )

    # =========================================================================
    # Dispute Override & Payment Timestamps
    # =========================================================================

    def override_stage(
        self,
        order_id: UUID | str,
        to_stage: str,
        actor=None,
        reason: str = "",
    ) -> EscrowAccount:
        """
        Set the stage directly on behalf of dispute resolution.

        The only path that may move the stage backwards. No money moves:
        the balance is untouched and an OVERRIDE transaction with amount
        zero records who did it and why.
        """
        target = _coerce_stage(to_stage)
        if not reason:
            raise InvalidStageTransitionError(
                "A reason is required to override the escrow stage",
                details={"order_id": str(order_id)},
            )

        account = self._get_account(order_id)
        source = account.stage

        with transaction.atomic():
            updated = EscrowAccount.objects.filter(
                order_id=order_id, stage=source
            ).update(
                stage=target,
                version=F("version") + 1,
                updated_at=timezone.now(),
            )
            if not updated:
                raise StageMismatchError(
                    f"Escrow for order {order_id} changed during override",
                    details={"order_id": str(order_id), "expected_stage": source},
                )
            account = EscrowAccount.objects.get(order_id=order_id)
            EscrowTransaction.objects.create(
                account=account,
                transaction_type=EscrowTransactionType.OVERRIDE,
                from_stage=source,
                to_stage=target,
                amount=Decimal("0.00"),
                actor=actor,
                notes=reason,
            )

        self.get_logger().warning(
            f"Escrow stage overridden {source} -> {target}",
            extra={"order_id": str(order_id), "reason": reason},
        )
        return account

    def mark_stage_paid(self, order_id: UUID | str, stage: str) -> bool:
        """
        Record when the provider confirmed a stage payment.

        First confirmation wins; returns False when already recorded.
        """
        source = _coerce_stage(stage)
        if source not in BUCKET_STAGES:
            raise InvalidStageTransitionError(
                f"{source} has no payment", details={"stage": source}
            )
        field = f"{source.lower()}_paid_at"
        updated = EscrowAccount.objects.filter(
            order_id=order_id, **{f"{field}__isnull": True}
        ).update(**{field: timezone.now()}, updated_at=timezone.now())
        return bool(updated)

    # =========================================================================
    # Read-only Projections
    # =========================================================================

    def get_status(self, order_id: UUID | str) -> dict[str, Any]:
        """
        Read-only projection for clients deciding what actions are available.

        Returns:
            Dict with current_stage, balance, next_stage_amount (bucket the
            next advance releases) and stage_history (oldest first).
        """
        account = self._get_account(order_id)
        history = [
            {
                "type": entry.transaction_type,
                "from_stage": entry.from_stage,
                "to_stage": entry.to_stage,
                "amount": str(entry.amount),
                "commission_amount": str(entry.commission_amount),
                "net_amount": str(entry.net_amount),
                "at": entry.created_at.isoformat(),
            }
            for entry in account.transactions.order_by("created_at")
        ]
        return {
            "order_id": str(account.order_id),
            "current_stage": account.stage,
            "total_amount": str(account.total_amount),
            "balance": str(account.balance),
            "next_stage_amount": str(account.bucket_amount(account.stage)),
            "stage_history": history,
        }

    def validate(self, order_id: UUID | str) -> dict[str, Any]:
        """
        Reconcile an account against its buckets and release history.

        Non-mutating and advisory: mismatches are reported and logged at
        ERROR on the payments.reconciliation logger, never corrected.

        Returns:
            {"is_valid": bool, "errors": [str, ...], "expected_balance": str,
             "balance": str}
        """
        account = self._get_account(order_id)
        errors: list[str] = []

        bucket_total = (
            account.deposit_amount + account.fitting_amount + account.final_amount
        )
        if abs(bucket_total - account.total_amount) > TOLERANCE:
            errors.append(
                f"Stage buckets sum to {bucket_total}, expected {account.total_amount}"
            )

        released_stages = [
            stage for stage in BUCKET_STAGES if account.released_at(stage)
        ]
        expected_balance = account.total_amount - sum(
            (account.bucket_amount(stage) for stage in released_stages),
            Decimal("0.00"),
        )
        if abs(expected_balance - account.balance) > TOLERANCE:
            errors.append(
                f"Balance {account.balance} does not match expected {expected_balance}"
            )

        transactions = list(account.transactions.all())
        ledger_released = sum(
            (t.amount for t in transactions
             if t.transaction_type != EscrowTransactionType.OVERRIDE),
            Decimal("0.00"),
        )
        if abs(account.total_amount - ledger_released - account.balance) > TOLERANCE:
            errors.append(
                f"Balance {account.balance} does not match release history "
                f"({ledger_released} released of {account.total_amount})"
            )

        overridden = any(
            t.transaction_type == EscrowTransactionType.OVERRIDE for t in transactions
        )
        if not overridden:
            stage_order = [*BUCKET_STAGES, EscrowStage.RELEASED]
            expected_released = list(
                BUCKET_STAGES[: stage_order.index(account.stage)]
            )
            if released_stages != expected_released:
                errors.append(
                    f"Stage {account.stage} inconsistent with released buckets "
                    f"{released_stages}"
                )

        if errors:
            reconciliation_logger.error(
                "Escrow reconciliation mismatch",
                extra={
                    "order_id": str(order_id),
                    "errors": errors,
                    "balance": str(account.balance),
                    "expected_balance": str(expected_balance),
                },
            )

        return {
            "is_valid": not errors,
            "errors": errors,
            "expected_balance": str(expected_balance),
            "balance": str(account.balance),
        }

    # =========================================================================
    # Helpers
    # =========================================================================

    def get_account(self, order_id: UUID | str) -> EscrowAccount:
        return self._get_account(order_id)

    @staticmethod
    def _get_account(order_id: UUID | str) -> EscrowAccount:
        try:
            return EscrowAccount.objects.get(order_id=order_id)
        except EscrowAccount.DoesNotExist:
            raise EscrowNotFoundError(
                f"No escrow account for order {order_id}",
                details={"order_id": str(order_id)},
            )
