"""
Order status orchestration for milestone and payment events.

OrderStatusOrchestrator has no state machine of its own. It sequences
the escrow tracker, the order's FSM transitions and the external
payment-initiation and notification collaborators.

Saga:
    milestone resolved -> (order status + escrow advance, one atomic step)
                       -> request next stage payment (best-effort)
                       -> notify (best-effort, queued after commit)

Each step is idempotent on its own. Later steps never unwind earlier,
committed ones, and a crash between steps is recovered with redrive().

Failure semantics:
    - Escrow tracker and order transition errors propagate
    - StageMismatchError where the account has already moved past the
      stage is a benign no-op (late webhook, re-drive, retried request)
    - Payment initiation and notification failures are logged only

Usage:
    from orders.services import OrderStatusOrchestrator

    orchestrator = OrderStatusOrchestrator()
    order = orchestrator.place_order(customer, tailor, Decimal("250.00"))
    orchestrator.initiate_escrow_payment(order.id)
    ...
    orchestrator.on_milestone_resolved(
        order.id, MilestoneType.FITTING_READY, MilestoneAction.APPROVED, actor=customer
    )
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.utils import timezone

from django_fsm import can_proceed

from core.exceptions import ConflictError
from core.services import BaseService, ServiceResult
from notifications.services import NotificationService, NotificationType
from orders.conf import final_milestone, fitting_milestone
from orders.exceptions import (
    InvalidMilestoneActionError,
    MilestoneNotFoundError,
    OrderNotFoundError,
)
from orders.models import Order, OrderMilestone
from orders.state_machines import (
    APPROVING_ACTIONS,
    DEPOSIT_RELEASE_STATUSES,
    MilestoneAction,
    MilestoneApprovalStatus,
    OrderStatus,
)
from payments.adapters import HubtelPaymentAdapter
from payments.commission import calculate_commission
from payments.exceptions import StageMismatchError
from payments.models import PaymentTransaction
from payments.services import EscrowStageTracker
from payments.state_machines import BUCKET_STAGES, EscrowStage, PaymentStatus

if TYPE_CHECKING:
    from typing import Any
    from uuid import UUID

    from payments.models import EscrowAccount
    from toolkit.protocols import NotificationSender, PaymentInitiator


STAGE_ORDER = (*BUCKET_STAGES, EscrowStage.RELEASED)

_APPROVED_STATUS_ACTIONS = {
    MilestoneApprovalStatus.APPROVED: MilestoneAction.APPROVED,
    MilestoneApprovalStatus.AUTO_APPROVED: MilestoneAction.AUTO_APPROVED,
    MilestoneApprovalStatus.REJECTED: MilestoneAction.REJECTED,
}


@dataclass
class SettlementOutcome:
    """
    What one orchestrator call changed.

    Attributes:
        order_id: Order the event applied to
        order_status: Order status after the call
        escrow_advanced: Whether a bucket was released by this call
        released_amount: Gross amount released (None if nothing moved)
        payment_requested: Whether a next-stage payment was initiated
    """

    order_id: str
    order_status: str
    escrow_advanced: bool = False
    released_amount: Decimal | None = None
    payment_requested: bool = False


class OrderStatusOrchestrator(BaseService):
    """
    Maps milestone and payment events onto order status and escrow.

    Collaborators are injected so tests and alternative providers can
    substitute them; defaults are the production implementations.
    """

    def __init__(
        self,
        tracker: EscrowStageTracker | None = None,
        payment_initiator: PaymentInitiator | None = None,
        notifier: NotificationSender | None = None,
    ):
        self.tracker = tracker or EscrowStageTracker()
        self.payment_initiator = payment_initiator or HubtelPaymentAdapter()
        self.notifier = notifier or NotificationService()

    # =========================================================================
    # Checkout
    # =========================================================================

    def place_order(
        self,
        customer,
        tailor,
        total_amount: Any,
        garment_type: str = "",
        customer_phone: str = "",
    ) -> Order:
        """Create an order and its escrow account in one transaction."""
        with transaction.atomic():
            order = Order.objects.create(
                customer=customer,
                tailor=tailor,
                total_amount=total_amount,
                garment_type=garment_type,
                customer_phone=customer_phone,
            )
            self.tracker.initialize(order)

        self.get_logger().info(
            "Order placed",
            extra={
                "order_id": str(order.id),
                "order_number": order.order_number,
                "total": str(order.total_amount),
            },
        )
        return order

    def initiate_escrow_payment(
        self, order_id: UUID | str
    ) -> ServiceResult[PaymentTransaction]:
        """
        Make sure the order has an escrow account and request the deposit.

        Returns the result of the deposit payment request.
        """
        order = self._get_order(order_id)
        if not hasattr(order, "escrow"):
            self.tracker.initialize(order)
        return self.request_stage_payment(order, EscrowStage.DEPOSIT)

    # =========================================================================
    # Payment Requests
    # =========================================================================

    def request_stage_payment(
        self, order: Order, stage: str
    ) -> ServiceResult[PaymentTransaction]:
        """
        Ask the customer to pay one stage bucket.

        Records a Pending PaymentTransaction keyed by the initiator's
        transaction id. Never raises: failures come back as a failed
        ServiceResult and are logged.
        """
        log_context = {"order_id": str(order.id), "stage": stage}
        try:
            account = self.tracker.get_account(order.id)
            amount = account.bucket_amount(stage)
            reference = order.payment_reference(stage)

            result = self.payment_initiator.initiate_payment(
                amount=amount,
                stage=stage,
                customer_phone=order.customer_phone,
                reference=reference,
                description=f"{stage.title()} payment for order {order.order_number}",
            )
            if not result:
                self.get_logger().warning(
                    f"Stage payment request failed: {result.error}",
                    extra={**log_context, "error_code": result.error_code},
                )
                return result

            initiation = result.data
            payment, _ = PaymentTransaction.objects.update_or_create(
                transaction_id=initiation.transaction_id,
                defaults={
                    "provider_transaction_id": initiation.provider_transaction_id,
                    "order": order,
                    "escrow_stage": stage,
                    "amount": amount,
                    "status": PaymentStatus.PENDING,
                    "reference": reference,
                    "payment_url": initiation.payment_url,
                },
            )
        except Exception as e:
            self.get_logger().error(
                f"Stage payment request error: {type(e).__name__}",
                extra=log_context,
                exc_info=True,
            )
            return ServiceResult.from_exception(e)

        self.get_logger().info(
            "Stage payment requested",
            extra={
                **log_context,
                "transaction_id": payment.transaction_id,
                "amount": str(amount),
            },
        )
        return ServiceResult.success(payment)

    def request_final_payment(self, order: Order) -> bool:
        """
        Request the final payment and remind the customer, unless one is open.

        Skipped while a Pending or Success FINAL transaction exists, so a
        retry never bills the customer twice.

        Returns:
            True if a new payment request was created
        """
        if not self._needs_payment(order, EscrowStage.FINAL):
            return False

        result = self.request_stage_payment(order, EscrowStage.FINAL)
        if not result:
            return False

        payment = result.data
        self._safe_notify(
            recipient_id=order.customer_id,
            notification_type=NotificationType.PAYMENT_REMINDER,
            title="Final payment due",
            message=(
                f"Your fitting for order {order.order_number} is approved. "
                f"Please pay the final GHS {payment.amount}."
            ),
            data={
                "order_id": str(order.id),
                "stage": EscrowStage.FINAL,
                "amount": str(payment.amount),
                "payment_url": payment.payment_url,
            },
            priority="high",
        )
        return True

    # =========================================================================
    # Milestone Events
    # =========================================================================

    def on_milestone_resolved(
        self,
        order_id: UUID | str,
        milestone_type: str,
        action: str,
        actor=None,
    ) -> SettlementOutcome:
        """
        Apply the settlement consequences of a milestone resolution.

        REJECTED records the rejection time. An approved fitting
        milestone completes the fitting, releases the fitting bucket and
        requests the final payment. An approved final milestone releases
        the final bucket and completes the order. Other milestones move
        no money.

        Raises:
            InvalidMilestoneActionError: Unknown action
            OrderNotFoundError: No such order
            EscrowFrozenError / StageMismatchError / InsufficientBalanceError:
                Propagated from the escrow tracker
        """
        if action == MilestoneAction.REJECTED:
            return self._record_rejection(order_id)
        if action not in APPROVING_ACTIONS:
            raise InvalidMilestoneActionError(
                f"Unknown milestone action: {action}", details={"action": action}
            )

        if milestone_type == fitting_milestone():
            return self._settle_fitting(order_id, actor)
        if milestone_type == final_milestone():
            return self._settle_final(order_id, actor)

        order = self._get_order(order_id)
        self.get_logger().debug(
            "Milestone approval moves no escrow",
            extra={"order_id": str(order_id), "milestone": milestone_type},
        )
        return SettlementOutcome(order_id=str(order.id), order_status=order.status)

    def _record_rejection(self, order_id: UUID | str) -> SettlementOutcome:
        now = timezone.now()
        updated = Order.objects.filter(pk=order_id).update(
            last_rejection_at=now, updated_at=now
        )
        if not updated:
            raise OrderNotFoundError(
                f"Order {order_id} not found", details={"order_id": str(order_id)}
            )
        order = self._get_order(order_id)
        self.get_logger().info(
            "Milestone rejection recorded", extra={"order_id": str(order_id)}
        )
        return SettlementOutcome(order_id=str(order.id), order_status=order.status)

    def _settle_fitting(self, order_id: UUID | str, actor) -> SettlementOutcome:
        with transaction.atomic():
            order = self._get_order(order_id, for_update=True)
            if can_proceed(order.complete_fitting):
                order.complete_fitting()
                order.save(update_fields=["status", "updated_at"])
            account = self._release_if_current(order, EscrowStage.FITTING, actor)

        outcome = SettlementOutcome(
            order_id=str(order.id),
            order_status=order.status,
            escrow_advanced=account is not None,
            released_amount=account.fitting_amount if account else None,
        )

        outcome.payment_requested = self.request_final_payment(order)
        return outcome

    def _settle_final(self, order_id: UUID | str, actor) -> SettlementOutcome:
        with transaction.atomic():
            order = self._get_order(order_id, for_update=True)
            account = self._release_if_current(order, EscrowStage.FINAL, actor)
            if can_proceed(order.complete):
                order.complete()
                order.save(update_fields=["status", "completed_at", "updated_at"])

        outcome = SettlementOutcome(
            order_id=str(order.id),
            order_status=order.status,
            escrow_advanced=account is not None,
            released_amount=account.final_amount if account else None,
        )

        if account is not None:
            net = calculate_commission(account.final_amount).net_amount
            self._safe_notify(
                recipient_id=order.tailor_id,
                notification_type=NotificationType.ORDER_COMPLETED,
                title="Order completed",
                message=(
                    f"Order {order.order_number} is complete. "
                    f"GHS {net} has been released to you."
                ),
                data={
                    "order_id": str(order.id),
                    "released_amount": str(account.final_amount),
                    "net_amount": str(net),
                },
                priority="high",
            )
        return outcome

    # =========================================================================
    # Payment Events
    # =========================================================================

    def on_payment_confirmed(
        self,
        transaction_id: str,
        stage: str,
        order_id: UUID | str | None = None,
    ) -> SettlementOutcome:
        """
        Advance the order after the provider confirms a stage payment.

        DEPOSIT marks the order DEPOSIT_PAID and releases the deposit
        bucket. FITTING moves FITTING_COMPLETED to FINAL_INSPECTION.
        FINAL completes a DELIVERED order. Confirmations that arrive
        after the order has moved on are accepted as no-ops. A deposit for a
        cancelled or disputed order only records the payment time.
        """
        stage = str(stage).upper()
        if stage not in BUCKET_STAGES:
            raise ConflictError(
                f"Unknown payment stage: {stage}",
                error_code="INVALID_PAYMENT_STAGE",
                details={"transaction_id": transaction_id, "stage": stage},
            )
        if order_id is None:
            payment = (
                PaymentTransaction.objects.filter(transaction_id=transaction_id)
                .only("order_id")
                .first()
            )
            if payment is None:
                raise OrderNotFoundError(
                    f"No order for transaction {transaction_id}",
                    details={"transaction_id": transaction_id},
                )
            order_id = payment.order_id

        account = None
        with transaction.atomic():
            order = self._get_order(order_id, for_update=True)
            previous_status = order.status
            self.tracker.mark_stage_paid(order.id, stage)

            paid_field = f"{stage.lower()}_paid_at"
            if getattr(order, paid_field) is None:
                setattr(order, paid_field, timezone.now())

            if stage == EscrowStage.DEPOSIT:
                if can_proceed(order.mark_deposit_paid):
                    order.mark_deposit_paid()
                order.save(update_fields=["status", paid_field, "updated_at"])
                if order.status in DEPOSIT_RELEASE_STATUSES:
                    account = self._release_if_current(order, EscrowStage.DEPOSIT, None)
                else:
                    self.get_logger().warning(
                        "Deposit confirmed for inactive order, escrow left untouched",
                        extra={"order_id": str(order.id), "status": order.status},
                    )
            elif stage == EscrowStage.FITTING:
                if can_proceed(order.begin_final_inspection):
                    order.begin_final_inspection()
                order.save(update_fields=["status", paid_field, "updated_at"])
            else:
                update_fields = ["status", paid_field, "updated_at"]
                if order.status == OrderStatus.DELIVERED:
                    order.complete()
                    update_fields.append("completed_at")
                order.save(update_fields=update_fields)

        transitioned = order.status != previous_status
        self.get_logger().info(
            "Payment confirmation applied" if transitioned else "Payment confirmation was a no-op",
            extra={
                "order_id": str(order.id),
                "transaction_id": transaction_id,
                "stage": stage,
                "status": order.status,
            },
        )

        if transitioned or account is not None:
            self._safe_notify(
                recipient_id=order.tailor_id,
                notification_type=NotificationType.PAYMENT_RECEIVED,
                title=f"{stage.title()} payment received",
                message=(
                    f"The customer paid the {stage.lower()} for order "
                    f"{order.order_number}."
                ),
                data={"order_id": str(order.id), "stage": stage},
            )

        return SettlementOutcome(
            order_id=str(order.id),
            order_status=order.status,
            escrow_advanced=account is not None,
            released_amount=account.deposit_amount if account else None,
        )

    # =========================================================================
    # Recovery
    # =========================================================================

    def redrive(self, milestone_id: UUID | str) -> SettlementOutcome:
        """
        Re-apply settlement for an already resolved milestone.

        Used after a crash between milestone resolution and escrow
        release. Safe to call repeatedly.
        """
        try:
            milestone = OrderMilestone.objects.get(pk=milestone_id)
        except (OrderMilestone.DoesNotExist, DjangoValidationError):
            raise MilestoneNotFoundError(
                f"Milestone {milestone_id} not found",
                details={"milestone_id": str(milestone_id)},
            )

        action = _APPROVED_STATUS_ACTIONS.get(milestone.approval_status)
        if action is None:
            raise ConflictError(
                "Only resolved milestones can be re-driven",
                error_code="MILESTONE_NOT_RESOLVED",
                details={
                    "milestone_id": str(milestone.id),
                    "approval_status": milestone.approval_status,
                },
            )

        self.get_logger().info(
            "Re-driving milestone settlement",
            extra={"milestone_id": str(milestone.id), "action": action},
        )
        return self.on_milestone_resolved(
            milestone.order_id, milestone.milestone, action, actor=milestone.reviewed_by
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _release_if_current(
        self, order: Order, stage: str, actor
    ) -> EscrowAccount | None:
        """
        Release the bucket of stage, or None if the account already moved on.

        A StageMismatchError is re-raised when the account has not yet
        reached stage: that is a sequencing error, not a late event.
        """
        try:
            return self.tracker.release_stage(
                order.id, stage, actor=actor, notes=f"{stage} released"
            )
        except StageMismatchError:
            current = self.tracker.get_account(order.id).stage
            if STAGE_ORDER.index(current) > STAGE_ORDER.index(stage):
                self.get_logger().info(
                    f"Escrow already past {stage}, release skipped",
                    extra={"order_id": str(order.id), "current_stage": current},
                )
                return None
            raise

    @staticmethod
    def _needs_payment(order: Order, stage: str) -> bool:
        return not PaymentTransaction.objects.filter(
            order=order,
            escrow_stage=stage,
            status__in=[PaymentStatus.PENDING, PaymentStatus.SUCCESS],
        ).exists()

    def _safe_notify(self, **kwargs) -> None:
        try:
            self.notifier.send(**kwargs)
        except Exception as e:
            self.get_logger().error(
                f"Notification failed: {type(e).__name__}",
                extra={
                    "recipient_id": str(kwargs.get("recipient_id")),
                    "notification_type": str(kwargs.get("notification_type")),
                },
                exc_info=True,
            )

    @staticmethod
    def _get_order(order_id: UUID | str, for_update: bool = False) -> Order:
        queryset = Order.objects.select_for_update() if for_update else Order.objects
        try:
            return queryset.get(pk=order_id)
        except (Order.DoesNotExist, DjangoValidationError):
            raise OrderNotFoundError(
                f"Order {order_id} not found", details={"order_id": str(order_id)}
            )
