"""
Recovery for settlements that stopped half way.

A milestone approval commits before its escrow release, and a fitting
release commits before the final payment request. When the second step
fails (gateway outage, crash, frozen escrow since lifted) nothing retries
it on the request path. This worker finds both cases and re-applies
them through the orchestrator.

Tasks:
- recover_stalled_settlements: Periodic task (celery-beat, every 30
  minutes) wrapping SettlementRecovery.run()

Stalled cases:
    - Approved fitting milestone while escrow is still at FITTING
    - Approved final milestone while escrow is still at FINAL
    - Fitting released but no Pending or Success FINAL payment request

Guarantees:
    - Cases younger than SETTLEMENT_RECOVERY_GRACE_MINUTES are skipped so
      an in-flight request finishes its own settlement
    - Disputed, cancelled and completed orders are never touched
    - Re-driving is idempotent; a lost race is a no-op

Usage:
    from payments.workers.settlement_recovery import SettlementRecovery

    result = SettlementRecovery().run()
    result.redriven  # 1
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING

from celery import shared_task
from django.conf import settings
from django.db.models import Exists, OuterRef, Q
from django.utils import timezone

from core.exceptions import BaseApplicationError
from orders.conf import final_milestone, fitting_milestone
from orders.models import OrderMilestone
from orders.services import OrderStatusOrchestrator
from orders.state_machines import MilestoneApprovalStatus, OrderStatus
from payments.models import EscrowAccount, PaymentTransaction
from payments.state_machines import EscrowStage, PaymentStatus

if TYPE_CHECKING:
    from datetime import datetime

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

DEFAULT_BATCH_SIZE = 100
DEFAULT_GRACE_MINUTES = 10

# Orders whose escrow must not be moved by recovery
SETTLED_OR_FROZEN_STATUSES = (
    OrderStatus.CANCELLED,
    OrderStatus.DISPUTED,
    OrderStatus.COMPLETED,
)


@dataclass
class SettlementRecoveryResult:
    """
    Aggregate outcome of one recovery run.

    Attributes:
        redriven: Milestones whose settlement was re-applied
        payments_requested: Final payment requests created
        failed: Cases that failed again
        redriven_milestone_ids: Ids of the re-driven milestones
        errors: One human-readable entry per failure
    """

    redriven: int = 0
    payments_requested: int = 0
    failed: int = 0
    redriven_milestone_ids: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "redriven": self.redriven,
            "payments_requested": self.payments_requested,
            "failed": self.failed,
            "redriven_milestone_ids": list(self.redriven_milestone_ids),
            "errors": list(self.errors),
        }


class SettlementRecovery:
    """One pass over stalled escrow releases and final payment requests."""

    def __init__(
        self,
        orchestrator: OrderStatusOrchestrator | None = None,
        batch_size: int | None = None,
        grace: timedelta | None = None,
    ):
        self.orchestrator = orchestrator or OrderStatusOrchestrator()
        self.batch_size = batch_size or getattr(
            settings, "SETTLEMENT_RECOVERY_BATCH_SIZE", DEFAULT_BATCH_SIZE
        )
        if grace is None:
            grace = timedelta(
                minutes=getattr(
                    settings, "SETTLEMENT_RECOVERY_GRACE_MINUTES", DEFAULT_GRACE_MINUTES
                )
            )
        self.grace = grace

    def run(self, now: datetime | None = None) -> SettlementRecoveryResult:
        cutoff = (now or timezone.now()) - self.grace
        result = SettlementRecoveryResult()

        self._redrive_stalled_releases(cutoff, result)
        self._request_missing_final_payments(cutoff, result)

        log = logger.warning if result.failed else logger.info
        log(
            f"Settlement recovery complete: {result.redriven} re-driven, "
            f"{result.payments_requested} payments requested, {result.failed} failed",
            extra=result.to_dict(),
        )
        return result

    def stalled_milestones(self, cutoff: datetime) -> list[OrderMilestone]:
        """Approved release milestones whose bucket is still held."""
        return list(
            OrderMilestone.objects.filter(
                approval_status__in=[
                    MilestoneApprovalStatus.APPROVED,
                    MilestoneApprovalStatus.AUTO_APPROVED,
                ],
                customer_reviewed_at__lte=cutoff,
            )
            .filter(
                Q(milestone=fitting_milestone(), order__escrow__stage=EscrowStage.FITTING)
                | Q(milestone=final_milestone(), order__escrow__stage=EscrowStage.FINAL)
            )
            .exclude(order__status__in=SETTLED_OR_FROZEN_STATUSES)
            .select_related("order")
            .order_by("customer_reviewed_at")[: self.batch_size]
        )

    def unbilled_accounts(self, cutoff: datetime) -> list[EscrowAccount]:
        """Accounts waiting on a final payment nobody has requested."""
        open_request = PaymentTransaction.objects.filter(
            order_id=OuterRef("order_id"),
            escrow_stage=EscrowStage.FINAL,
            status__in=[PaymentStatus.PENDING, PaymentStatus.SUCCESS],
        )
        return list(
            EscrowAccount.objects.filter(
                stage=EscrowStage.FINAL,
                fitting_released_at__lte=cutoff,
                final_paid_at__isnull=True,
            )
            .exclude(order__status__in=SETTLED_OR_FROZEN_STATUSES)
            .exclude(Exists(open_request))
            .select_related("order")
            .order_by("fitting_released_at")[: self.batch_size]
        )

    def _redrive_stalled_releases(
        self, cutoff: datetime, result: SettlementRecoveryResult
    ) -> None:
        for milestone in self.stalled_milestones(cutoff):
            milestone_id = str(milestone.id)
            log_context = {
                "milestone_id": milestone_id,
                "order_id": str(milestone.order_id),
                "milestone": milestone.milestone,
            }
            try:
                outcome = self.orchestrator.redrive(milestone.id)
            except Exception as e:
                result.failed += 1
                result.errors.append(f"Milestone {milestone_id}: re-drive failed: {e}")
                logger.error(
                    f"Settlement re-drive failed: {type(e).__name__}",
                    extra=log_context,
                    exc_info=not isinstance(e, BaseApplicationError),
                )
                continue

            result.redriven += 1
            result.redriven_milestone_ids.append(milestone_id)
            if outcome.payment_requested:
                result.payments_requested += 1
            logger.info("Stalled settlement re-driven", extra=log_context)

    def _request_missing_final_payments(
        self, cutoff: datetime, result: SettlementRecoveryResult
    ) -> None:
        for account in self.unbilled_accounts(cutoff):
            order = account.order
            if self.orchestrator.request_final_payment(order):
                result.payments_requested += 1
                logger.info(
                    "Final payment re-requested", extra={"order_id": str(order.id)}
                )
            else:
                result.failed += 1
                result.errors.append(f"Order {order.id}: final payment request failed")


# =============================================================================
# Periodic Task
# =============================================================================


@shared_task(bind=True, acks_late=True)
def recover_stalled_settlements(self) -> dict:
    """
    Run settlement recovery (scheduled by celery-beat).

    Returns:
        SettlementRecoveryResult.to_dict()
    """
    return SettlementRecovery().run().to_dict()
