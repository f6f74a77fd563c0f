"""
Auto-approval sweep for milestones past their review deadline.

Finds PENDING milestones whose auto_approval_deadline has passed,
resolves each as AUTO_APPROVED on behalf of the system, then asks the
orchestrator to release the matching escrow bucket.

Tasks:
- auto_approve_overdue_milestones: Periodic task (celery-beat, every
  15 minutes) wrapping AutoApprovalSweep.run()

Guarantees:
    - Each milestone is processed independently; one failure never
      aborts the batch
    - Overlapping runs are safe: the loser of a resolution race gets
      AlreadyResolvedError and the milestone is skipped
    - A failed release does not undo the auto-approval; it is recorded
      in errors and retried by recover_stalled_settlements

Usage:
    from payments.workers.auto_approval import AutoApprovalSweep

    result = AutoApprovalSweep().run()
    result.auto_approved  # 3
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from core.exceptions import BaseApplicationError
from orders.exceptions import AlreadyResolvedError
from orders.services import (
    AUTO_APPROVAL_COMMENT,
    MilestoneApprovalService,
    OrderStatusOrchestrator,
)
from orders.state_machines import MilestoneAction

if TYPE_CHECKING:
    from datetime import datetime

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Maximum milestones to process per run (prevents long-running sweeps)
DEFAULT_BATCH_SIZE = 100


@dataclass
class AutoApprovalResult:
    """
    Aggregate outcome of one sweep run.

    Attributes:
        processed: Overdue milestones examined
        auto_approved: Milestones this run moved to AUTO_APPROVED
        failed: Milestones whose resolution failed
        approved_milestone_ids: Ids of the auto-approved milestones
        errors: One human-readable entry per failure, resolution or release
    """

    processed: int = 0
    auto_approved: int = 0
    failed: int = 0
    approved_milestone_ids: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "auto_approved": self.auto_approved,
            "failed": self.failed,
            "approved_milestone_ids": list(self.approved_milestone_ids),
            "errors": list(self.errors),
        }


class AutoApprovalSweep:
    """
    One pass over overdue milestones.

    The milestone service and orchestrator are injected so a test can
    force a failure on a single milestone.
    """

    def __init__(
        self,
        milestones: MilestoneApprovalService | None = None,
        orchestrator: OrderStatusOrchestrator | None = None,
        batch_size: int | None = None,
    ):
        self.milestones = milestones or MilestoneApprovalService()
        self.orchestrator = orchestrator or OrderStatusOrchestrator()
        self.batch_size = batch_size or getattr(
            settings, "AUTO_APPROVAL_BATCH_SIZE", DEFAULT_BATCH_SIZE
        )

    def run(self, now: datetime | None = None) -> AutoApprovalResult:
        now = now or timezone.now()
        result = AutoApprovalResult()
        overdue = self.milestones.get_overdue(now=now, limit=self.batch_size)

        logger.info(
            "Starting auto-approval sweep",
            extra={"overdue_count": len(overdue), "batch_size": self.batch_size},
        )

        for milestone in overdue:
            result.processed += 1
            milestone_id = str(milestone.id)
            log_context = {
                "milestone_id": milestone_id,
                "order_id": str(milestone.order_id),
                "milestone": milestone.milestone,
                "deadline": milestone.auto_approval_deadline.isoformat(),
            }

            try:
                self.milestones.resolve(
                    milestone.id,
                    MilestoneAction.AUTO_APPROVED,
                    actor=None,
                    comment=AUTO_APPROVAL_COMMENT,
                )
            except AlreadyResolvedError:
                logger.info(
                    "Milestone already resolved, skipping", extra=log_context
                )
                continue
            except Exception as e:
                result.failed += 1
                result.errors.append(
                    f"Milestone {milestone_id}: auto-approval failed: {e}"
                )
                logger.error(
                    f"Auto-approval failed: {type(e).__name__}",
                    extra=log_context,
                    exc_info=not isinstance(e, BaseApplicationError),
                )
                continue

            result.auto_approved += 1
            result.approved_milestone_ids.append(milestone_id)

            try:
                self.orchestrator.on_milestone_resolved(
                    milestone.order_id,
                    milestone.milestone,
                    MilestoneAction.AUTO_APPROVED,
                )
            except Exception as e:
                result.errors.append(
                    f"Milestone {milestone_id}: payment release failed: {e}"
                )
                logger.error(
                    f"Release after auto-approval failed: {type(e).__name__}",
                    extra=log_context,
                    exc_info=not isinstance(e, BaseApplicationError),
                )

        logger.info(
            f"Auto-approval sweep complete: {result.auto_approved} approved, "
            f"{result.failed} failed",
            extra=result.to_dict(),
        )
        return result


# =============================================================================
# Periodic Task
# =============================================================================


@shared_task(bind=True, acks_late=True)
def auto_approve_overdue_milestones(self) -> dict:
    """
    Run the auto-approval sweep (scheduled by celery-beat).

    Returns:
        AutoApprovalResult.to_dict()
    """
    return AutoApprovalSweep().run().to_dict()
