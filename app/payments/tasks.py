"""
Celery tasks for payment processing.

This module provides periodic tasks for:
- Reconciling escrow accounts against their release history

The milestone auto-approval sweep lives in payments.workers.auto_approval
and is re-exported at the bottom of this module.

Usage:
    from payments.tasks import reconcile_escrow_accounts

    # Reconcile everything still holding funds (typically via celery-beat)
    reconcile_escrow_accounts.delay()

    # Include fully released accounts
    reconcile_escrow_accounts.delay(include_released=True)
"""

from __future__ import annotations

import logging

from celery import shared_task

from core.exceptions import BaseApplicationError
from payments.models import EscrowAccount
from payments.services import EscrowStageTracker
from payments.state_machines import EscrowStage

logger = logging.getLogger(__name__)


# =============================================================================
# Escrow Reconciliation
# =============================================================================


@shared_task(bind=True, acks_late=True)
def reconcile_escrow_accounts(self, include_released: bool = False) -> dict:
    """
    Run EscrowStageTracker.validate over escrow accounts.

    Advisory only: mismatches are logged by the tracker on the
    payments.reconciliation logger and counted here, never corrected.

    Args:
        include_released: Also check accounts that have released everything

    Returns:
        Dict with checked, invalid and invalid_order_ids
    """
    tracker = EscrowStageTracker()
    accounts = EscrowAccount.objects.all()
    if not include_released:
        accounts = accounts.exclude(stage=EscrowStage.RELEASED)

    checked = 0
    invalid_order_ids: list[str] = []
    for order_id in accounts.values_list("order_id", flat=True).iterator():
        checked += 1
        try:
            report = tracker.validate(order_id)
        except BaseApplicationError as e:
            # Account deleted between listing and validation
            logger.warning(
                f"Escrow reconciliation skipped account: {e.message}",
                extra={"order_id": str(order_id)},
            )
            continue
        if not report["is_valid"]:
            invalid_order_ids.append(str(order_id))

    log = logger.warning if invalid_order_ids else logger.info
    log(
        "Escrow reconciliation finished",
        extra={"checked": checked, "invalid": len(invalid_order_ids)},
    )
    return {
        "checked": checked,
        "invalid": len(invalid_order_ids),
        "invalid_order_ids": invalid_order_ids,
    }


# =============================================================================
# Re-exported Worker Tasks
# =============================================================================
# These tasks are defined in payments.workers but re-exported here for
# convenience and to ensure Celery autodiscover finds them.

from payments.workers import (  # noqa: E402, F401
    auto_approve_overdue_milestones,
    recover_stalled_settlements,
)
