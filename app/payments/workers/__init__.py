"""
Workers for async settlement processing.

This module contains Celery tasks for background settlement operations:
- AutoApprovalSweep: Auto-approves overdue milestones and releases escrow
- SettlementRecovery: Retries releases and final payment requests that stalled

Usage:
    from payments.workers import auto_approve_overdue_milestones

    # Trigger a sweep outside the beat schedule
    auto_approve_overdue_milestones.delay()
"""

from payments.workers.auto_approval import (
    AutoApprovalResult,
    AutoApprovalSweep,
    auto_approve_overdue_milestones,
)
from payments.workers.settlement_recovery import (
    SettlementRecovery,
    SettlementRecoveryResult,
    recover_stalled_settlements,
)

__all__ = [
    "AutoApprovalResult",
    "AutoApprovalSweep",
    "auto_approve_overdue_milestones",
    "SettlementRecovery",
    "SettlementRecoveryResult",
    "recover_stalled_settlements",
]
