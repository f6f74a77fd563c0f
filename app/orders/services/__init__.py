"""
Order services.

Usage:
    from orders.services import MilestoneApprovalService, OrderStatusOrchestrator
"""

from orders.services.milestone_service import (
    AUTO_APPROVAL_COMMENT,
    MilestoneApprovalService,
    urgency_for,
)
from orders.services.order_orchestrator import (
    OrderStatusOrchestrator,
    SettlementOutcome,
)

__all__ = [
    "AUTO_APPROVAL_COMMENT",
    "MilestoneApprovalService",
    "OrderStatusOrchestrator",
    "SettlementOutcome",
    "urgency_for",
]
