"""
Order domain models.

- Order: Customer-tailor order with FSM-managed workflow status
- OrderMilestone: Tailor-reported checkpoint with FSM-managed approval
- MilestoneApproval: Append-only audit of milestone resolutions
"""

from orders.models.milestone import MilestoneApproval, OrderMilestone
from orders.models.order import Order

__all__ = [
    "MilestoneApproval",
    "Order",
    "OrderMilestone",
]
