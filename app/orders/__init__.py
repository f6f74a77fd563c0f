"""
Orders app: garment orders, tailor milestones and their settlement.

Components:
    - models: Order, OrderMilestone, MilestoneApproval
    - services.MilestoneApprovalService: milestone approval lifecycle
    - services.OrderStatusOrchestrator: maps milestone and payment
      events onto order status and escrow releases
"""
