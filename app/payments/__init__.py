"""
Payments app for escrow settlement.

This app handles:
- Commission calculation (payments.commission)
- Escrow stage tracking (payments.services.EscrowStageTracker)
- Hubtel payment requests and callbacks
- Webhook idempotency (payments.webhooks.WebhookIdempotencyGuard)
- Auto-approval of overdue milestones (payments.workers)

Related apps:
    - orders: Orders and milestones whose settlement this app executes
    - notifications: Payment and milestone notifications

Usage:
    from payments.commission import calculate_commission
    from payments.services import EscrowStageTracker

    breakdown = calculate_commission(Decimal("100.00"))
    status = EscrowStageTracker().get_status(order_id)
"""
