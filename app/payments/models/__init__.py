"""
Payment domain models.

- EscrowAccount: Per-order three-bucket escrow state
- EscrowTransaction: Append-only escrow stage history
- PaymentTransaction: Provider-side stage payment attempts
- WebhookEvent: Durable (transaction_id, status) webhook dedup record
"""

from payments.models.escrow import EscrowAccount, EscrowTransaction
from payments.models.payment_transaction import PaymentTransaction, parse_reference
from payments.models.webhook_event import WebhookEvent

__all__ = [
    "EscrowAccount",
    "EscrowTransaction",
    "PaymentTransaction",
    "WebhookEvent",
    "parse_reference",
]
