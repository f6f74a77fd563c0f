"""
State enums for escrow and payment models.
"""

from payments.state_machines.states import (
    BUCKET_STAGES,
    ESCROW_TRANSITIONS,
    RELEASE_TRANSACTION_TYPES,
    EscrowStage,
    EscrowTransactionType,
    PaymentStatus,
    WebhookEventStatus,
)

__all__ = [
    "BUCKET_STAGES",
    "ESCROW_TRANSITIONS",
    "RELEASE_TRANSACTION_TYPES",
    "EscrowStage",
    "EscrowTransactionType",
    "PaymentStatus",
    "WebhookEventStatus",
]
