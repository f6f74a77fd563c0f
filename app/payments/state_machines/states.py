"""
State enums for payment models.

State Machines Overview:

EscrowStage (forward-only, one bucket released per arrow):
    DEPOSIT → FITTING → FINAL → RELEASED
    Any stage → any stage only via the dispute-resolution override

PaymentStatus (provider-reported, not a state machine):
    Pending, Success, Failed, Cancelled

WebhookEventStatus:
    PROCESSED: payload matched a transaction and was applied
    UNMATCHED: no transaction or reference matched; recorded for audit
"""

from django.db import models


class EscrowStage(models.TextChoices):
    """
    Escrow holding phase of an order.

    Terminal state: RELEASED
    """

    DEPOSIT = "DEPOSIT", "Deposit"
    FITTING = "FITTING", "Fitting"
    FINAL = "FINAL", "Final"
    RELEASED = "RELEASED", "Released"


# Forward transition table: from-stage -> to-stage
ESCROW_TRANSITIONS = {
    EscrowStage.DEPOSIT: EscrowStage.FITTING,
    EscrowStage.FITTING: EscrowStage.FINAL,
    EscrowStage.FINAL: EscrowStage.RELEASED,
}

# Stages that hold a bucket (RELEASED holds nothing)
BUCKET_STAGES = (EscrowStage.DEPOSIT, EscrowStage.FITTING, EscrowStage.FINAL)


class EscrowTransactionType(models.TextChoices):
    DEPOSIT_RELEASE = "DEPOSIT_RELEASE", "Deposit Release"
    FITTING_RELEASE = "FITTING_RELEASE", "Fitting Release"
    FINAL_RELEASE = "FINAL_RELEASE", "Final Release"
    OVERRIDE = "OVERRIDE", "Dispute Override"


RELEASE_TRANSACTION_TYPES = {
    EscrowStage.DEPOSIT: EscrowTransactionType.DEPOSIT_RELEASE,
    EscrowStage.FITTING: EscrowTransactionType.FITTING_RELEASE,
    EscrowStage.FINAL: EscrowTransactionType.FINAL_RELEASE,
}


class PaymentStatus(models.TextChoices):
    """Status strings as reported by the payment provider."""

    PENDING = "Pending", "Pending"
    SUCCESS = "Success", "Success"
    FAILED = "Failed", "Failed"
    CANCELLED = "Cancelled", "Cancelled"


class WebhookEventStatus(models.TextChoices):
    PROCESSED = "processed", "Processed"
    UNMATCHED = "unmatched", "Unmatched"
