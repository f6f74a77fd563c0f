"""
Payment services.

- EscrowStageTracker: Owns escrow stage, buckets and balance
"""

from payments.services.escrow_service import (
    EscrowStageTracker,
    stage_split_from_settings,
)

__all__ = [
    "EscrowStageTracker",
    "stage_split_from_settings",
]
