"""
Settlement policy settings with their defaults.

The deposit/fitting/final split lives with the escrow tracker
(payments.services.escrow_service); the milestone side of the policy
lives here.
"""

from __future__ import annotations

from datetime import timedelta

from django.conf import settings

from orders.state_machines import MilestoneType


def auto_approval_window() -> timedelta:
    return timedelta(hours=getattr(settings, "MILESTONE_AUTO_APPROVAL_HOURS", 48))


def fitting_milestone() -> str:
    """Milestone whose approval releases the fitting bucket."""
    return getattr(settings, "ESCROW_FITTING_MILESTONE", MilestoneType.FITTING_READY)


def final_milestone() -> str:
    """Milestone whose approval releases the final bucket and completes the order."""
    return getattr(
        settings, "ESCROW_FINAL_MILESTONE", MilestoneType.READY_FOR_DELIVERY
    )
