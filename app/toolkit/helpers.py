"""
PII helpers for log output.

Usage:
    from toolkit.helpers import mask_phone

    logger.info("Initiating payment", extra={"phone": mask_phone(phone)})
"""

from __future__ import annotations

import re


def mask_phone(phone: str) -> str:
    """
    Mask phone number for logs.

    Keeps the country code and last 2 digits visible.

    Example:
        mask_phone("+233241234567")  # "+233*******67"
    """
    digits_only = re.sub(r"[^\d+]", "", phone or "")

    if len(digits_only) < 6:
        return "***"

    prefix = digits_only[:4] if digits_only.startswith("+") else digits_only[:3]
    hidden = len(digits_only) - len(prefix) - 2
    return prefix + "*" * hidden + digits_only[-2:]
