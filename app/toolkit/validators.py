"""
Validators for customer contact details.

Mobile-money payment initiation needs a Ghanaian number that maps to a
network operator, so the order's customer phone is validated and
normalised to +233XXXXXXXXX before it reaches the payment gateway.

Usage:
    from toolkit.validators import normalize_ghana_phone, validate_ghana_phone

    class Order(models.Model):
        customer_phone = models.CharField(validators=[validate_ghana_phone])

    number, network = normalize_ghana_phone("0241234567")
    # ("+233241234567", "MTN")
"""

from __future__ import annotations

import re

from django.core.exceptions import ValidationError

NETWORK_PREFIXES = {
    "MTN": ("24", "54", "55", "59"),
    "VODAFONE": ("20", "50"),
    "AIRTELTIGO": ("27", "57", "26", "56"),
}


def normalize_ghana_phone(value: str) -> tuple[str, str]:
    """
    Normalise a Ghanaian mobile number and detect its network.

    Accepts +233XXXXXXXXX, 0XXXXXXXXX and the bare 9-digit form.

    Returns:
        Tuple of (E.164 number, network name)

    Raises:
        ValidationError: If the number is malformed or the prefix unknown
    """
    cleaned = re.sub(r"[\s\-\(\)]", "", value or "")

    if cleaned.startswith("+233"):
        local = cleaned[4:]
    elif cleaned.startswith("0"):
        local = cleaned[1:]
    else:
        local = cleaned

    if not re.fullmatch(r"\d{9}", local):
        raise ValidationError(f"Invalid Ghana phone number: {value}")

    for network, prefixes in NETWORK_PREFIXES.items():
        if local[:2] in prefixes:
            return f"+233{local}", network

    raise ValidationError(f"Invalid Ghana phone number: {value}")


def validate_ghana_phone(value: str):
    """Django field validator wrapper around normalize_ghana_phone."""
    normalize_ghana_phone(value)
