"""
Platform commission calculation.

Pure functions over Decimal amounts: no database access, no settings
reads beyond the default rate, no side effects. Every escrow release
computes its tailor net amount through calculate_commission().

Rounding:
    Commission and net amounts are each rounded half-up to 2 decimal
    places independently, so commission + net may differ from gross by
    at most 0.01.

Usage:
    from decimal import Decimal
    from payments.commission import calculate_commission

    breakdown = calculate_commission(Decimal("100.00"), Decimal("0.20"))
    breakdown.commission_amount  # Decimal("20.00")
    breakdown.net_amount         # Decimal("80.00")

    adjustment = calculate_dispute_commission_adjustment(
        Decimal("250.00"), Decimal("200.00")
    )
    adjustment.adjustment_type   # "REFUND"
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import TYPE_CHECKING

from django.conf import settings

from payments.exceptions import InvalidAmountError, InvalidRateError

if TYPE_CHECKING:
    from collections.abc import Iterable
    from typing import Any

TWO_PLACES = Decimal("0.01")

PLATFORM_COMMISSION = "PLATFORM_COMMISSION"
PROCESSING_FEE = "PROCESSING_FEE"

ADJUSTMENT_REFUND = "REFUND"
ADJUSTMENT_ADDITIONAL = "ADDITIONAL"


# =============================================================================
# Result Types
# =============================================================================


@dataclass(frozen=True)
class CommissionLineItem:
    """One typed deduction in a commission breakdown."""

    type: str
    amount: Decimal
    percentage: Decimal
    description: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "amount": str(self.amount),
            "percentage": str(self.percentage),
            "description": self.description,
        }


@dataclass(frozen=True)
class CommissionBreakdown:
    """
    Computed commission for a gross amount.

    Attributes:
        gross_amount: Amount the commission was computed on
        commission_rate: Platform rate in [0, 1]
        commission_amount: Total deductions (platform commission plus fees)
        net_amount: What the tailor receives
        breakdown: Typed line items making up commission_amount
    """

    gross_amount: Decimal
    commission_rate: Decimal
    commission_amount: Decimal
    net_amount: Decimal
    breakdown: list[CommissionLineItem] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "gross_amount": str(self.gross_amount),
            "commission_rate": str(self.commission_rate),
            "commission_amount": str(self.commission_amount),
            "net_amount": str(self.net_amount),
            "breakdown": [item.to_dict() for item in self.breakdown],
        }


@dataclass(frozen=True)
class CommissionAdjustment:
    """Commission delta after a dispute changed the order amount."""

    original_commission: Decimal
    new_commission: Decimal
    adjustment_amount: Decimal
    adjustment_type: str


# =============================================================================
# Helpers
# =============================================================================


def _quantize(value: Decimal) -> Decimal:
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def _to_decimal(value: Any, error_class: type[Exception], name: str) -> Decimal:
    try:
        return value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise error_class(
            f"{name} must be a number",
            details={name: str(value)},
        )


def _check_amount(gross: Any) -> Decimal:
    amount = _to_decimal(gross, InvalidAmountError, "gross_amount")
    if amount < 0:
        raise InvalidAmountError(
            "Gross amount cannot be negative",
            details={"gross_amount": str(amount)},
        )
    return amount


def _check_rate(rate: Any, name: str = "commission_rate") -> Decimal:
    value = _to_decimal(rate, InvalidRateError, name)
    if value < 0 or value > 1:
        raise InvalidRateError(
            f"{name} must be between 0 and 1",
            details={name: str(value)},
        )
    return value


def default_commission_rate() -> Decimal:
    """Platform commission rate from settings (defaults to 20%)."""
    return Decimal(str(getattr(settings, "PLATFORM_COMMISSION_RATE", "0.20")))


def _percentage(rate: Decimal) -> Decimal:
    return (rate * 100).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)


# =============================================================================
# Calculations
# =============================================================================


def calculate_commission(
    gross_amount: Any, rate: Any = None
) -> CommissionBreakdown:
    """
    Split a gross amount into platform commission and tailor net.

    Args:
        gross_amount: Non-negative amount
        rate: Commission rate in [0, 1]; platform default when None

    Raises:
        InvalidAmountError: Negative or non-numeric gross amount
        InvalidRateError: Rate outside [0, 1]
    """
    gross = _check_amount(gross_amount)
    commission_rate = _check_rate(
        default_commission_rate() if rate is None else rate
    )

    commission = _quantize(gross * commission_rate)
    net = _quantize(gross - gross * commission_rate)

    return CommissionBreakdown(
        gross_amount=gross,
        commission_rate=commission_rate,
        commission_amount=commission,
        net_amount=net,
        breakdown=[
            CommissionLineItem(
                type=PLATFORM_COMMISSION,
                amount=commission,
                percentage=_percentage(commission_rate),
                description=(
                    f"Platform commission ({_percentage(commission_rate)}%)"
                ),
            )
        ],
    )


def calculate_commission_with_fees(
    gross_amount: Any,
    rate: Any = None,
    processing_fee_rate: Any = None,
) -> CommissionBreakdown:
    """
    Commission plus an estimated payment-processing fee line.

    commission_amount is the sum of both deductions.
    """
    base = calculate_commission(gross_amount, rate)
    fee_rate = _check_rate(
        getattr(settings, "PAYMENT_PROCESSING_FEE_RATE", "0.025")
        if processing_fee_rate is None
        else processing_fee_rate,
        name="processing_fee_rate",
    )

    fee = _quantize(base.gross_amount * fee_rate)
    total_deductions = base.commission_amount + fee

    return CommissionBreakdown(
        gross_amount=base.gross_amount,
        commission_rate=base.commission_rate,
        commission_amount=total_deductions,
        net_amount=_quantize(base.gross_amount - total_deductions),
        breakdown=[
            *base.breakdown,
            CommissionLineItem(
                type=PROCESSING_FEE,
                amount=fee,
                percentage=_percentage(fee_rate),
                description="Payment processing fees (estimated)",
            ),
        ],
    )


def calculate_dispute_commission_adjustment(
    original_amount: Any,
    resolved_amount: Any,
    rate: Any = None,
) -> CommissionAdjustment:
    """
    Commission delta between the original and dispute-resolved amounts.

    adjustment_type is REFUND when the platform keeps less commission
    than it originally took, ADDITIONAL otherwise.
    """
    original = calculate_commission(original_amount, rate).commission_amount
    resolved = calculate_commission(resolved_amount, rate).commission_amount

    return CommissionAdjustment(
        original_commission=original,
        new_commission=resolved,
        adjustment_amount=abs(original - resolved),
        adjustment_type=(
            ADJUSTMENT_REFUND if original > resolved else ADJUSTMENT_ADDITIONAL
        ),
    )


def calculate_total_order_commission(
    amounts: Iterable[Any], rate: Any = None
) -> Decimal:
    """Sum of per-payment commissions (each rounded before summing)."""
    return sum(
        (calculate_commission(amount, rate).commission_amount for amount in amounts),
        Decimal("0.00"),
    )


def calculate_tailor_earnings(amounts: Iterable[Any], rate: Any = None) -> Decimal:
    """Sum of per-payment net amounts the tailor receives."""
    return sum(
        (calculate_commission(amount, rate).net_amount for amount in amounts),
        Decimal("0.00"),
    )


def calculate_platform_revenue(
    amounts: Iterable[Any],
    rate: Any = None,
    processing_fee_rate: Any = None,
) -> Decimal:
    """Platform commission net of the estimated processing fees it absorbs."""
    total = Decimal("0.00")
    for amount in amounts:
        with_fees = calculate_commission_with_fees(amount, rate, processing_fee_rate)
        platform, fee = (item.amount for item in with_fees.breakdown)
        total += platform - fee
    return total
