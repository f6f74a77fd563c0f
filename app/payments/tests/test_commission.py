"""
Tests for platform commission calculation.
"""

from decimal import Decimal

import pytest

from payments.commission import (
    ADJUSTMENT_ADDITIONAL,
    ADJUSTMENT_REFUND,
    PLATFORM_COMMISSION,
    PROCESSING_FEE,
    calculate_commission,
    calculate_commission_with_fees,
    calculate_dispute_commission_adjustment,
    calculate_platform_revenue,
    calculate_tailor_earnings,
    calculate_total_order_commission,
)
from payments.exceptions import InvalidAmountError, InvalidRateError


class TestCalculateCommission:
    @pytest.mark.parametrize(
        "gross, commission, net",
        [
            ("100.00", "20.00", "80.00"),
            ("0", "0.00", "0.00"),
            ("62.50", "12.50", "50.00"),
            ("0.05", "0.01", "0.04"),
        ],
    )
    def test_default_rate(self, gross, commission, net):
        breakdown = calculate_commission(Decimal(gross))

        assert breakdown.commission_rate == Decimal("0.20")
        assert breakdown.commission_amount == Decimal(commission)
        assert breakdown.net_amount == Decimal(net)

    def test_rounding_may_leave_a_cent(self):
        breakdown = calculate_commission(Decimal("0.125"), Decimal("0.5"))

        assert abs(
            breakdown.commission_amount + breakdown.net_amount - breakdown.gross_amount
        ) <= Decimal("0.01")

    def test_explicit_rate_and_line_item(self):
        breakdown = calculate_commission(Decimal("200.00"), Decimal("0.15"))

        assert breakdown.commission_amount == Decimal("30.00")
        [item] = breakdown.breakdown
        assert item.type == PLATFORM_COMMISSION
        assert item.percentage == Decimal("15.0")

    def test_accepts_strings(self):
        assert calculate_commission("50").net_amount == Decimal("40.00")

    def test_negative_amount(self):
        with pytest.raises(InvalidAmountError):
            calculate_commission(Decimal("-1.00"))

    def test_non_numeric_amount(self):
        with pytest.raises(InvalidAmountError):
            calculate_commission("lots")

    @pytest.mark.parametrize("rate", ["-0.01", "1.01"])
    def test_rate_out_of_range(self, rate):
        with pytest.raises(InvalidRateError):
            calculate_commission(Decimal("100.00"), Decimal(rate))

    def test_rate_from_settings(self, settings):
        settings.PLATFORM_COMMISSION_RATE = "0.10"

        assert calculate_commission(Decimal("100.00")).commission_amount == Decimal("10.00")


class TestCommissionWithFees:
    def test_adds_processing_fee_line(self):
        breakdown = calculate_commission_with_fees(
            Decimal("100.00"), Decimal("0.20"), Decimal("0.025")
        )

        assert breakdown.commission_amount == Decimal("22.50")
        assert breakdown.net_amount == Decimal("77.50")
        assert [item.type for item in breakdown.breakdown] == [
            PLATFORM_COMMISSION,
            PROCESSING_FEE,
        ]

    def test_to_dict_is_json_safe(self):
        data = calculate_commission_with_fees(Decimal("100.00")).to_dict()

        assert data["net_amount"] == "77.50"
        assert data["breakdown"][1]["amount"] == "2.50"


class TestDisputeAdjustment:
    def test_lower_resolved_amount_refunds_commission(self):
        adjustment = calculate_dispute_commission_adjustment(
            Decimal("250.00"), Decimal("200.00")
        )

        assert adjustment.original_commission == Decimal("50.00")
        assert adjustment.new_commission == Decimal("40.00")
        assert adjustment.adjustment_amount == Decimal("10.00")
        assert adjustment.adjustment_type == ADJUSTMENT_REFUND

    def test_higher_resolved_amount_is_additional(self):
        adjustment = calculate_dispute_commission_adjustment(
            Decimal("100.00"), Decimal("150.00")
        )

        assert adjustment.adjustment_amount == Decimal("10.00")
        assert adjustment.adjustment_type == ADJUSTMENT_ADDITIONAL


class TestAggregates:
    AMOUNTS = [Decimal("62.50"), Decimal("125.00"), Decimal("62.50")]

    def test_total_order_commission(self):
        assert calculate_total_order_commission(self.AMOUNTS) == Decimal("50.00")

    def test_tailor_earnings(self):
        assert calculate_tailor_earnings(self.AMOUNTS) == Decimal("200.00")

    def test_platform_revenue_is_net_of_fees(self):
        revenue = calculate_platform_revenue(
            [Decimal("100.00")], Decimal("0.20"), Decimal("0.025")
        )

        assert revenue == Decimal("17.50")

    def test_empty(self):
        assert calculate_tailor_earnings([]) == Decimal("0.00")
