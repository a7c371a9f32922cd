"""Null-safe KPI arithmetic."""

import math
from decimal import Decimal

import pytest

from replenishment.metrics import (
    average_selling_price,
    cost_with_tax,
    days_of_stock,
    margin_pct,
    markup_pct,
    pace,
    safe_divide,
    sell_through_pct,
)


class TestSafeDivide:
    @pytest.mark.parametrize("denominator", [0, 0.0, None, Decimal("0")])
    def test_zero_or_missing_denominator(self, denominator):
        assert safe_divide(10, denominator) is None

    def test_missing_numerator(self):
        assert safe_divide(None, 5) is None

    @pytest.mark.parametrize(
        "numerator,denominator",
        [
            (float("inf"), 1),
            (1, float("inf")),
            (float("nan"), 2),
            (1e308, 1e-308),
        ],
    )
    def test_never_nan_or_infinite(self, numerator, denominator):
        result = safe_divide(numerator, denominator)
        assert result is None or math.isfinite(result)

    def test_regular_division(self):
        assert safe_divide(Decimal("10"), 4) == 2.5


class TestKpis:
    def test_cost_with_default_tax(self):
        assert cost_with_tax(100) == pytest.approx(122.0)

    def test_cost_with_custom_tax(self):
        assert cost_with_tax(Decimal("50"), 1.1) == pytest.approx(55.0)

    def test_cost_missing(self):
        assert cost_with_tax(None) is None

    def test_asp(self):
        assert average_selling_price(Decimal("1000"), 10) == 100.0
        assert average_selling_price(1000, 0) is None

    def test_margin_over_selling_price(self):
        assert margin_pct(100, 48.8) == pytest.approx(51.2)

    def test_markup_over_cost(self):
        assert markup_pct(100, 50) == pytest.approx(100.0)

    def test_margin_without_cost_is_unknown(self):
        assert margin_pct(100, None) is None
        assert markup_pct(100, 0) is None

    def test_sell_through(self):
        assert sell_through_pct(10, 30) == pytest.approx(25.0)
        assert sell_through_pct(0, 0) is None
        assert sell_through_pct(None, 5) is None

    def test_pace_and_days_of_stock(self):
        assert pace(18, 180) == pytest.approx(0.1)
        assert days_of_stock(50, 0.1) == pytest.approx(500.0)
        assert days_of_stock(50, 0) is None
