"""
Null-safe KPI functions.

Computes:
- ASP (average selling price)
- Margin % and markup % over the tax-inclusive cost
- Sell-through %
- Pace (units per day) and days of stock

Every function accepts None and returns None when the result is unknown.
None means "no data" and must never be rendered as zero.
"""

import math
from decimal import Decimal

DEFAULT_TAX_MULTIPLIER = 1.22

Number = int | float | Decimal


def _as_float(value: Number | None) -> float | None:
    if value is None:
        return None
    try:
        result = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return result if math.isfinite(result) else None


def safe_divide(numerator: Number | None, denominator: Number | None) -> float | None:
    """Divide, returning None for a missing/zero denominator or a non-finite result."""
    n = _as_float(numerator)
    d = _as_float(denominator)
    if n is None or d is None or d == 0:
        return None
    try:
        result = n / d
    except (OverflowError, ZeroDivisionError):
        return None
    return result if math.isfinite(result) else None


def _minus(a: Number | None, b: Number | None) -> float | None:
    x = _as_float(a)
    y = _as_float(b)
    if x is None or y is None:
        return None
    result = x - y
    return result if math.isfinite(result) else None


def _percent(ratio: float | None) -> float | None:
    if ratio is None:
        return None
    result = ratio * 100
    return result if math.isfinite(result) else None


def cost_with_tax(
    raw_cost: Number | None, tax_multiplier: float = DEFAULT_TAX_MULTIPLIER
) -> float | None:
    cost = _as_float(raw_cost)
    multiplier = _as_float(tax_multiplier)
    if cost is None or multiplier is None:
        return None
    result = cost * multiplier
    return result if math.isfinite(result) else None


def average_selling_price(revenue: Number | None, units_sold: Number | None) -> float | None:
    return safe_divide(revenue, units_sold)


def margin_pct(asp: Number | None, cost: Number | None) -> float | None:
    """Gross margin over the selling price: (ASP - cost) / ASP * 100."""
    return _percent(safe_divide(_minus(asp, cost), asp))


def markup_pct(asp: Number | None, cost: Number | None) -> float | None:
    """Markup over cost: (ASP - cost) / cost * 100."""
    return _percent(safe_divide(_minus(asp, cost), cost))


def sell_through_pct(units_sold: Number | None, stock_on_hand: Number | None) -> float | None:
    """Share of the available units (sold + on hand) that were sold."""
    sold = _as_float(units_sold)
    stock = _as_float(stock_on_hand)
    if sold is None or stock is None:
        return None
    return _percent(safe_divide(sold, sold + stock))


def pace(units_sold: Number | None, days: Number | None) -> float | None:
    """Units per day over a period."""
    return safe_divide(units_sold, days)


def days_of_stock(stock_on_hand: Number | None, pace_per_day: Number | None) -> float | None:
    return safe_divide(stock_on_hand, pace_per_day)
