"""
Rule-based insights for a single product.

Each rule is a (predicate, builder) pair evaluated independently over the
product's aggregates. Firing rules are deduplicated by title and ranked
by type (error > warning > info > success), then stars.

Rotation is units sold over units bought in the last purchase event.
"""

from dataclasses import dataclass, field
from typing import Callable

from .aggregation import SizeRow
from .metrics import safe_divide
from .models import Insight

TYPE_PRIORITY = {"error": 4, "warning": 3, "info": 2, "success": 1}

# Sizes holding more units than this without a single sale are overstocked
SIZE_EXCESS_STOCK = 10


@dataclass(frozen=True)
class InsightContext:
    """Aggregates one product's insight rules are evaluated on."""

    stock_on_hand: int
    units_sold: int
    units_purchased: int
    sizes: list[SizeRow] = field(default_factory=list)
    units_since_purchase: int | None = None

    @property
    def rotation_pct(self) -> float | None:
        ratio = safe_divide(self.units_sold, self.units_purchased)
        return None if ratio is None else ratio * 100

    @property
    def has_purchase(self) -> bool:
        return self.units_purchased > 0


Predicate = Callable[[InsightContext], bool]
Builder = Callable[[InsightContext], Insight]


def _rotation(ctx: InsightContext) -> float:
    return ctx.rotation_pct or 0.0


def _sizes_without_sales(ctx: InsightContext) -> list[str]:
    return [s.size for s in ctx.sizes if s.purchased > 0 and s.units_sold <= 0]


def _sizes_with_excess(ctx: InsightContext) -> list[str]:
    return [s.size for s in ctx.sizes if s.stock > SIZE_EXCESS_STOCK and s.units_sold <= 0]


DEFAULT_RULES: list[tuple[Predicate, Builder]] = [
    (
        lambda c: c.has_purchase and _rotation(c) >= 80,
        lambda c: Insight(
            type="success",
            title="High rotation",
            message=(
                f"Sold {_rotation(c):.0f}% of the last purchase. "
                "Consider increasing stock for this product."
            ),
            stars=5,
        ),
    ),
    (
        lambda c: c.has_purchase and _rotation(c) < 30,
        lambda c: Insight(
            type="error",
            title="Low rotation",
            message=(
                f"Only {_rotation(c):.0f}% of the last purchase has sold. "
                "Review price or promotion, or consider clearance."
            ),
            stars=1,
        ),
    ),
    (
        lambda c: c.has_purchase
        and c.stock_on_hand > c.units_purchased * 0.5
        and _rotation(c) < 40,
        lambda c: Insight(
            type="error",
            title="High stock with low rotation",
            message=(
                f"{c.stock_on_hand} units in stock with {_rotation(c):.0f}% rotation. "
                "Obsolescence risk; act now."
            ),
            stars=1,
        ),
    ),
    (
        lambda c: c.has_purchase
        and c.stock_on_hand < c.units_purchased * 0.2
        and _rotation(c) >= 70,
        lambda c: Insight(
            type="warning",
            title="Low stock with high rotation",
            message=(
                f"Only {c.stock_on_hand} units left after {_rotation(c):.0f}% rotation. "
                "Reorder to avoid lost sales."
            ),
            stars=4,
        ),
    ),
    (
        lambda c: len(c.sizes) > 1 and bool(_sizes_without_sales(c)),
        lambda c: Insight(
            type="warning",
            title="Sizes without sales",
            message=(
                f"{len(_sizes_without_sales(c))} size(s) purchased but unsold: "
                f"{', '.join(_sizes_without_sales(c))}. Review the size mix."
            ),
            stars=2,
        ),
    ),
    (
        lambda c: len(c.sizes) > 1 and bool(_sizes_with_excess(c)),
        lambda c: Insight(
            type="error",
            title="Sizes with excess stock",
            message=(
                f"{len(_sizes_with_excess(c))} size(s) with high stock and no sales: "
                f"{', '.join(_sizes_with_excess(c))}. Consider a promotion."
            ),
            stars=1,
        ),
    ),
    (
        lambda c: c.has_purchase
        and 40 <= _rotation(c) < 80
        and 0 < c.stock_on_hand < c.units_purchased,
        lambda c: Insight(
            type="success",
            title="Healthy rotation",
            message=f"{_rotation(c):.0f}% rotation with controlled stock. Keep this replenishment level.",
            stars=4,
        ),
    ),
    (
        lambda c: c.stock_on_hand <= 0 and (c.units_since_purchase or 0) > 0,
        lambda c: Insight(
            type="warning",
            title="Out of stock",
            message=(
                f"No stock left but {c.units_since_purchase} units sold since the last "
                "purchase. Reorder urgently."
            ),
            stars=5,
        ),
    ),
    (
        lambda c: not c.has_purchase,
        lambda c: Insight(
            type="info",
            title="No purchase data",
            message="No purchase on record; rotation cannot be computed.",
            stars=2,
        ),
    ),
]


class InsightEngine:
    """
    Evaluates an ordered list of insight rules.

    Usage:
        engine = InsightEngine().add_rule(predicate, builder)
        insights = engine.evaluate(context)
    """

    def __init__(self, rules: list[tuple[Predicate, Builder]] | None = None, limit: int = 5):
        self.rules = list(DEFAULT_RULES if rules is None else rules)
        self.limit = limit

    def add_rule(self, predicate: Predicate, builder: Builder) -> "InsightEngine":
        """Append a rule. Returns self for chaining."""
        self.rules.append((predicate, builder))
        return self

    def evaluate(self, ctx: InsightContext) -> list[Insight]:
        seen: set[str] = set()
        fired: list[Insight] = []
        for predicate, builder in self.rules:
            if not predicate(ctx):
                continue
            insight = builder(ctx)
            if insight.title in seen:
                continue
            seen.add(insight.title)
            fired.append(insight)

        fired.sort(key=lambda i: (TYPE_PRIORITY[i.type], i.stars), reverse=True)
        return fired[: self.limit]
