"""Insight rules, deduplication and ranking."""

from decimal import Decimal

from replenishment.aggregation import SizeRow
from replenishment.insights import InsightContext, InsightEngine
from replenishment.models import Insight


def _size(size: str, stock: int, sold: int, purchased: int) -> SizeRow:
    return SizeRow(size=size, stock=stock, units_sold=sold, revenue=Decimal("0"), purchased=purchased)


def _titles(insights: list[Insight]) -> list[str]:
    return [i.title for i in insights]


class TestRules:
    def test_high_rotation(self):
        insights = InsightEngine().evaluate(InsightContext(stock_on_hand=10, units_sold=90, units_purchased=100))
        assert "High rotation" in _titles(insights)

    def test_low_rotation_with_high_stock(self):
        insights = InsightEngine().evaluate(InsightContext(stock_on_hand=80, units_sold=20, units_purchased=100))
        assert _titles(insights) == ["Low rotation", "High stock with low rotation"]
        assert all(i.type == "error" for i in insights)

    def test_low_stock_high_rotation(self):
        insights = InsightEngine().evaluate(InsightContext(stock_on_hand=5, units_sold=75, units_purchased=100))
        assert _titles(insights)[0] == "Low stock with high rotation"

    def test_healthy_rotation(self):
        insights = InsightEngine().evaluate(InsightContext(stock_on_hand=40, units_sold=50, units_purchased=100))
        assert _titles(insights) == ["Healthy rotation"]

    def test_size_rules(self):
        sizes = [_size("38", 0, 10, 10), _size("39", 12, 0, 10), _size("40", 15, 0, 0)]
        insights = InsightEngine().evaluate(
            InsightContext(stock_on_hand=27, units_sold=10, units_purchased=20, sizes=sizes)
        )
        by_title = {i.title: i for i in insights}
        assert "39" in by_title["Sizes without sales"].message
        assert "39, 40" in by_title["Sizes with excess stock"].message

    def test_size_rules_need_more_than_one_size(self):
        insights = InsightEngine().evaluate(
            InsightContext(stock_on_hand=12, units_sold=0, units_purchased=10, sizes=[_size("U", 12, 0, 10)])
        )
        assert "Sizes without sales" not in _titles(insights)

    def test_out_of_stock_with_recent_sales(self):
        insights = InsightEngine().evaluate(
            InsightContext(stock_on_hand=0, units_sold=100, units_purchased=100, units_since_purchase=100)
        )
        assert _titles(insights)[0] == "Out of stock"
        assert insights[0].stars == 5

    def test_no_purchase_data(self):
        insights = InsightEngine().evaluate(InsightContext(stock_on_hand=10, units_sold=5, units_purchased=0))
        assert _titles(insights) == ["No purchase data"]
        assert insights[0].type == "info"


class TestEngine:
    def test_sorted_by_type_then_stars(self):
        sizes = [_size("38", 0, 10, 10), _size("39", 12, 0, 10)]
        insights = InsightEngine().evaluate(
            InsightContext(stock_on_hand=2, units_sold=80, units_purchased=100, sizes=sizes, units_since_purchase=0)
        )
        priority = {"error": 4, "warning": 3, "info": 2, "success": 1}
        keys = [(priority[i.type], i.stars) for i in insights]
        assert keys == sorted(keys, reverse=True)

    def test_at_most_five(self):
        always = lambda c: True
        engine = InsightEngine(rules=[])
        for n in range(8):
            engine.add_rule(always, lambda c, n=n: Insight(type="info", title=f"t{n}", message="m", stars=1))
        assert len(engine.evaluate(InsightContext(0, 0, 0))) == 5

    def test_deduplicated_by_title(self):
        build = lambda c: Insight(type="warning", title="Same", message="m", stars=3)
        engine = InsightEngine(rules=[]).add_rule(lambda c: True, build).add_rule(lambda c: True, build)
        assert len(engine.evaluate(InsightContext(0, 0, 0))) == 1
