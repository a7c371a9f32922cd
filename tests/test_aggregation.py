"""Snapshot merging: order independence, last purchase resolution, breakdowns."""

from datetime import date
from decimal import Decimal
from itertools import permutations

from replenishment.aggregation import CellTotals, SnapshotBuilder, filter_sales_window
from replenishment.records import PurchaseRecord, SalesRecord, StockRecord

BASE = "146.241724846"

STOCK = [
    StockRecord(BASE, BASE + "38", 1, 3, 1),
    StockRecord(BASE, BASE + "38", 1, 2, 0),
    StockRecord(BASE, BASE + "39", 2, 5, 2),
    StockRecord(BASE, BASE, 2, 4, 0),  # no size suffix
]

SALES = [
    SalesRecord(BASE, BASE + "38", 1, date(2024, 6, 1), 2, Decimal("199.90")),
    SalesRecord(BASE, BASE + "38", 1, date(2024, 6, 2), -1, Decimal("-99.95")),
    SalesRecord(BASE, BASE + "40", 3, date(2024, 6, 3), 1, Decimal("0.10")),
    SalesRecord(BASE, BASE + "39", 2, date(2024, 5, 1), 4, Decimal("0.20")),
]

PURCHASES = [
    PurchaseRecord(BASE, BASE + "38", date(2024, 5, 1), 10, Decimal("40")),
    PurchaseRecord(BASE, BASE + "39", date(2024, 5, 1), 6, Decimal("42")),
    PurchaseRecord(BASE, BASE + "40", date(2024, 1, 15), 8, Decimal("35")),
]


def _build(stock, sales, purchases, window=None):
    return SnapshotBuilder().add_stock(stock).add_sales(sales, window=window).add_purchases(purchases).build()


class TestOrderIndependence:
    def test_record_permutations_give_same_cells(self):
        expected = dict(_build(STOCK, SALES, PURCHASES).cells)
        for stock in permutations(STOCK):
            for sales in permutations(SALES):
                snapshot = _build(list(stock), list(sales), list(reversed(PURCHASES)))
                assert dict(snapshot.cells) == expected

    def test_source_order_does_not_matter(self):
        a = SnapshotBuilder().add_purchases(PURCHASES).add_sales(SALES).add_stock(STOCK).build()
        b = SnapshotBuilder().add_stock(STOCK).add_purchases(PURCHASES).add_sales(SALES).build()
        assert dict(a.cells) == dict(b.cells)

    def test_upsert_is_commutative(self):
        x = CellTotals(on_hand=1, purchase_date=date(2024, 1, 1), purchased_qty=3, unit_cost=Decimal("5"))
        y = CellTotals(units_sold=2, purchase_date=date(2024, 2, 1), purchased_qty=4, unit_cost=Decimal("4"))
        z = CellTotals(purchase_date=date(2024, 2, 1), purchased_qty=1, unit_cost=Decimal("6"))
        assert x.upsert(y) == y.upsert(x)
        assert x.upsert(y).upsert(z) == z.upsert(x.upsert(y))
        merged = x.upsert(y).upsert(z)
        assert merged.purchase_date == date(2024, 2, 1)
        assert merged.purchased_qty == 5
        assert merged.unit_cost == Decimal("6")


class TestTotals:
    def test_unresolved_rows_kept_in_product_totals(self):
        snapshot = _build(STOCK, SALES, PURCHASES)
        assert snapshot.stock_total(BASE) == 14
        assert snapshot.unresolved == {"stock": 1}
        assert [row.size for row in snapshot.size_rows(BASE)] == ["38", "39", "40"]
        assert sum(row.stock for row in snapshot.size_rows(BASE)) == 10

    def test_returns_net_out(self):
        snapshot = _build(STOCK, SALES, PURCHASES)
        assert snapshot.units_sold(BASE) == 6
        assert snapshot.revenue(BASE) == Decimal("100.25")

    def test_pending(self):
        assert _build(STOCK, SALES, PURCHASES).pending_total(BASE) == 3

    def test_pending_degrades_without_column(self):
        snapshot = SnapshotBuilder().add_stock(STOCK, pending_available=False).build()
        assert snapshot.pending_total(BASE) is None

    def test_sales_window_applied_before_merge(self):
        snapshot = _build(STOCK, SALES, PURCHASES, window=(date(2024, 6, 1), date(2024, 6, 30)))
        assert snapshot.units_sold(BASE) == 2
        assert filter_sales_window(SALES, None, date(2024, 5, 31)) == [SALES[3]]


class TestLastPurchase:
    def test_sums_only_the_latest_event(self):
        last = _build(STOCK, SALES, PURCHASES).last_purchase(BASE)
        assert last.purchase_date == date(2024, 5, 1)
        assert last.quantity == 16
        assert last.unit_cost == Decimal("42")
        assert last.quantity_by_size == {"38": 10, "39": 6}

    def test_no_purchases(self):
        assert _build(STOCK, SALES, []).last_purchase(BASE) is None

    def test_purchased_column_follows_last_event(self):
        rows = {row.size: row for row in _build(STOCK, SALES, PURCHASES).size_rows(BASE)}
        assert rows["38"].purchased == 10
        assert rows["40"].purchased == 0


class TestMatrix:
    def test_variants_follow_size_order(self):
        variants = _build(STOCK, SALES, PURCHASES).variants(BASE)
        assert [v.size for v in variants] == ["38", "39", "40"]
        assert {v.product_code for v in variants} == {BASE}

    def test_stock_matrix(self):
        matrix = _build(STOCK, SALES, PURCHASES).matrix(BASE, "on_hand")
        assert list(matrix.index) == ["38", "39", "40"]
        assert matrix.loc["38", 1] == 5
        assert matrix.loc["39", 2] == 5
        assert matrix.loc["40", 1] == 0

    def test_sales_matrix(self):
        matrix = _build(STOCK, SALES, PURCHASES).matrix(BASE, "units_sold")
        assert matrix.loc["40", 3] == 1

    def test_degraded_source_recorded(self):
        snapshot = SnapshotBuilder().add_stock(STOCK).mark_degraded("sales").build()
        assert snapshot.degraded_sources == frozenset({"sales"})
        assert snapshot.units_sold(BASE) == 0
