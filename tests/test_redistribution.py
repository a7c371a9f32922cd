"""Redistribution alert rules, severity and ranking."""

from datetime import date
from decimal import Decimal

import pytest

from replenishment.aggregation import SnapshotBuilder
from replenishment.models import AlertType
from replenishment.records import SalesRecord, StockRecord, Store, StoreClass
from replenishment.redistribution import (
    AlertThresholds,
    ProductStoreView,
    RedistributionDetector,
    StoreStanding,
    build_store_view,
    needed_units,
    rank_alerts,
    summarize,
)

CENTRAL = Store(99, "Deposito Central", StoreClass.CENTRAL)


def _store(store_id: int, store_class: StoreClass = StoreClass.REGULAR) -> Store:
    return Store(store_id, f"Tienda {store_id}", store_class)


def _view(code: str, central_stock: int, stores: list[tuple[Store, int, int]]) -> ProductStoreView:
    """stores: (store, units_sold, stock)"""
    total = sum(units for _, units, _ in stores)
    return ProductStoreView(
        product_code=code,
        description=None,
        total_units=total,
        total_revenue=Decimal(total * 10),
        central_stock=central_stock,
        stores=[
            StoreStanding(store, units, stock, units / total if total else 0.0)
            for store, units, stock in stores
        ],
    )


@pytest.fixture
def detector():
    return RedistributionDetector()


class TestCentralStockNotDistributed:
    def test_single_store_with_most_sales_out_of_stock(self, detector):
        view = _view("P1", 40, [(_store(1), 60, 0), (_store(2), 40, 30)])
        [alert] = detector.detect(view)
        assert alert.type is AlertType.CENTRAL_STOCK_NOT_DISTRIBUTED
        assert alert.severity == "alta"
        assert alert.central_stock == 40
        [store] = alert.affected_stores
        assert store.store_id == 1
        assert store.status == "SIN STOCK"
        assert store.sales_share_pct == 60.0

    def test_low_stock_status(self, detector):
        view = _view("P1", 40, [(_store(1), 10, 3), (_store(2), 90, 50)])
        [alert] = detector.detect(view)
        assert alert.affected_stores[0].status == "BAJO STOCK"
        assert alert.severity == "baja"

    def test_outlet_stores_ignored(self, detector):
        view = _view("P1", 40, [(_store(31, StoreClass.OUTLET), 60, 0), (_store(2), 40, 30)])
        assert detector.detect(view) == []

    def test_no_central_stock_no_alert(self, detector):
        view = _view("P1", 0, [(_store(1), 60, 0), (_store(2), 40, 30)])
        assert all(a.type is not AlertType.CENTRAL_STOCK_NOT_DISTRIBUTED for a in detector.detect(view))

    def test_severity_by_store_count(self, detector):
        stores = [(_store(i), 10, 0) for i in range(1, 5)] + [(_store(9), 100, 40)]
        [alert] = detector.detect(_view("P1", 40, stores))
        assert len(alert.affected_stores) == 4
        assert alert.severity == "alta"

    def test_media_severity(self, detector):
        stores = [(_store(1), 10, 0), (_store(2), 10, 0), (_store(9), 80, 40)]
        [alert] = detector.detect(_view("P1", 40, stores))
        assert alert.severity == "media"


class TestImbalancedAcrossStores:
    def test_needs_and_excess(self, detector):
        view = _view(
            "P2",
            0,
            [(_store(1), 30, 2), (_store(2), 20, 0), (_store(3), 2, 40), (_store(4), 1, 6)],
        )
        [alert] = detector.detect(view)
        assert alert.type is AlertType.IMBALANCED_ACROSS_STORES
        statuses = {s.store_id: s.status for s in alert.affected_stores}
        assert statuses == {1: "NECESITA STOCK", 2: "NECESITA STOCK", 3: "EXCESO STOCK", 4: "EXCESO STOCK"}
        assert alert.total_excess_stock == 46
        # store 1: min(30, 60 - 2) = 30; store 2: min(20, 40) = 20
        assert alert.total_needed_stock == 50
        assert alert.severity == "media"

    @pytest.mark.parametrize(
        "stores",
        [
            [(1, 30, 2), (2, 20, 0), (3, 2, 40)],
            [(1, 15, 9), (2, 1, 5)],
            [(1, 100, 0), (2, 3, 5), (3, 4, 500)],
            [(1, 16, 9), (2, 9, 0), (3, 0, 7)],
        ],
    )
    def test_needed_and_excess_bounds(self, detector, stores):
        view = _view("P2", 0, [(_store(i), units, stock) for i, units, stock in stores])
        for alert in detector.detect(view):
            assert alert.total_needed_stock >= 0
            assert alert.total_excess_stock >= 0
            needs_units = sum(s.units_sold for s in alert.affected_stores if s.status == "NECESITA STOCK")
            assert alert.total_needed_stock <= needs_units

    def test_needed_units_capped_by_sales(self):
        standing = StoreStanding(_store(1), 15, 0, 0.5)
        assert needed_units(standing, multiplier=5) == 15
        assert needed_units(StoreStanding(_store(1), 15, 40, 0.5), multiplier=2) == 0
        assert needed_units(StoreStanding(_store(1), -3, 0, 0.0), multiplier=2) == 0

    def test_requires_two_selling_stores(self, detector):
        view = _view("P2", 0, [(_store(1), 30, 0), (_store(2), 0, 40)])
        assert detector.detect(view) == []

    def test_thresholds_are_configurable(self):
        view = _view("P2", 0, [(_store(1), 30, 2), (_store(2), 20, 0), (_store(3), 2, 40)])
        strict = RedistributionDetector(AlertThresholds(excess_min_stock=100))
        assert strict.detect(view) == []


class TestRanking:
    def test_severity_then_volume(self, detector):
        alerts = (
            detector.detect(_view("LOW", 40, [(_store(1), 10, 3), (_store(2), 90, 50)]))
            + detector.detect(_view("BIG", 40, [(_store(1), 600, 0), (_store(2), 400, 30)]))
            + detector.detect(_view("SMALL", 40, [(_store(1), 6, 0), (_store(2), 4, 30)]))
        )
        ranked = rank_alerts(alerts)
        assert [a.product_code for a in ranked] == ["BIG", "SMALL", "LOW"]

    def test_summary(self, detector):
        alerts = detector.detect(_view("P1", 40, [(_store(1), 60, 0), (_store(2), 40, 30)]))
        by_severity, by_type = summarize(alerts)
        assert by_severity == {"alta": 1, "media": 0, "baja": 0}
        assert by_type[AlertType.CENTRAL_STOCK_NOT_DISTRIBUTED.value] == 1
        assert by_type[AlertType.IMBALANCED_ACROSS_STORES.value] == 0


class TestStoreView:
    def test_built_from_snapshot(self):
        snapshot = (
            SnapshotBuilder()
            .add_stock(
                [
                    StockRecord("P", "P38", 99, 40),
                    StockRecord("P", "P38", 1, 0),
                    StockRecord("P", "P38", 2, 30),
                    StockRecord("P", "P38", 900, 7),
                ]
            )
            .add_sales(
                [
                    SalesRecord("P", "P38", 1, date(2024, 6, 1), 6, Decimal("60")),
                    SalesRecord("P", "P38", 2, date(2024, 6, 1), 4, Decimal("40")),
                ]
            )
            .build()
        )
        directory = {99: CENTRAL, 1: _store(1), 2: _store(2)}
        view = build_store_view(snapshot, "P", directory, hidden_ids=[900])
        assert view.central_stock == 40
        assert view.total_units == 10
        assert [s.store.store_id for s in view.stores] == [1, 2]
        assert view.stores[0].share == pytest.approx(0.6)
