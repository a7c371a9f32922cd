"""
Inter-store redistribution alerts.

Two alert types over one product's per-store view:
- Central stock not distributed: the central depot holds stock while
  stores selling a large share of the product are out or nearly out.
- Imbalanced across stores: no central stock, some stores need stock
  and others hold stock they are not selling.

Rules are ordered (predicate, builder) pairs; alerts are ranked by
severity, then by the units sold in the affected stores.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Iterable

from pydantic import BaseModel, Field

from .aggregation import InventorySnapshot
from .models import AffectedStore, AlertType, RedistributionAlert
from .records import Store

logger = logging.getLogger(__name__)

SEVERITY_RANK = {"alta": 3, "media": 2, "baja": 1}


class AlertThresholds(BaseModel):
    """Named cutoffs for both alert types and their severities."""

    # Central stock not distributed
    high_rotation_share: float = Field(default=0.05, description="Share of product units")
    high_rotation_units: int = 10
    low_stock_floor: int = Field(default=5, description="Store stock below this is low")
    central_alta_stores: int = 4
    central_alta_share: float = Field(default=0.5, description="Summed share of affected stores")
    central_media_stores: int = 2
    central_media_share: float = 0.25

    # Imbalanced across stores
    needs_stock_share: float = 0.15
    needs_stock_units: int = 15
    needs_stock_max_stock: int = Field(default=10, description="Needs stock if below this")
    excess_max_share: float = 0.10
    excess_max_units: int = 10
    excess_min_stock: int = Field(default=5, description="Has excess if at or above this")
    need_multiplier: float = Field(default=2.0, gt=0, description="Target stock per unit sold")
    imbalance_alta_stores: int = 5
    imbalance_alta_units: int = Field(default=50, description="Units redistribution can move")
    imbalance_media_stores: int = 3
    imbalance_media_units: int = 20


@dataclass(frozen=True)
class StoreStanding:
    store: Store
    units_sold: int
    stock: int
    share: float


@dataclass(frozen=True)
class ProductStoreView:
    """One product's period sales and current stock per store."""

    product_code: str
    description: str | None
    total_units: int
    total_revenue: Decimal
    central_stock: int
    stores: list[StoreStanding] = field(default_factory=list)

    @property
    def stores_with_sales(self) -> list[StoreStanding]:
        return [s for s in self.stores if s.units_sold != 0]


def build_store_view(
    snapshot: InventorySnapshot,
    product_code: str,
    directory: dict[int, Store],
    description: str | None = None,
    hidden_ids: Iterable[int] = (),
) -> ProductStoreView:
    """
    Collapse a product's snapshot cells to one standing per store.

    Hidden depots are dropped; unknown depot ids are kept as regular stores.
    """
    hidden = set(hidden_ids)
    per_store = {
        store_id: cell
        for store_id, cell in snapshot.by_store(product_code).items()
        if store_id not in hidden
    }
    total_units = sum(cell.units_sold for cell in per_store.values())
    total_revenue = sum((cell.revenue for cell in per_store.values()), Decimal("0"))

    standings = []
    central_stock = 0
    for store_id in sorted(per_store):
        cell = per_store[store_id]
        store = directory.get(store_id) or Store(store_id, f"Store {store_id}")
        if store.is_central:
            central_stock += cell.on_hand
            continue
        share = cell.units_sold / total_units if total_units > 0 else 0.0
        standings.append(StoreStanding(store, cell.units_sold, cell.on_hand, share))

    return ProductStoreView(
        product_code=product_code,
        description=description,
        total_units=total_units,
        total_revenue=total_revenue,
        central_stock=central_stock,
        stores=standings,
    )


def _affected(s: StoreStanding, status: str) -> AffectedStore:
    return AffectedStore(
        store_id=s.store.store_id,
        name=s.store.name,
        units_sold=s.units_sold,
        sales_share_pct=round(s.share * 100, 1),
        stock=s.stock,
        status=status,
    )


# --- Central stock not distributed ---


def _undersupplied(view: ProductStoreView, t: AlertThresholds) -> list[StoreStanding]:
    return [
        s
        for s in view.stores
        if not s.store.is_outlet
        and s.units_sold > 0
        and (s.share >= t.high_rotation_share or s.units_sold >= t.high_rotation_units)
        and s.stock < t.low_stock_floor
    ]


def _central_severity(stores: list[StoreStanding], t: AlertThresholds) -> str:
    share = sum(s.share for s in stores)
    if len(stores) >= t.central_alta_stores or share >= t.central_alta_share:
        return "alta"
    if len(stores) >= t.central_media_stores or share >= t.central_media_share:
        return "media"
    return "baja"


def _central_predicate(view: ProductStoreView, t: AlertThresholds) -> bool:
    return view.central_stock > 0 and bool(_undersupplied(view, t))


def _central_builder(view: ProductStoreView, t: AlertThresholds) -> RedistributionAlert:
    stores = _undersupplied(view, t)
    return RedistributionAlert(
        product_code=view.product_code,
        description=view.description,
        type=AlertType.CENTRAL_STOCK_NOT_DISTRIBUTED,
        severity=_central_severity(stores, t),
        total_units_sold=view.total_units,
        total_revenue=float(view.total_revenue),
        central_stock=view.central_stock,
        affected_stores=[
            _affected(s, "SIN STOCK" if s.stock <= 0 else "BAJO STOCK") for s in stores
        ],
        affected_sales_volume=sum(s.units_sold for s in stores),
    )


# --- Imbalanced across stores ---


def _partition(
    view: ProductStoreView, t: AlertThresholds
) -> tuple[list[StoreStanding], list[StoreStanding]]:
    needs, excess = [], []
    for s in view.stores:
        if s.share >= t.needs_stock_share or s.units_sold >= t.needs_stock_units:
            if s.stock < t.needs_stock_max_stock:
                needs.append(s)
        elif s.share < t.excess_max_share and s.units_sold < t.excess_max_units:
            if s.stock >= t.excess_min_stock:
                excess.append(s)
    return needs, excess


def needed_units(s: StoreStanding, multiplier: float) -> int:
    """Units a store needs to cover `multiplier` times its sales, capped at its sales."""
    sold = max(s.units_sold, 0)
    target = int(sold * multiplier)
    return max(0, min(sold, target - max(s.stock, 0)))


def _imbalance_predicate(view: ProductStoreView, t: AlertThresholds) -> bool:
    if view.central_stock != 0 or view.total_units <= 0 or len(view.stores_with_sales) < 2:
        return False
    needs, excess = _partition(view, t)
    return bool(needs) and bool(excess)


def _imbalance_builder(view: ProductStoreView, t: AlertThresholds) -> RedistributionAlert:
    needs, excess = _partition(view, t)
    total_excess = sum(max(s.stock, 0) for s in excess)
    total_needed = sum(needed_units(s, t.need_multiplier) for s in needs)
    movable = min(total_excess, total_needed)
    count = len(needs) + len(excess)

    if count >= t.imbalance_alta_stores or movable >= t.imbalance_alta_units:
        severity = "alta"
    elif count >= t.imbalance_media_stores or movable >= t.imbalance_media_units:
        severity = "media"
    else:
        severity = "baja"

    return RedistributionAlert(
        product_code=view.product_code,
        description=view.description,
        type=AlertType.IMBALANCED_ACROSS_STORES,
        severity=severity,
        total_units_sold=view.total_units,
        total_revenue=float(view.total_revenue),
        central_stock=0,
        affected_stores=[_affected(s, "NECESITA STOCK") for s in needs]
        + [_affected(s, "EXCESO STOCK") for s in excess],
        affected_sales_volume=sum(max(s.units_sold, 0) for s in needs + excess),
        total_excess_stock=total_excess,
        total_needed_stock=total_needed,
    )


AlertRule = tuple[
    Callable[[ProductStoreView, AlertThresholds], bool],
    Callable[[ProductStoreView, AlertThresholds], RedistributionAlert],
]

DEFAULT_ALERT_RULES: list[AlertRule] = [
    (_central_predicate, _central_builder),
    (_imbalance_predicate, _imbalance_builder),
]


class RedistributionDetector:
    """Runs the alert rules over per-product store views."""

    def __init__(
        self,
        thresholds: AlertThresholds | None = None,
        rules: list[AlertRule] | None = None,
    ):
        self.thresholds = thresholds or AlertThresholds()
        self.rules = list(DEFAULT_ALERT_RULES if rules is None else rules)

    def detect(self, view: ProductStoreView) -> list[RedistributionAlert]:
        alerts = [
            builder(view, self.thresholds)
            for predicate, builder in self.rules
            if predicate(view, self.thresholds)
        ]
        if alerts:
            logger.debug(
                "%s: %s", view.product_code, ", ".join(a.type.value for a in alerts)
            )
        return alerts


def rank_alerts(alerts: Iterable[RedistributionAlert]) -> list[RedistributionAlert]:
    """Severity descending, then affected sales volume descending."""
    return sorted(
        alerts,
        key=lambda a: (-SEVERITY_RANK[a.severity], -a.affected_sales_volume, a.product_code, a.type.value),
    )


def summarize(alerts: Iterable[RedistributionAlert]) -> tuple[dict[str, int], dict[str, int]]:
    """Alert counts by severity and by type."""
    alerts = list(alerts)
    by_severity = {level: 0 for level in SEVERITY_RANK}
    by_severity.update(Counter(a.severity for a in alerts))
    by_type = {t.value: 0 for t in AlertType}
    by_type.update(Counter(a.type.value for a in alerts))
    return by_severity, by_type
