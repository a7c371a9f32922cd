"""
Order-independent aggregation of stock, sales and purchase facts.

Handles the common retail challenge of combining tables that were
extracted independently and share no foreign key: every record is folded
into a map keyed by (product, size, store) with a commutative upsert, so
the merged snapshot is the same whatever order the sources arrived in.

Usage:
    snapshot = (
        SnapshotBuilder()
        .add_stock(stock_records)
        .add_sales(sales_records, window=(start, end))
        .add_purchases(purchase_records)
        .build()
    )
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from types import MappingProxyType
from typing import Iterable, Mapping

import pandas as pd

from .keys import SizeResolver, sort_sizes
from .records import LastPurchase, PurchaseRecord, SalesRecord, SizeVariant, StockRecord

logger = logging.getLogger(__name__)

# (product_code, size or None when unresolved, store_id or None for purchases)
CellKey = tuple[str, str | None, int | None]

ZERO = Decimal("0")


def _add_optional(a: int | None, b: int | None) -> int | None:
    if a is None:
        return b
    if b is None:
        return a
    return a + b


def _max_optional(a, b):
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)


@dataclass(frozen=True)
class CellTotals:
    """Merged facts for one (product, size, store) cell."""

    on_hand: int = 0
    pending: int | None = None
    units_sold: int = 0
    revenue: Decimal = ZERO
    last_sale_date: date | None = None
    purchase_date: date | None = None
    purchased_qty: int = 0
    unit_cost: Decimal | None = None

    def upsert(self, other: "CellTotals") -> "CellTotals":
        """
        Combine two partial cells.

        Quantities add. Purchase fields follow the newer purchase date; lines
        on the same date belong to one purchase event, so their quantities
        add and the highest unit cost is kept as the representative one.
        """
        if self.purchase_date == other.purchase_date:
            purchase_date = self.purchase_date
            purchased_qty = self.purchased_qty + other.purchased_qty
            unit_cost = _max_optional(self.unit_cost, other.unit_cost)
        elif other.purchase_date is None or (
            self.purchase_date is not None and self.purchase_date > other.purchase_date
        ):
            purchase_date, purchased_qty, unit_cost = (
                self.purchase_date,
                self.purchased_qty,
                self.unit_cost,
            )
        else:
            purchase_date, purchased_qty, unit_cost = (
                other.purchase_date,
                other.purchased_qty,
                other.unit_cost,
            )

        return CellTotals(
            on_hand=self.on_hand + other.on_hand,
            pending=_add_optional(self.pending, other.pending),
            units_sold=self.units_sold + other.units_sold,
            revenue=self.revenue + other.revenue,
            last_sale_date=_max_optional(self.last_sale_date, other.last_sale_date),
            purchase_date=purchase_date,
            purchased_qty=purchased_qty,
            unit_cost=unit_cost,
        )


@dataclass(frozen=True)
class SizeRow:
    """Per-size totals for one product, across stores."""

    size: str
    stock: int
    units_sold: int
    revenue: Decimal
    purchased: int


def filter_sales_window(
    records: Iterable[SalesRecord], start: date | None, end: date | None
) -> list[SalesRecord]:
    """Keep sales inside [start, end]; either bound may be open."""
    return [
        r
        for r in records
        if (start is None or r.sale_date >= start) and (end is None or r.sale_date <= end)
    ]


def resolve_last_purchase(cells: Mapping[CellKey, CellTotals]) -> LastPurchase | None:
    """
    Collapse per-size purchase cells into the product's last purchase event.

    The event date is the most recent date across all sizes; only sizes
    bought on that exact date contribute quantity and cost.
    """
    dated = [(key, cell) for key, cell in cells.items() if cell.purchase_date is not None]
    if not dated:
        return None

    last_date = max(cell.purchase_date for _, cell in dated)
    same_event = [(key, cell) for key, cell in dated if cell.purchase_date == last_date]

    quantity_by_size: dict[str, int] = {}
    for (_, size, _), cell in same_event:
        if size is not None:
            quantity_by_size[size] = quantity_by_size.get(size, 0) + cell.purchased_qty

    costs = [cell.unit_cost for _, cell in same_event if cell.unit_cost is not None and cell.unit_cost > 0]

    return LastPurchase(
        purchase_date=last_date,
        quantity=sum(cell.purchased_qty for _, cell in same_event),
        unit_cost=max(costs) if costs else None,
        quantity_by_size=quantity_by_size,
    )


@dataclass(frozen=True)
class InventorySnapshot:
    """Immutable result of merging the fact sources."""

    cells: Mapping[CellKey, CellTotals]
    unresolved: Mapping[str, int] = field(default_factory=dict)
    degraded_sources: frozenset[str] = frozenset()
    pending_available: bool = True

    def variants(self, product_code: str) -> list[SizeVariant]:
        return [SizeVariant(product_code, size) for size in self.sizes(product_code)]

    def product_cells(self, product_code: str) -> dict[CellKey, CellTotals]:
        return {k: v for k, v in self.cells.items() if k[0] == product_code}

    def _store_cells(self, product_code: str) -> dict[CellKey, CellTotals]:
        return {k: v for k, v in self.product_cells(product_code).items() if k[2] is not None}

    def _purchase_cells(self, product_code: str) -> dict[CellKey, CellTotals]:
        return {k: v for k, v in self.product_cells(product_code).items() if k[2] is None}

    # --- Product-level totals (include rows whose size could not be resolved) ---

    def stock_total(self, product_code: str) -> int:
        return sum(c.on_hand for c in self._store_cells(product_code).values())

    def pending_total(self, product_code: str) -> int | None:
        if not self.pending_available:
            return None
        total = None
        for cell in self._store_cells(product_code).values():
            total = _add_optional(total, cell.pending)
        return total

    def units_sold(self, product_code: str) -> int:
        return sum(c.units_sold for c in self._store_cells(product_code).values())

    def revenue(self, product_code: str) -> Decimal:
        return sum((c.revenue for c in self._store_cells(product_code).values()), ZERO)

    def last_purchase(self, product_code: str) -> LastPurchase | None:
        return resolve_last_purchase(self._purchase_cells(product_code))

    # --- Breakdowns ---

    def store_ids(self, product_code: str) -> list[int]:
        return sorted({k[2] for k in self._store_cells(product_code)})

    def by_store(self, product_code: str) -> dict[int, CellTotals]:
        totals: dict[int, CellTotals] = {}
        for (_, _, store_id), cell in self._store_cells(product_code).items():
            totals[store_id] = totals[store_id].upsert(cell) if store_id in totals else cell
        return totals

    def sizes(self, product_code: str) -> list[str]:
        return sort_sizes({k[1] for k in self.product_cells(product_code) if k[1] is not None})

    def size_rows(self, product_code: str) -> list[SizeRow]:
        """Per-size totals; cells with an unresolved size are left out."""
        last = self.last_purchase(product_code)
        purchased = last.quantity_by_size if last else {}
        rows = []
        for size in self.sizes(product_code):
            cells = [
                c
                for (_, s, store), c in self.product_cells(product_code).items()
                if s == size and store is not None
            ]
            rows.append(
                SizeRow(
                    size=size,
                    stock=sum(c.on_hand for c in cells),
                    units_sold=sum(c.units_sold for c in cells),
                    revenue=sum((c.revenue for c in cells), ZERO),
                    purchased=purchased.get(size, 0),
                )
            )
        return rows

    def matrix(self, product_code: str, value: str = "on_hand") -> pd.DataFrame:
        """
        Size x store pivot of one cell field ("on_hand" or "units_sold").

        Rows follow the size ordering; unresolved sizes are excluded.
        """
        rows = [
            {"size": size, "store_id": store_id, value: getattr(cell, value)}
            for (_, size, store_id), cell in self._store_cells(product_code).items()
            if size is not None
        ]
        if not rows:
            return pd.DataFrame()

        df = pd.DataFrame(rows)
        pivot = df.pivot_table(
            index="size", columns="store_id", values=value, aggfunc="sum", fill_value=0
        )
        return pivot.reindex(sort_sizes(pivot.index.tolist())).astype(int)


class SnapshotBuilder:
    """
    Folds fact records into an InventorySnapshot.

    Each add_* call can happen in any order; the resulting snapshot only
    depends on the set of records added.
    """

    def __init__(self):
        self._cells: dict[CellKey, CellTotals] = {}
        self._resolvers: dict[str, SizeResolver] = {}
        self._degraded: set[str] = set()
        self._pending_available = True

    def _resolver(self, source: str) -> SizeResolver:
        if source not in self._resolvers:
            self._resolvers[source] = SizeResolver(source)
        return self._resolvers[source]

    def _upsert(self, key: CellKey, cell: CellTotals) -> None:
        current = self._cells.get(key)
        self._cells[key] = cell if current is None else current.upsert(cell)

    def add_stock(
        self, records: Iterable[StockRecord], pending_available: bool = True
    ) -> "SnapshotBuilder":
        """Add stock rows. Without a pending column, pending degrades to None."""
        resolver = self._resolver("stock")
        if not pending_available:
            self._pending_available = False
        for r in records:
            size = resolver.resolve(r.article_code, r.product_code)
            self._upsert(
                (r.product_code, size, r.store_id),
                CellTotals(on_hand=r.on_hand, pending=r.pending if pending_available else None),
            )
        return self

    def add_sales(
        self,
        records: Iterable[SalesRecord],
        window: tuple[date | None, date | None] | None = None,
    ) -> "SnapshotBuilder":
        """Add sales rows, optionally restricted to a date window first."""
        if window is not None:
            records = filter_sales_window(records, *window)
        resolver = self._resolver("sales")
        for r in records:
            size = resolver.resolve(r.article_code, r.product_code)
            self._upsert(
                (r.product_code, size, r.store_id),
                CellTotals(units_sold=r.units, revenue=r.revenue, last_sale_date=r.sale_date),
            )
        return self

    def add_purchases(self, records: Iterable[PurchaseRecord]) -> "SnapshotBuilder":
        resolver = self._resolver("purchases")
        for r in records:
            size = resolver.resolve(r.article_code, r.product_code)
            self._upsert(
                (r.product_code, size, None),
                CellTotals(
                    purchase_date=r.purchase_date,
                    purchased_qty=r.quantity,
                    unit_cost=r.unit_cost,
                ),
            )
        return self

    def mark_degraded(self, source: str) -> "SnapshotBuilder":
        """Record that a source was unavailable; its fields stay empty."""
        self._degraded.add(source)
        if source == "stock":
            self._pending_available = False
        return self

    def build(self) -> InventorySnapshot:
        unresolved = {
            name: resolver.failure_count
            for name, resolver in self._resolvers.items()
            if resolver.failure_count
        }
        if unresolved:
            logger.info("Rows with unresolved sizes (kept in totals only): %s", unresolved)

        return InventorySnapshot(
            cells=MappingProxyType(dict(self._cells)),
            unresolved=MappingProxyType(unresolved),
            degraded_sources=frozenset(self._degraded),
            pending_available=self._pending_available,
        )
