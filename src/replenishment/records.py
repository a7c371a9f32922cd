"""
Typed fact records produced by the source adapters.

Every upstream row is converted into one of these before it reaches the
engine. Money is carried as Decimal so that sums do not depend on the
order in which rows were folded.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum


class StoreClass(Enum):
    """Mutually exclusive store classifications."""

    CENTRAL = "central"
    REGULAR = "regular"
    WEB = "web"
    OUTLET = "outlet-saldos"


@dataclass(frozen=True)
class Product:
    base_code: str
    brand: str | None = None
    description: str | None = None
    category_id: int | None = None
    supplier_id: int | None = None


@dataclass(frozen=True)
class SizeVariant:
    product_code: str
    size: str


@dataclass(frozen=True)
class Store:
    store_id: int
    name: str
    store_class: StoreClass = StoreClass.REGULAR

    @property
    def is_central(self) -> bool:
        return self.store_class is StoreClass.CENTRAL

    @property
    def is_outlet(self) -> bool:
        return self.store_class is StoreClass.OUTLET


@dataclass(frozen=True)
class StockRecord:
    """On-hand and pending units for one article code at one store."""

    product_code: str
    article_code: str
    store_id: int
    on_hand: int
    pending: int | None = None


@dataclass(frozen=True)
class SalesRecord:
    """Units sold and revenue for one article code, store and day.

    Negative units are returns.
    """

    product_code: str
    article_code: str
    store_id: int
    sale_date: date
    units: int
    revenue: Decimal


@dataclass(frozen=True)
class PurchaseRecord:
    """Most recent purchase line for one article code (size/color variant)."""

    product_code: str
    article_code: str
    purchase_date: date
    quantity: int
    unit_cost: Decimal | None


@dataclass(frozen=True)
class ProductSales:
    """Product-level sales total used to rank the top sellers of a period."""

    product_code: str
    description: str | None
    units: int
    revenue: Decimal


@dataclass(frozen=True)
class LastPurchase:
    """The most recent purchase event of a product, across all its sizes."""

    purchase_date: date
    quantity: int
    unit_cost: Decimal | None
    quantity_by_size: dict[str, int]
