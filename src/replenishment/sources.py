"""
Typed boundaries to the upstream fact store.

The engine only talks to these interfaces. Implementations convert their
raw rows (SQL result sets, exported files, data frames) into the records
defined in replenishment.records.
"""

from abc import ABC, abstractmethod
from datetime import date

from .records import (
    Product,
    ProductSales,
    PurchaseRecord,
    SalesRecord,
    StockRecord,
    Store,
)


class StockSource(ABC):
    """Stock by location."""

    @property
    def has_pending(self) -> bool:
        """Whether the source carries a pending (on order) column."""
        return True

    @abstractmethod
    def fetch_stock(self, product_codes: list[str]) -> list[StockRecord]:
        """Stock rows whose article code starts with one of the product codes."""

    @abstractmethod
    def depot_ids(self) -> list[int]:
        """Distinct depot ids present in the stock table."""


class SalesSource(ABC):
    """Sales transactions."""

    @abstractmethod
    def fetch_sales(
        self,
        product_codes: list[str],
        start: date | None = None,
        end: date | None = None,
    ) -> list[SalesRecord]:
        """Sales rows of the products, optionally bounded by date (inclusive)."""

    @abstractmethod
    def top_products(self, start: date, end: date, limit: int) -> list[ProductSales]:
        """Best sellers by units in the period; only positive totals."""


class PurchaseSource(ABC):
    """Most recent purchase by article code."""

    @abstractmethod
    def fetch_purchases(self, product_codes: list[str]) -> list[PurchaseRecord]:
        ...


class StoreDirectory(ABC):
    """Store identity and classification, plus product master data."""

    @abstractmethod
    def stores(self) -> list[Store]:
        ...

    def product(self, product_code: str) -> Product | None:
        return None
