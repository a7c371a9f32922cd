"""
DataFrame-backed fact sources.

Wraps the raw tables as exported from the retail database and converts
them into typed records. Column names follow the upstream schema:

- Stock (MovStockTotalResumen): IdArticulo, idDeposito, TotalStock, Pendiente
- Sales (Transacciones): IdArticulo, IdDeposito, BaseCol, Fecha, Cantidad, PRECIO
- Purchases (UltimaCompra): BaseArticulo, FechaUltimaCompra,
  CantidadUltimaCompra, UltimoCosto
- Stores (Tiendas): IdTienda, Descripcion
- Products (Articulos, optional): base, descripcionCorta, marca, IdClase, idProveedor

Rows are cleaned once at construction; every fetch filters the cleaned
frames. Quality problems are collected in `quality_reports`.
"""

import logging
from datetime import date
from decimal import Decimal

import numpy as np
import pandas as pd

from replenishment.errors import DataFetchError
from replenishment.keys import BaseCodeIndex
from replenishment.parsers import CodeNormalizer, DateParser, StoreClassifier
from replenishment.quality import DataQualityChecker, DataQualityIssue, DataQualityReport
from replenishment.records import (
    Product,
    ProductSales,
    PurchaseRecord,
    SalesRecord,
    StockRecord,
    Store,
)
from replenishment.sources import PurchaseSource, SalesSource, StockSource, StoreDirectory

logger = logging.getLogger(__name__)


def _to_decimal(value) -> Decimal:
    return Decimal(str(round(float(value), 2)))


def _non_negative_int(series: pd.Series) -> pd.Series:
    values = pd.to_numeric(series, errors="coerce").fillna(0)
    return pd.Series(np.maximum(values.to_numpy(), 0), index=series.index).astype(int)


def _unparsed_dates(column: str, parsed: pd.Series):
    """Check reporting values present in `column` that did not parse."""

    def check(df: pd.DataFrame) -> list[DataQualityIssue]:
        if column not in df.columns:
            return []
        mask = df[column].notna() & parsed.isna()
        count = int(mask.sum())
        if not count:
            return []
        return [
            DataQualityIssue(
                column=column,
                issue_type="invalid",
                severity="warning",
                count=count,
                percentage=(count / len(df)) * 100,
                sample_values=df.loc[mask, column].head(5).tolist(),
                description=f"{count:,} dates couldn't be parsed; rows dropped",
            )
        ]

    return check


class FrameFactSource(StockSource, SalesSource, PurchaseSource, StoreDirectory):
    """All four upstream collaborators over in-memory tables."""

    def __init__(
        self,
        stock: pd.DataFrame,
        sales: pd.DataFrame,
        purchases: pd.DataFrame,
        stores: pd.DataFrame,
        products: pd.DataFrame | None = None,
        classifier: StoreClassifier | None = None,
    ):
        self.date_parser = DateParser()
        self.codes = CodeNormalizer()
        self.classifier = classifier or StoreClassifier()
        self.quality_reports: dict[str, DataQualityReport] = {}

        self._stock = self._prepare_stock(stock)
        self._sales = self._prepare_sales(sales)
        self._purchases = self._prepare_purchases(purchases)
        self._stores = self._prepare_stores(stores)
        self._products = self._prepare_products(products)

        for report in self.quality_reports.values():
            report.log()

    # --- Cleaning ---

    def _prepare_stock(self, df: pd.DataFrame) -> pd.DataFrame:
        report = (
            DataQualityChecker("stock")
            .require_columns(["IdArticulo", "idDeposito", "TotalStock"])
            .require_columns(["Pendiente"], severity="info")
            .check_missing("IdArticulo")
            .check_negative("TotalStock")
            .check_negative("Pendiente")
            .run(df)
        )
        self.quality_reports["stock"] = report
        self._has_pending = "Pendiente" in df.columns
        if report.has_critical_issues:
            return pd.DataFrame(columns=["article", "store_id", "on_hand", "pending"])

        out = pd.DataFrame(
            {
                "article": self.codes.normalize_series(df["IdArticulo"]),
                "store_id": pd.to_numeric(df["idDeposito"], errors="coerce"),
                "on_hand": _non_negative_int(df["TotalStock"]),
                "pending": _non_negative_int(df["Pendiente"]) if self._has_pending else 0,
            }
        )
        out = out.dropna(subset=["article", "store_id"])
        out["store_id"] = out["store_id"].astype(int)
        return out

    def _prepare_sales(self, df: pd.DataFrame) -> pd.DataFrame:
        required = ["IdArticulo", "IdDeposito", "BaseCol", "Fecha", "Cantidad", "PRECIO"]
        parsed = (
            self.date_parser.parse_series(df["Fecha"])
            if "Fecha" in df.columns
            else pd.Series(dtype=object)
        )
        report = (
            DataQualityChecker("sales")
            .require_columns(required)
            .check_missing("BaseCol")
            .add_check(_unparsed_dates("Fecha", parsed))
            .run(df)
        )
        self.quality_reports["sales"] = report
        if report.has_critical_issues:
            return pd.DataFrame(columns=["article", "base", "store_id", "sale_date", "units", "revenue"])

        out = pd.DataFrame(
            {
                "article": self.codes.normalize_series(df["IdArticulo"]),
                "base": self.codes.normalize_series(df["BaseCol"]),
                "store_id": pd.to_numeric(df["IdDeposito"], errors="coerce"),
                "sale_date": parsed,
                "units": pd.to_numeric(df["Cantidad"], errors="coerce").fillna(0).astype(int),
                "revenue": pd.to_numeric(df["PRECIO"], errors="coerce").fillna(0.0),
            }
        )
        out = out.dropna(subset=["article", "base", "store_id", "sale_date"])
        out["store_id"] = out["store_id"].astype(int)
        return out

    def _prepare_purchases(self, df: pd.DataFrame) -> pd.DataFrame:
        parsed = (
            self.date_parser.parse_series(df["FechaUltimaCompra"])
            if "FechaUltimaCompra" in df.columns
            else pd.Series(dtype=object)
        )
        report = (
            DataQualityChecker("purchases")
            .require_columns(["BaseArticulo", "FechaUltimaCompra", "CantidadUltimaCompra", "UltimoCosto"])
            .add_check(_unparsed_dates("FechaUltimaCompra", parsed))
            .check_invalid_values(
                "UltimoCosto",
                lambda v: pd.notna(pd.to_numeric(v, errors="coerce")) and float(v) > 0,
                severity="info",
                label="non-positive costs ignored",
            )
            .run(df)
        )
        self.quality_reports["purchases"] = report
        if report.has_critical_issues:
            return pd.DataFrame(columns=["article", "purchase_date", "quantity", "unit_cost"])

        cost = pd.to_numeric(df["UltimoCosto"], errors="coerce")
        out = pd.DataFrame(
            {
                "article": self.codes.normalize_series(df["BaseArticulo"]),
                "purchase_date": parsed,
                "quantity": _non_negative_int(df["CantidadUltimaCompra"]),
                "unit_cost": cost.where(cost > 0),
            }
        )
        return out.dropna(subset=["article", "purchase_date"])

    def _prepare_stores(self, df: pd.DataFrame) -> list[Store]:
        report = DataQualityChecker("stores").require_columns(["IdTienda", "Descripcion"]).run(df)
        self.quality_reports["stores"] = report
        if report.has_critical_issues:
            return []

        stores = []
        for row in df.itertuples(index=False):
            store_id = pd.to_numeric(row.IdTienda, errors="coerce")
            if pd.isna(store_id):
                continue
            name = str(row.Descripcion).strip() if pd.notna(row.Descripcion) else f"Store {int(store_id)}"
            stores.append(Store(int(store_id), name, self.classifier.classify(int(store_id), name)))
        return stores

    def _prepare_products(self, df: pd.DataFrame | None) -> dict[str, Product]:
        if df is None or "base" not in df.columns:
            return {}

        def optional(row, column):
            value = row.get(column)
            return None if value is None or pd.isna(value) else value

        products = {}
        for row in df.to_dict("records"):
            code = self.codes.normalize(row["base"])
            if code is None:
                continue
            category = optional(row, "IdClase")
            supplier = optional(row, "idProveedor")
            products[code] = Product(
                base_code=code,
                brand=optional(row, "marca"),
                description=optional(row, "descripcionCorta"),
                category_id=int(category) if category is not None else None,
                supplier_id=int(supplier) if supplier is not None else None,
            )
        return products

    def _require(self, source: str) -> None:
        report = self.quality_reports[source]
        if report.has_critical_issues:
            missing = ", ".join(i.column for i in report.critical_issues)
            logger.error("%s table unusable, missing columns: %s", source, missing)
            raise DataFetchError(source, f"unusable table, missing {missing}", required=source == "stock")

    def _index(self, product_codes: list[str]) -> BaseCodeIndex:
        return BaseCodeIndex(c for c in (self.codes.normalize(p) for p in product_codes) if c)

    # --- StockSource ---

    @property
    def has_pending(self) -> bool:
        return self._has_pending

    def fetch_stock(self, product_codes: list[str]) -> list[StockRecord]:
        self._require("stock")
        index = self._index(product_codes)
        records = []
        for row in self._stock.itertuples(index=False):
            base = index.match(row.article)
            if base is None:
                continue
            records.append(
                StockRecord(
                    product_code=base,
                    article_code=row.article,
                    store_id=int(row.store_id),
                    on_hand=int(row.on_hand),
                    pending=int(row.pending) if self._has_pending else None,
                )
            )
        return records

    def depot_ids(self) -> list[int]:
        self._require("stock")
        return sorted(int(d) for d in self._stock["store_id"].unique())

    # --- SalesSource ---

    def _sales_between(self, start: date | None, end: date | None) -> pd.DataFrame:
        df = self._sales
        if start is not None:
            df = df[df["sale_date"] >= start]
        if end is not None:
            df = df[df["sale_date"] <= end]
        return df

    def fetch_sales(
        self,
        product_codes: list[str],
        start: date | None = None,
        end: date | None = None,
    ) -> list[SalesRecord]:
        self._require("sales")
        wanted = {c for c in (self.codes.normalize(p) for p in product_codes) if c}
        df = self._sales_between(start, end)
        df = df[df["base"].isin(wanted)]
        return [
            SalesRecord(
                product_code=row.base,
                article_code=row.article,
                store_id=int(row.store_id),
                sale_date=row.sale_date,
                units=int(row.units),
                revenue=_to_decimal(row.revenue),
            )
            for row in df.itertuples(index=False)
        ]

    def top_products(self, start: date, end: date, limit: int) -> list[ProductSales]:
        self._require("sales")
        df = self._sales_between(start, end)
        if df.empty:
            return []
        totals = (
            df.groupby("base")
            .agg(units=("units", "sum"), revenue=("revenue", "sum"))
            .reset_index()
        )
        totals = totals[totals["units"] > 0]
        totals = totals.sort_values(["units", "base"], ascending=[False, True]).head(limit)
        return [
            ProductSales(
                product_code=row.base,
                description=self._products[row.base].description if row.base in self._products else None,
                units=int(row.units),
                revenue=_to_decimal(row.revenue),
            )
            for row in totals.itertuples(index=False)
        ]

    # --- PurchaseSource ---

    def fetch_purchases(self, product_codes: list[str]) -> list[PurchaseRecord]:
        self._require("purchases")
        index = self._index(product_codes)
        records = []
        for row in self._purchases.itertuples(index=False):
            base = index.match(row.article)
            if base is None:
                continue
            records.append(
                PurchaseRecord(
                    product_code=base,
                    article_code=row.article,
                    purchase_date=row.purchase_date,
                    quantity=int(row.quantity),
                    unit_cost=None if pd.isna(row.unit_cost) else _to_decimal(row.unit_cost),
                )
            )
        return records

    # --- StoreDirectory ---

    def stores(self) -> list[Store]:
        return list(self._stores)

    def product(self, product_code: str) -> Product | None:
        return self._products.get(self.codes.normalize(product_code))
