"""
Orchestration of fact reads and product evaluation.

ReplenishmentService is the entry point:
- assess_product(): one product's matrix, KPIs, semaphore and insights
- detect_redistribution(): redistribution alerts over the period's top sellers
- validate_store_mapping(): cached depot/store mapping check

Fact reads run concurrently, each with its own deadline. An unavailable
optional source degrades the fields it feeds; stock is required in
batch mode; only a total upstream outage fails a single assessment.
"""

import logging
import math
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from datetime import date, timedelta
from typing import Any, Callable

from .aggregation import InventorySnapshot, SnapshotBuilder
from .cache import StoreMappingValidator, ValidationCache
from .errors import (
    AssessmentCancelled,
    ComputationError,
    DataFetchError,
    SourceUnavailableError,
)
from .insights import InsightContext, InsightEngine
from .metrics import (
    average_selling_price,
    cost_with_tax,
    days_of_stock,
    margin_pct,
    markup_pct,
    pace,
    sell_through_pct,
)
from .models import (
    BatchStatistics,
    LastPurchaseInfo,
    PageInfo,
    ProductAssessment,
    ProductFailure,
    ProductKPIs,
    RedistributionAlert,
    RedistributionReport,
    SizeBreakdown,
    SizeStoreMatrix,
    StoreMappingValidation,
    StoreRef,
)
from .parsers import StoreClassifier
from .records import Product, ProductSales, SalesRecord, Store
from .redistribution import (
    AlertThresholds,
    ProductStoreView,
    RedistributionDetector,
    build_store_view,
    rank_alerts,
    summarize,
)
from .semaphore import (
    ReplenishmentWindow,
    SemaphoreConfigBook,
    classify,
    load_config_book,
    pace_since_purchase,
    units_in_window,
)
from .settings import EngineSettings, get_settings
from .sources import PurchaseSource, SalesSource, StockSource, StoreDirectory

logger = logging.getLogger(__name__)

FACT_SOURCES = ("stock", "sales", "purchases")

# How often waiting loops look at the cancel event
POLL_INTERVAL_SECONDS = 0.05

DEFAULT_BATCH_PERIOD_DAYS = 30


def _cancelled(cancel_event: threading.Event | None) -> bool:
    return cancel_event is not None and cancel_event.is_set()


class ReplenishmentService:
    """
    Reads facts from the upstream collaborators and evaluates products.

    All evaluation state is built per request; the only shared state is
    the store mapping validation cache.
    """

    def __init__(
        self,
        stock_source: StockSource,
        sales_source: SalesSource,
        purchase_source: PurchaseSource,
        store_directory: StoreDirectory,
        settings: EngineSettings | None = None,
        config_book: SemaphoreConfigBook | None = None,
        thresholds: AlertThresholds | None = None,
        insight_engine: InsightEngine | None = None,
        validation_cache: ValidationCache[StoreMappingValidation] | None = None,
    ):
        self.stock_source = stock_source
        self.sales_source = sales_source
        self.purchase_source = purchase_source
        self.store_directory = store_directory
        self.settings = settings or get_settings()

        if config_book is None:
            config_book, self._config_warnings = load_config_book(self.settings.semaphore_config_path)
        else:
            self._config_warnings = []
        self.config_book = config_book

        self.detector = RedistributionDetector(thresholds)
        self.insight_engine = insight_engine or InsightEngine()
        self.classifier = StoreClassifier(
            central_ids=self.settings.central_store_ids,
            outlet_ids=self.settings.outlet_store_ids,
            web_ids=self.settings.web_store_ids,
        )
        self.hidden_ids = set(self.settings.hidden_store_ids)
        self.mapping_validator = StoreMappingValidator(
            stock_source,
            store_directory,
            cache=validation_cache or ValidationCache(self.settings.validation_cache_ttl_seconds),
            sample_size=self.settings.store_mapping_sample_size,
            min_match_rate=self.settings.store_mapping_min_match_rate,
        )

    # --- Fetching ---

    def _read_pool(self) -> ThreadPoolExecutor:
        """Executor for upstream reads, sized to the data store's connection pool."""
        return ThreadPoolExecutor(max_workers=self.settings.max_workers, thread_name_prefix="fact-read")

    def _fan_out(
        self,
        calls: dict[str, Callable[[], Any]],
        cancel_event: threading.Event | None,
        pool: ThreadPoolExecutor,
    ) -> dict[str, Any]:
        """
        Run the calls on the read pool and wait for all of them.

        Each value in the result is either the call's return value or a
        DataFetchError (failure or deadline exceeded). Calls still running
        at the deadline are abandoned; queued ones are cancelled.
        """
        timeout = self.settings.fetch_timeout_seconds
        futures: dict[Future, str] = {pool.submit(fn): name for name, fn in calls.items()}
        results: dict[str, Any] = {}
        deadline = time.monotonic() + timeout
        pending = set(futures)
        try:
            while pending:
                if _cancelled(cancel_event):
                    raise AssessmentCancelled("Cancelled while reading fact sources")
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                done, pending = wait(
                    pending,
                    timeout=min(remaining, POLL_INTERVAL_SECONDS),
                    return_when=FIRST_COMPLETED,
                )
                for future in done:
                    name = futures[future]
                    try:
                        results[name] = future.result()
                    except DataFetchError as e:
                        results[name] = e
                    except Exception as e:
                        results[name] = DataFetchError(name, f"{type(e).__name__}: {e}")
            for future in pending:
                name = futures[future]
                results[name] = DataFetchError(name, f"timed out after {timeout:g}s")
        finally:
            for future in pending:
                future.cancel()
        return results

    def _store_map(self, stores: Any, store_ids: list[int]) -> dict[int, Store]:
        """Directory stores by id; ids the directory does not know are classified by id."""
        directory = {} if isinstance(stores, Exception) else {s.store_id: s for s in stores}
        for store_id in store_ids:
            if store_id not in directory:
                directory[store_id] = Store(
                    store_id, f"Depot {store_id}", self.classifier.classify(store_id)
                )
        return directory

    # --- Store mapping validation ---

    def validate_store_mapping(self, force_refresh: bool = False) -> StoreMappingValidation:
        return self.mapping_validator.validate(force_refresh=force_refresh)

    @staticmethod
    def _optional(results: dict[str, Any], name: str, what: str) -> Any:
        """A fan-out result, or None after logging when that read failed."""
        value = results[name]
        if isinstance(value, Exception):
            logger.warning("%s unavailable: %s", what, value)
            return None
        return value

    # --- Single product ---

    def assess_product(
        self,
        product_code: str,
        start: date | None = None,
        end: date | None = None,
        window_override: ReplenishmentWindow | dict | None = None,
        cancel_event: threading.Event | None = None,
        reference_date: date | None = None,
    ) -> ProductAssessment:
        """
        Evaluate one product.

        Args:
            product_code: Canonical base code
            start, end: Optional sales period (inclusive); stock and
                purchases are never date filtered
            window_override: Semaphore window taking precedence over the
                supplier/category configuration
            cancel_event: Set it to abandon the request
            reference_date: "Today" for day counts (defaults to date.today())

        Raises:
            SourceUnavailableError: stock, sales and purchases all failed
            AssessmentCancelled: cancel_event was set
            ComputationError: unexpected arithmetic failure
        """
        reference_date = reference_date or date.today()
        codes = [product_code]
        reads = self._read_pool()
        try:
            results = self._fan_out(
                {
                    "stock": lambda: self.stock_source.fetch_stock(codes),
                    "sales": lambda: self.sales_source.fetch_sales(codes),
                    "purchases": lambda: self.purchase_source.fetch_purchases(codes),
                    "stores": self.store_directory.stores,
                    "product": lambda: self.store_directory.product(product_code),
                    "mapping": self.validate_store_mapping,
                },
                cancel_event,
                reads,
            )
        finally:
            reads.shutdown(wait=False, cancel_futures=True)

        failed = {name for name in FACT_SOURCES if isinstance(results[name], Exception)}
        if failed == set(FACT_SOURCES):
            logger.error("All fact sources unavailable for %s", product_code)
            raise SourceUnavailableError(
                "; ".join(str(results[name]) for name in FACT_SOURCES)
            )
        for name in sorted(failed):
            logger.warning("Degrading %s for %s: %s", name, product_code, results[name])
        if isinstance(results["stores"], Exception):
            logger.warning("Store directory unavailable: %s", results["stores"])
        product = self._optional(results, "product", f"Product master for {product_code}")
        mapping = self._optional(results, "mapping", "Store mapping validation")

        builder = SnapshotBuilder()
        if "stock" in failed:
            builder.mark_degraded("stock")
        else:
            builder.add_stock(results["stock"], pending_available=self.stock_source.has_pending)
        if "sales" in failed:
            builder.mark_degraded("sales")
        else:
            builder.add_sales(results["sales"], window=(start, end))
        if "purchases" in failed:
            builder.mark_degraded("purchases")
        else:
            builder.add_purchases(results["purchases"])
        snapshot = builder.build()

        if _cancelled(cancel_event):
            raise AssessmentCancelled(f"Cancelled while assessing {product_code}")

        try:
            assessment = self._assess(
                product_code,
                product,
                snapshot,
                sales=[] if "sales" in failed else results["sales"],
                stores=results["stores"],
                start=start,
                end=end,
                window_override=window_override,
                reference_date=reference_date,
                mapping=mapping,
            )
        except (ArithmeticError, ValueError, TypeError) as e:
            raise ComputationError(f"{product_code}: {e}") from e

        if _cancelled(cancel_event):
            raise AssessmentCancelled(f"Cancelled while assessing {product_code}")
        return assessment

    def _assess(
        self,
        product_code: str,
        product: Product | None,
        snapshot: InventorySnapshot,
        sales: list[SalesRecord],
        stores: Any,
        start: date | None,
        end: date | None,
        window_override: ReplenishmentWindow | dict | None,
        reference_date: date,
        mapping: StoreMappingValidation | None,
    ) -> ProductAssessment:
        degraded = snapshot.degraded_sources

        stock_total = None if "stock" in degraded else snapshot.stock_total(product_code)
        units = None if "sales" in degraded else snapshot.units_sold(product_code)
        revenue = None if "sales" in degraded else snapshot.revenue(product_code)
        last = snapshot.last_purchase(product_code)

        window, warnings = self.config_book.resolve(
            category_id=product.category_id if product else None,
            supplier_id=product.supplier_id if product else None,
            override=window_override,
        )

        window_units = None
        override_pace = None
        units_since = None
        if last is not None and "sales" not in degraded:
            own_sales = [r for r in sales if r.product_code == product_code]
            window_units = units_in_window(own_sales, last.purchase_date, window.window_days)
            units_since = sum(r.units for r in own_sales if r.sale_date >= last.purchase_date)
            if self.settings.pace_from_sales_since_purchase:
                override_pace = pace_since_purchase(own_sales, last.purchase_date, reference_date)

        semaphore = classify(
            stock_on_hand=stock_total,
            last_purchase_date=last.purchase_date if last else None,
            window_units=window_units,
            window=window,
            reference_date=reference_date,
            override_pace=override_pace,
        )

        period_days = (end - start).days + 1 if start and end and end >= start else None
        daily_pace = semaphore.pace if semaphore.pace is not None else pace(units, period_days)
        asp = average_selling_price(revenue, units)
        cost = last.unit_cost if last else None
        cost_taxed = cost_with_tax(cost, self.settings.tax_multiplier)

        kpis = ProductKPIs(
            units_sold=units,
            revenue=float(revenue) if revenue is not None else None,
            stock_on_hand=stock_total,
            pending=None if "stock" in degraded else snapshot.pending_total(product_code),
            asp=asp,
            unit_cost=float(cost) if cost is not None else None,
            cost_with_tax=cost_taxed,
            margin_pct=margin_pct(asp, cost_taxed),
            markup_pct=markup_pct(asp, cost_taxed),
            sell_through_pct=sell_through_pct(units, stock_total),
            pace=daily_pace,
            days_of_stock=days_of_stock(stock_total, daily_pace),
        )

        size_rows = snapshot.size_rows(product_code)
        insights = []
        if stock_total is not None:
            insights = self.insight_engine.evaluate(
                InsightContext(
                    stock_on_hand=stock_total,
                    units_sold=units or 0,
                    units_purchased=last.quantity if last else 0,
                    sizes=size_rows,
                    units_since_purchase=units_since,
                )
            )

        return ProductAssessment(
            product_code=product_code,
            description=product.description if product else None,
            brand=product.brand if product else None,
            period_start=start,
            period_end=end,
            kpis=kpis,
            semaphore=semaphore,
            insights=insights,
            last_purchase=(
                LastPurchaseInfo(
                    purchase_date=last.purchase_date,
                    quantity=last.quantity,
                    unit_cost=float(last.unit_cost) if last.unit_cost is not None else None,
                )
                if last
                else None
            ),
            sizes=[
                SizeBreakdown(
                    size=r.size, stock=r.stock, units_sold=r.units_sold, purchased=r.purchased
                )
                for r in size_rows
            ],
            matrix=self._matrix(snapshot, product_code, stores, mapping),
            degraded_sources=sorted(degraded),
            config_warnings=self._config_warnings + warnings,
            store_mapping=mapping,
        )

    def _matrix(
        self,
        snapshot: InventorySnapshot,
        product_code: str,
        stores: Any,
        mapping: StoreMappingValidation | None,
    ) -> SizeStoreMatrix:
        def as_cells(value: str) -> dict[str, dict[int, int]]:
            frame = snapshot.matrix(product_code, value)
            return {
                str(size): {
                    int(store_id): int(n)
                    for store_id, n in row.items()
                    if int(store_id) not in self.hidden_ids
                }
                for size, row in frame.to_dict(orient="index").items()
            }

        stock = as_cells("on_hand")
        sold = as_cells("units_sold")
        store_ids = sorted({s for cells in (stock, sold) for row in cells.values() for s in row})

        by_store = self._store_map(stores, store_ids)
        depot_mode = mapping is not None and mapping.mode == "depot"
        refs = [
            StoreRef(
                store_id=store_id,
                name=f"Depot {store_id}" if depot_mode else by_store[store_id].name,
                store_class=by_store[store_id].store_class.value,
            )
            for store_id in store_ids
        ]
        return SizeStoreMatrix(
            sizes=snapshot.sizes(product_code),
            stores=refs,
            stock=stock,
            units_sold=sold,
            unresolved_rows=dict(snapshot.unresolved),
        )

    # --- Batch redistribution ---

    def _evaluate_for_alerts(
        self,
        product: ProductSales,
        start: date,
        end: date,
        stores: Any,
        cancel_event: threading.Event | None,
        reads: ThreadPoolExecutor,
    ) -> tuple[ProductStoreView, list[RedistributionAlert]]:
        code = product.product_code
        results = self._fan_out(
            {
                "stock": lambda: self.stock_source.fetch_stock([code]),
                "sales": lambda: self.sales_source.fetch_sales([code], start, end),
            },
            cancel_event,
            reads,
        )
        if isinstance(results["stock"], Exception):
            error = results["stock"]
            raise DataFetchError("stock", str(error), required=True) from error

        builder = SnapshotBuilder().add_stock(results["stock"], pending_available=False)
        if isinstance(results["sales"], Exception):
            logger.warning("Degrading sales for %s: %s", code, results["sales"])
            builder.mark_degraded("sales")
        else:
            builder.add_sales(results["sales"], window=(start, end))
        snapshot = builder.build()

        directory = self._store_map(stores, snapshot.store_ids(code))
        view = build_store_view(
            snapshot, code, directory, description=product.description, hidden_ids=self.hidden_ids
        )
        return view, self.detector.detect(view)

    def detect_redistribution(
        self,
        start: date | None = None,
        end: date | None = None,
        top_n: int | None = None,
        page: int = 1,
        page_size: int | None = None,
        cancel_event: threading.Event | None = None,
        reference_date: date | None = None,
    ) -> RedistributionReport:
        """
        Redistribution alerts over the top sellers of a period.

        Defaults to the 30 days ending at the reference date. Products are
        evaluated on a pool of `max_workers` threads, and every upstream read
        of the batch shares one read pool of the same size, so the data store
        never sees more than `max_workers` concurrent reads. A product whose
        evaluation fails is reported in `failures` and the batch goes on.

        Raises:
            SourceUnavailableError: the top sellers could not be read
            AssessmentCancelled: cancel_event was set
        """
        end = end or reference_date or date.today()
        start = start or end - timedelta(days=DEFAULT_BATCH_PERIOD_DAYS)
        top_n = top_n or self.settings.top_products_limit
        page_size = page_size or self.settings.page_size
        page = max(page, 1)

        alerts: list[RedistributionAlert] = []
        failures: list[ProductFailure] = []
        views: list[ProductStoreView] = []

        reads = self._read_pool()
        pool = ThreadPoolExecutor(max_workers=self.settings.max_workers, thread_name_prefix="redistribution")
        try:
            head = self._fan_out(
                {
                    "top": lambda: self.sales_source.top_products(start, end, top_n),
                    "stores": self.store_directory.stores,
                },
                cancel_event,
                reads,
            )
            top = head["top"]
            if isinstance(top, Exception):
                logger.error("Cannot read top products for %s..%s: %s", start, end, top)
                raise SourceUnavailableError(f"top products: {top}") from top
            stores = head["stores"]
            if isinstance(stores, Exception):
                logger.warning("Store directory unavailable, classifying by id: %s", stores)

            futures = {
                pool.submit(self._evaluate_for_alerts, product, start, end, stores, cancel_event, reads): product
                for product in top
            }
            pending = set(futures)
            while pending:
                if _cancelled(cancel_event):
                    raise AssessmentCancelled("Redistribution batch cancelled")
                done, pending = wait(pending, timeout=POLL_INTERVAL_SECONDS, return_when=FIRST_COMPLETED)
                for future in done:
                    product = futures[future]
                    try:
                        view, found = future.result()
                    except AssessmentCancelled:
                        raise
                    except Exception as e:
                        logger.warning("Product %s failed: %s", product.product_code, e)
                        failures.append(
                            ProductFailure(
                                product_code=product.product_code,
                                error_type=type(e).__name__,
                                message=str(e),
                            )
                        )
                        continue
                    views.append(view)
                    alerts.extend(found)
        finally:
            pool.shutdown(wait=False, cancel_futures=True)
            reads.shutdown(wait=False, cancel_futures=True)

        ranked = rank_alerts(alerts)
        by_severity, by_type = summarize(ranked)
        total_pages = max(1, math.ceil(len(ranked) / page_size))
        offset = (page - 1) * page_size

        logger.info(
            "Redistribution %s..%s: %d products, %d alerts, %d failures",
            start,
            end,
            len(top),
            len(ranked),
            len(failures),
        )

        return RedistributionReport(
            period_start=start,
            period_end=end,
            alerts=ranked[offset : offset + page_size],
            page_info=PageInfo(
                page=page, page_size=page_size, total_items=len(ranked), total_pages=total_pages
            ),
            statistics=BatchStatistics(
                products_analyzed=len(top),
                products_with_central_stock=sum(1 for v in views if v.central_stock > 0),
                products_with_store_sales=sum(
                    1 for v in views if any(s.units_sold > 0 for s in v.stores)
                ),
                alerts_by_severity=by_severity,
                alerts_by_type=by_type,
            ),
            failures=sorted(failures, key=lambda f: f.product_code),
        )
