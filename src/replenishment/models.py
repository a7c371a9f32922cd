"""
Structured outputs of the engine.

Pydantic models so that assessments and alert reports can be handed to
any presentation layer (HTTP endpoint, CLI report, scheduled job) as
validated, serializable data. None always means "no data".
"""

from datetime import date, datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field


class SemaphoreColor(str, Enum):
    """Replenishment health codes."""

    RED = "red"  # Oversupply
    GREEN = "green"  # Reorder now
    BLACK = "black"  # Normal
    WHITE = "white"  # Insufficient data


class SemaphoreResult(BaseModel):
    """Outcome of the replenishment classifier for one product."""

    color: SemaphoreColor
    days_real: float | None = Field(
        default=None, description="Days the current stock lasts at the current pace"
    )
    days_expected: float | None = Field(
        default=None, description="Days left in the window since the last purchase"
    )
    pace: float | None = Field(default=None, description="Units sold per day")
    window_units: int | None = Field(
        default=None, description="Units sold in the lookback window before the last purchase"
    )
    stock_on_hand: int | None = None
    last_purchase_date: date | None = None
    days_since_last_purchase: int | None = None
    window_days: int
    reorder_threshold_days: int
    pace_overridden: bool = False
    explanation: str


class Insight(BaseModel):
    """A prioritized recommendation produced by one insight rule."""

    type: Literal["success", "warning", "error", "info"]
    title: str
    message: str
    stars: int = Field(ge=1, le=5)


class ProductKPIs(BaseModel):
    units_sold: int | None = None
    revenue: float | None = None
    stock_on_hand: int | None = None
    pending: int | None = None
    asp: float | None = Field(default=None, description="Average selling price")
    unit_cost: float | None = Field(default=None, description="Last purchase cost, before tax")
    cost_with_tax: float | None = None
    margin_pct: float | None = None
    markup_pct: float | None = None
    sell_through_pct: float | None = None
    pace: float | None = Field(default=None, description="Units per day")
    days_of_stock: float | None = None


class StoreRef(BaseModel):
    store_id: int
    name: str
    store_class: str


class SizeStoreMatrix(BaseModel):
    """Sizes x stores view of stock and units sold.

    Cells are keyed by size, then by store id. Rows whose size could not
    be resolved are counted in `unresolved_rows`, not shown as a size.
    """

    sizes: list[str]
    stores: list[StoreRef]
    stock: dict[str, dict[int, int]]
    units_sold: dict[str, dict[int, int]]
    unresolved_rows: dict[str, int] = Field(default_factory=dict)


class SizeBreakdown(BaseModel):
    size: str
    stock: int
    units_sold: int
    purchased: int


class LastPurchaseInfo(BaseModel):
    purchase_date: date
    quantity: int
    unit_cost: float | None = None


class StoreMappingValidation(BaseModel):
    """Whether stock depot ids can be read as store ids."""

    is_valid: bool
    depots_checked: int
    matching_depots: int
    missing_mappings: list[int] = Field(default_factory=list)
    warning: str | None = None
    validated_at: datetime
    mode: Literal["store", "depot"]


class ProductAssessment(BaseModel):
    """Everything computed for one product from one snapshot."""

    product_code: str
    description: str | None = None
    brand: str | None = None
    period_start: date | None = None
    period_end: date | None = None
    kpis: ProductKPIs
    semaphore: SemaphoreResult
    insights: list[Insight]
    last_purchase: LastPurchaseInfo | None = None
    sizes: list[SizeBreakdown]
    matrix: SizeStoreMatrix
    degraded_sources: list[str] = Field(default_factory=list)
    config_warnings: list[str] = Field(default_factory=list)
    store_mapping: StoreMappingValidation | None = None


class AffectedStore(BaseModel):
    store_id: int
    name: str
    units_sold: int
    sales_share_pct: float
    stock: int
    status: Literal["SIN STOCK", "BAJO STOCK", "NECESITA STOCK", "EXCESO STOCK"]


class AlertType(str, Enum):
    CENTRAL_STOCK_NOT_DISTRIBUTED = "central_stock_not_distributed"
    IMBALANCED_ACROSS_STORES = "imbalanced_across_stores"


class RedistributionAlert(BaseModel):
    product_code: str
    description: str | None = None
    type: AlertType
    severity: Literal["alta", "media", "baja"]
    total_units_sold: int
    total_revenue: float
    central_stock: int
    affected_stores: list[AffectedStore]
    affected_sales_volume: int = Field(description="Units sold by the affected stores")
    total_excess_stock: int | None = None
    total_needed_stock: int | None = None


class ProductFailure(BaseModel):
    """A product whose evaluation failed inside a batch."""

    product_code: str
    error_type: str
    message: str


class PageInfo(BaseModel):
    page: int
    page_size: int
    total_items: int
    total_pages: int


class BatchStatistics(BaseModel):
    products_analyzed: int
    products_with_central_stock: int
    products_with_store_sales: int
    alerts_by_severity: dict[str, int]
    alerts_by_type: dict[str, int]


class RedistributionReport(BaseModel):
    period_start: date
    period_end: date
    alerts: list[RedistributionAlert]
    page_info: PageInfo
    statistics: BatchStatistics
    failures: list[ProductFailure] = Field(default_factory=list)
