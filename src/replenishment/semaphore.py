"""
Replenishment semaphore.

Maps a product's stock, sales pace and last purchase to one of four codes:
- RED: more days of stock than the purchase window has left (oversupply)
- GREEN: stock runs out before the reorder threshold (reorder now)
- BLACK: normal
- WHITE: not enough data to tell

The pace is measured over a lookback window that ends at the last purchase
date. Window length and reorder threshold come from a configuration book
that resolves per-supplier override > per-category override > default.
"""

import json
import logging
from datetime import date, timedelta
from pathlib import Path
from typing import Any, Iterable

from pydantic import BaseModel, Field, ValidationError

from .errors import ConfigError
from .metrics import pace as pace_per_day, safe_divide
from .models import SemaphoreColor, SemaphoreResult
from .records import SalesRecord

logger = logging.getLogger(__name__)


class ReplenishmentWindow(BaseModel):
    """Window and threshold used by the semaphore."""

    window_days: int = Field(default=180, gt=0, description="Lookback window for the pace")
    reorder_threshold_days: int = Field(
        default=45, gt=0, description="Fewer days of stock than this means reorder"
    )


class SemaphoreConfigBook:
    """
    Tiered semaphore configuration.

    Overrides are kept raw and validated when resolved, so one bad entry
    only affects the products it applies to. An invalid override falls
    back to the default window and the reason is returned as a warning.
    """

    def __init__(
        self,
        default: ReplenishmentWindow | None = None,
        by_supplier: dict[str, Any] | None = None,
        by_category: dict[str, Any] | None = None,
    ):
        self.default = default or ReplenishmentWindow()
        self.by_supplier = {str(k): v for k, v in (by_supplier or {}).items()}
        self.by_category = {str(k): v for k, v in (by_category or {}).items()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SemaphoreConfigBook":
        """Build from {"default": {...}, "by_supplier": {...}, "by_category": {...}}."""
        if not isinstance(data, dict):
            raise ConfigError("Semaphore config must be a JSON object")
        try:
            default = ReplenishmentWindow.model_validate(data.get("default") or {})
        except ValidationError as e:
            raise ConfigError(f"Invalid default semaphore window: {e}") from e
        return cls(
            default=default,
            by_supplier=data.get("by_supplier"),
            by_category=data.get("by_category"),
        )

    @classmethod
    def from_file(cls, path: str | Path) -> "SemaphoreConfigBook":
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot read semaphore config {path}: {e}") from e
        return cls.from_dict(data)

    @staticmethod
    def _validate(raw: Any, label: str) -> ReplenishmentWindow:
        if isinstance(raw, ReplenishmentWindow):
            return raw
        try:
            return ReplenishmentWindow.model_validate(raw)
        except ValidationError as e:
            raise ConfigError(f"Invalid {label} override: {e.errors()[0]['msg']}") from e

    def resolve(
        self,
        category_id: int | None = None,
        supplier_id: int | None = None,
        override: ReplenishmentWindow | dict | None = None,
    ) -> tuple[ReplenishmentWindow, list[str]]:
        """
        Pick the window for a product.

        Precedence: explicit request override, then supplier, then
        category, then default.

        Returns:
            (window, warnings); warnings is empty unless a matching
            override was invalid.
        """
        candidates = []
        if override is not None:
            candidates.append((override, "request"))
        if supplier_id is not None and str(supplier_id) in self.by_supplier:
            candidates.append((self.by_supplier[str(supplier_id)], f"supplier {supplier_id}"))
        if category_id is not None and str(category_id) in self.by_category:
            candidates.append((self.by_category[str(category_id)], f"category {category_id}"))

        if not candidates:
            return self.default, []

        raw, label = candidates[0]
        try:
            return self._validate(raw, label), []
        except ConfigError as e:
            logger.warning("%s; using default window", e)
            return self.default, [f"{e}. Using default window."]


def load_config_book(path: str | Path | None) -> tuple[SemaphoreConfigBook, list[str]]:
    """Load the config file, falling back to built-in defaults on any problem."""
    if not path:
        return SemaphoreConfigBook(), []
    try:
        return SemaphoreConfigBook.from_file(path), []
    except ConfigError as e:
        logger.warning("%s; using built-in defaults", e)
        return SemaphoreConfigBook(), [str(e)]


def units_in_window(
    sales: Iterable[SalesRecord], last_purchase_date: date, window_days: int
) -> int:
    """Units sold (returns excluded) in [last purchase - window, last purchase)."""
    start = last_purchase_date - timedelta(days=window_days)
    return sum(
        r.units for r in sales if r.units > 0 and start <= r.sale_date < last_purchase_date
    )


def pace_since_purchase(
    sales: Iterable[SalesRecord], last_purchase_date: date, reference_date: date
) -> float | None:
    """Units per day sold from the last purchase up to the reference date."""
    days = (reference_date - last_purchase_date).days
    if days <= 0:
        return None
    units = sum(
        r.units
        for r in sales
        if r.units > 0 and last_purchase_date <= r.sale_date <= reference_date
    )
    return pace_per_day(units, days)


def classify(
    stock_on_hand: int | None,
    last_purchase_date: date | None,
    window_units: int | None,
    window: ReplenishmentWindow | None = None,
    reference_date: date | None = None,
    override_pace: float | None = None,
) -> SemaphoreResult:
    """
    Classify one product. The first matching rule wins:

    1. No last purchase date -> WHITE
    2. Stock <= 0 -> GREEN with days_real = 0
    3. No positive pace (window sales, or the override when given) -> WHITE
    4. days_real > days_expected > 0 -> RED
    5. days_real < reorder threshold -> GREEN
    6. Otherwise BLACK

    A stock of None means the stock source was unavailable and gives WHITE.
    """
    window = window or ReplenishmentWindow()
    reference_date = reference_date or date.today()
    base = {
        "stock_on_hand": stock_on_hand,
        "last_purchase_date": last_purchase_date,
        "window_days": window.window_days,
        "reorder_threshold_days": window.reorder_threshold_days,
    }

    if last_purchase_date is None:
        return SemaphoreResult(
            color=SemaphoreColor.WHITE,
            explanation="No last purchase date available; cannot evaluate replenishment.",
            **base,
        )

    days_since = (reference_date - last_purchase_date).days
    base["days_since_last_purchase"] = days_since

    if stock_on_hand is None:
        return SemaphoreResult(
            color=SemaphoreColor.WHITE,
            explanation="Stock data unavailable; cannot evaluate replenishment.",
            **base,
        )

    if stock_on_hand <= 0:
        return SemaphoreResult(
            color=SemaphoreColor.GREEN,
            days_real=0.0,
            window_units=window_units,
            explanation=(
                f"Out of stock (stock={stock_on_hand}). "
                f"Last purchase {last_purchase_date.isoformat()}, {days_since} days ago. "
                "Reorder now."
            ),
            **base,
        )

    overridden = override_pace is not None
    if overridden:
        pace = override_pace
    elif window_units:
        pace = pace_per_day(window_units, window.window_days)
    else:
        pace = None

    if pace is None or pace <= 0:
        if overridden:
            reason = f"Override pace is {override_pace:.2f} units/day"
        else:
            reason = (
                f"No sales in the {window.window_days} days before the last purchase "
                f"({last_purchase_date.isoformat()})"
            )
        return SemaphoreResult(
            color=SemaphoreColor.WHITE,
            window_units=window_units,
            pace=pace if overridden else None,
            pace_overridden=overridden,
            explanation=f"{reason}; cannot estimate the sales pace.",
            **base,
        )

    days_real = safe_divide(stock_on_hand, pace)
    days_expected = float(window.window_days - days_since)
    details = {
        "days_real": days_real,
        "days_expected": days_expected,
        "pace": pace,
        "window_units": window_units,
        "pace_overridden": overridden,
    }
    inputs = (
        f"stock={stock_on_hand}, pace={pace:.2f} units/day"
        f"{' (since last purchase)' if overridden else ''}, "
        f"days_real={days_real:.0f}, days_expected={days_expected:.0f}, "
        f"last purchase {last_purchase_date.isoformat()} ({days_since} days ago), "
        f"window={window.window_days}, threshold={window.reorder_threshold_days}"
    ) if days_real is not None else ""

    if days_real is None:
        color, label = SemaphoreColor.WHITE, "Days of stock could not be computed"
    elif days_real > days_expected and days_expected > 0:
        color, label = SemaphoreColor.RED, "Oversupply"
    elif days_real < window.reorder_threshold_days:
        color, label = SemaphoreColor.GREEN, "Reorder now"
    else:
        color, label = SemaphoreColor.BLACK, "Normal"

    return SemaphoreResult(
        color=color,
        explanation=f"{label}: {inputs}." if inputs else f"{label}.",
        **details,
        **base,
    )
