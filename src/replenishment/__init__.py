# Inventory reconciliation and replenishment decision engine

from .aggregation import InventorySnapshot, SnapshotBuilder
from .cache import StoreMappingValidator, ValidationCache
from .errors import (
    AssessmentCancelled,
    ComputationError,
    ConfigError,
    DataFetchError,
    ReplenishmentError,
    ResolutionError,
    SourceUnavailableError,
)
from .insights import InsightContext, InsightEngine
from .keys import BaseCodeIndex, SizeResolver, resolve_size, sort_sizes
from .models import (
    Insight,
    ProductAssessment,
    RedistributionAlert,
    RedistributionReport,
    SemaphoreColor,
    SemaphoreResult,
)
from .orchestrator import ReplenishmentService
from .redistribution import AlertThresholds, RedistributionDetector
from .semaphore import ReplenishmentWindow, SemaphoreConfigBook, classify
from .settings import EngineSettings, get_settings
from .sources import PurchaseSource, SalesSource, StockSource, StoreDirectory

__all__ = [
    "InventorySnapshot",
    "SnapshotBuilder",
    "StoreMappingValidator",
    "ValidationCache",
    "AssessmentCancelled",
    "ComputationError",
    "ConfigError",
    "DataFetchError",
    "ReplenishmentError",
    "ResolutionError",
    "SourceUnavailableError",
    "InsightContext",
    "InsightEngine",
    "BaseCodeIndex",
    "SizeResolver",
    "resolve_size",
    "sort_sizes",
    "Insight",
    "ProductAssessment",
    "RedistributionAlert",
    "RedistributionReport",
    "SemaphoreColor",
    "SemaphoreResult",
    "ReplenishmentService",
    "AlertThresholds",
    "RedistributionDetector",
    "ReplenishmentWindow",
    "SemaphoreConfigBook",
    "classify",
    "EngineSettings",
    "get_settings",
    "PurchaseSource",
    "SalesSource",
    "StockSource",
    "StoreDirectory",
]
