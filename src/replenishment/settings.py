"""
Engine settings.

Loaded from environment variables prefixed with REPLENISHMENT_ (or a .env
file). List values are given as JSON, e.g.
REPLENISHMENT_CENTRAL_STORE_IDS='[99, 999]'.
"""

import logging
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings

from .metrics import DEFAULT_TAX_MULTIPLIER

logger = logging.getLogger(__name__)


class EngineSettings(BaseSettings):
    """Typed configuration for the replenishment engine."""

    # Pricing
    tax_multiplier: float = Field(
        default=DEFAULT_TAX_MULTIPLIER, gt=0, description="Applied to raw purchase cost"
    )

    # Orchestration
    fetch_timeout_seconds: float = Field(
        default=30.0, gt=0, description="Deadline for each fact-source read"
    )
    max_workers: int = Field(
        default=4, ge=1, description="Concurrent upstream reads per call; match the data store pool size"
    )

    # Store mapping validation
    validation_cache_ttl_seconds: int = Field(default=24 * 60 * 60, gt=0)
    store_mapping_sample_size: int = Field(default=20, ge=1)
    store_mapping_min_match_rate: float = Field(default=0.8, ge=0, le=1)

    # Semaphore
    semaphore_config_path: str | None = Field(
        default=None, description="JSON file with default/by_supplier/by_category windows"
    )
    pace_from_sales_since_purchase: bool = Field(
        default=False,
        description="Use units sold since the last purchase as an override pace",
    )

    # Batch redistribution
    top_products_limit: int = Field(default=150, ge=1)
    page_size: int = Field(default=20, ge=1)

    # Store classification
    central_store_ids: list[int] = Field(default_factory=lambda: [99, 999])
    outlet_store_ids: list[int] = Field(default_factory=lambda: [31, 32, 117, 131, 940])
    web_store_ids: list[int] = Field(default_factory=lambda: [701, 702, 704])
    hidden_store_ids: list[int] = Field(
        default_factory=lambda: [91, 802, 900, 902, 903],
        description="Depots never shown in matrices or alerts",
    )

    class Config:
        env_prefix = "REPLENISHMENT_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


@lru_cache
def get_settings() -> EngineSettings:
    """Get cached settings instance."""
    settings = EngineSettings()
    if not settings.semaphore_config_path:
        logger.info("No semaphore config file set; using built-in defaults")
    return settings
