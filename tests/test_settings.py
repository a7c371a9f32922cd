"""Environment-driven engine settings."""

import pytest
from pydantic import ValidationError

from replenishment.settings import EngineSettings


def test_defaults(monkeypatch):
    monkeypatch.delenv("REPLENISHMENT_MAX_WORKERS", raising=False)
    settings = EngineSettings(_env_file=None)
    assert settings.tax_multiplier == pytest.approx(1.22)
    assert settings.top_products_limit == 150
    assert 99 in settings.central_store_ids
    assert settings.semaphore_config_path is None


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("REPLENISHMENT_MAX_WORKERS", "8")
    monkeypatch.setenv("REPLENISHMENT_CENTRAL_STORE_IDS", "[1, 2]")
    monkeypatch.setenv("REPLENISHMENT_PACE_FROM_SALES_SINCE_PURCHASE", "true")
    settings = EngineSettings(_env_file=None)
    assert settings.max_workers == 8
    assert settings.central_store_ids == [1, 2]
    assert settings.pace_from_sales_since_purchase is True


def test_rejects_invalid_values():
    with pytest.raises(ValidationError):
        EngineSettings(_env_file=None, store_mapping_min_match_rate=1.5)
