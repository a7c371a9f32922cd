"""
Read-through cache for the store/depot mapping validation.

Stock rows are keyed by depot id and the store directory by store id.
The validator samples depot ids from stock and checks how many of them
are known stores; the result decides whether matrices can be labelled
per store or only per depot. Validation touches the data store, so the
result is cached for a day.
"""

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Generic, TypeVar

from .models import StoreMappingValidation

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ValidationCache(Generic[T]):
    """
    Single-entry TTL cache with first-success-wins population.

    Loading happens under the lock, so concurrent callers wait for the
    first loader and then reuse its value. A failing loader leaves the
    cache empty for the next caller to retry.
    """

    def __init__(self, ttl_seconds: float = 24 * 60 * 60, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._value: T | None = None
        self._expires_at: float | None = None

    def _fresh(self) -> bool:
        return self._expires_at is not None and self._clock() < self._expires_at

    def peek(self) -> T | None:
        """Cached value if still valid, without loading."""
        with self._lock:
            return self._value if self._fresh() else None

    def get_or_load(self, loader: Callable[[], T]) -> T:
        with self._lock:
            if self._fresh():
                return self._value
            value = loader()
            self._value = value
            self._expires_at = self._clock() + self.ttl_seconds
            return value

    def invalidate(self) -> None:
        with self._lock:
            self._value = None
            self._expires_at = None


class StoreMappingValidator:
    """Checks that stock depot ids resolve to stores in the directory."""

    def __init__(
        self,
        stock_source,
        store_directory,
        cache: ValidationCache[StoreMappingValidation] | None = None,
        sample_size: int = 20,
        min_match_rate: float = 0.8,
    ):
        self.stock_source = stock_source
        self.store_directory = store_directory
        self.cache = cache or ValidationCache()
        self.sample_size = sample_size
        self.min_match_rate = min_match_rate

    def validate(self, force_refresh: bool = False) -> StoreMappingValidation:
        if force_refresh:
            self.cache.invalidate()
        return self.cache.get_or_load(self._run)

    def _run(self) -> StoreMappingValidation:
        depots = sorted(set(self.stock_source.depot_ids()))[: self.sample_size]
        known = {store.store_id for store in self.store_directory.stores()}
        matching = [d for d in depots if d in known]
        missing = [d for d in depots if d not in known]

        rate = len(matching) / len(depots) if depots else 0.0
        is_valid = bool(depots) and rate >= self.min_match_rate

        warning = None
        if not is_valid:
            warning = (
                f"Only {len(matching)} of {len(depots)} sampled depots map to a store "
                f"({rate:.0%}); showing depot ids instead of store names."
            )
            logger.warning("%s", warning)
        else:
            logger.info("Depot to store mapping valid (%d/%d)", len(matching), len(depots))

        return StoreMappingValidation(
            is_valid=is_valid,
            depots_checked=len(depots),
            matching_depots=len(matching),
            missing_mappings=missing,
            warning=warning,
            validated_at=datetime.now(timezone.utc),
            mode="store" if is_valid else "depot",
        )
