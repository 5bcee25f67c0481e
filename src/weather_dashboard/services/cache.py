"""Expiring caches for raw weather snapshots and formatted city records."""

from __future__ import annotations

import math
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar, cast

import structlog
from cachetools import TTLCache
from prometheus_client import Counter, Gauge

from weather_dashboard.config import Settings

if TYPE_CHECKING:
    from weather_dashboard.api.schemas import FormattedCity
    from weather_dashboard.services.open_meteo import WeatherSnapshot

logger = structlog.get_logger()

K = TypeVar("K")
V = TypeVar("V")

RAW_WEATHER_PREFIX = "raw_weather"
FORMATTED_CITY_PREFIX = "formatted_city"
_HEALTH_CHECK_KEY = object()

# Metrics
cache_hits = Counter("cache_hits_total", "Total cache hits", ["tier"])
cache_misses = Counter("cache_misses_total", "Total cache misses", ["tier"])
cache_evictions = Counter("cache_evictions_total", "Entries removed by sweeps", ["tier"])
cache_size_gauge = Gauge("cache_size", "Current number of cache entries", ["tier"])


def raw_weather_key(lat: float, lon: float) -> str:
    """Create the raw weather cache key for coordinates.

    Coordinates are rounded to 4 decimal places (about 11 m) so repeated
    lookups for the same city hit despite floating-point jitter.
    """
    # Adding 0.0 folds -0.0 into 0.0
    lat_rounded = round(lat, 4) + 0.0
    lon_rounded = round(lon, 4) + 0.0
    return f"{RAW_WEATHER_PREFIX}:{lat_rounded:.4f}:{lon_rounded:.4f}"


def formatted_city_key(city_id: int) -> str:
    """Create the formatted city cache key for a catalog id."""
    return f"{FORMATTED_CITY_PREFIX}:{city_id}"


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    """A cached payload with its write and expiry times."""

    payload: V
    created_at: float
    expires_at: float


class ExpiringCache(Generic[K, V]):
    """Unbounded TTL cache whose entries expire at read time or on sweeps."""

    def __init__(
        self,
        tier: str,
        ttl_seconds: float,
        *,
        sweep_probability: float = 0.1,
        timer: Callable[[], float] = time.time,
        rng: Callable[[], float] = random.random,
    ) -> None:
        """Initialize an empty cache tier."""
        self.tier = tier
        self.ttl_seconds = ttl_seconds
        self._sweep_probability = sweep_probability
        self._timer = timer
        self._rng = rng
        self._entries: TTLCache[K, CacheEntry[V]] = TTLCache(
            maxsize=math.inf,
            ttl=ttl_seconds,
            timer=timer,
        )

    def get(self, key: K) -> CacheEntry[V] | None:
        """Return the entry stored under key, or None if absent or expired."""
        entry: CacheEntry[V] | None = self._entries.get(key)
        if entry is not None and self.is_valid(entry):
            cache_hits.labels(tier=self.tier).inc()
            return entry
        cache_misses.labels(tier=self.tier).inc()
        return None

    def is_valid(self, entry: CacheEntry[V]) -> bool:
        """Check whether an entry is still inside its TTL window."""
        return self._timer() < entry.expires_at

    def set(self, key: K, payload: V) -> CacheEntry[V]:
        """Store payload under key, replacing any previous entry."""
        now = self._timer()
        entry = CacheEntry(payload=payload, created_at=now, expires_at=now + self.ttl_seconds)
        self._entries[key] = entry
        cache_size_gauge.labels(tier=self.tier).set(len(self._entries))
        return entry

    def sweep(self) -> int:
        """Remove every entry whose expiry time has passed."""
        removed = len(self._entries.expire())
        if removed:
            cache_evictions.labels(tier=self.tier).inc(removed)
            logger.debug("Swept expired cache entries", tier=self.tier, removed=removed)
        cache_size_gauge.labels(tier=self.tier).set(len(self._entries))
        return removed

    def maybe_sweep(self) -> bool:
        """Sweep with the configured probability.

        Returns True if a sweep ran.
        """
        if self._rng() >= self._sweep_probability:
            return False
        self.sweep()
        return True

    def clear(self) -> None:
        """Clear all cache entries."""
        self._entries.clear()
        cache_size_gauge.labels(tier=self.tier).set(0)

    @property
    def size(self) -> int:
        """Return the number of stored entries, including unswept expired ones."""
        return len(self._entries)

    def is_healthy(self) -> bool:
        """Check that the tier can store and return an entry.

        Writes a sentinel entry, reads it back and removes it again. Fails when
        the TTL window is empty or the timer is broken.
        """
        key = cast(K, _HEALTH_CHECK_KEY)
        now = self._timer()
        entry: CacheEntry[V] = CacheEntry(
            payload=cast(V, None), created_at=now, expires_at=now + self.ttl_seconds
        )
        try:
            self._entries[key] = entry
            stored = self._entries.get(key)
        finally:
            self._entries.pop(key, None)
        return stored is entry and self.is_valid(entry)


class WeatherCaches:
    """Owner of the two independent cache tiers.

    Raw snapshots are keyed by rounded coordinates and formatted city records
    by catalog id. Each tier has its own TTL window counted from its own write.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        timer: Callable[[], float] = time.time,
        rng: Callable[[], float] = random.random,
    ) -> None:
        """Create both tiers from settings."""
        self.raw: ExpiringCache[str, WeatherSnapshot] = ExpiringCache(
            RAW_WEATHER_PREFIX,
            settings.cache_ttl_seconds,
            sweep_probability=settings.cache_sweep_probability,
            timer=timer,
            rng=rng,
        )
        self.formatted: ExpiringCache[str, FormattedCity] = ExpiringCache(
            FORMATTED_CITY_PREFIX,
            settings.cache_ttl_seconds,
            sweep_probability=settings.cache_sweep_probability,
            timer=timer,
            rng=rng,
        )

    def clear(self) -> None:
        """Clear both tiers."""
        self.raw.clear()
        self.formatted.clear()

    def is_healthy(self) -> bool:
        """Check both tiers."""
        return self.raw.is_healthy() and self.formatted.is_healthy()
