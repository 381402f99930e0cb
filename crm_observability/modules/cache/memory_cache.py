"""
In-process TTL cache that reports every operation to the metric store.

Backs the cache hit-rate figures used by the dashboard and the cache alerts.
"""

import json
import time
from threading import Lock
from typing import Any, Callable, Dict, Optional, Tuple

from cachetools import TLRUCache

from crm_observability.logger import logger
from crm_observability.modules.observability.metrics import CacheOperation, MetricStore

DEFAULT_TTL_SECONDS = 60

CACHE_DURATIONS: Dict[str, int] = {
    "short": 60,
    "medium": 300,
    "long": 900,
    "very_long": 3600,
}


def generate_cache_key(prefix: str, params: Dict[str, Any]) -> str:
    """
    Build a deterministic cache key from a prefix and parameters.

    Parameters are ordered by name, so argument order does not matter.

    Example:
        >>> generate_cache_key("leads", {"page": 2, "status": "new"})
        'leads-page:2-status:new'
    """
    parts = "-".join(f"{name}:{params[name]}" for name in sorted(params))
    return f"{prefix}-{parts}"


def _payload_size(value: Any) -> Optional[int]:
    try:
        return len(json.dumps(value, default=str))
    except (TypeError, ValueError):
        return None


class MonitoredMemoryCache:
    """
    Per-entry TTL cache emitting hit, miss, set and delete cache events.

    An expired entry reads as a miss. Entries are evicted least recently
    used once ``max_size`` is reached.

    Example:
        cache = MonitoredMemoryCache(store)
        cache.set("clients-list", rows, ttl=300)
        rows = cache.get("clients-list")   # records a hit
    """

    def __init__(
        self,
        metrics_store: MetricStore,
        max_size: int = 1000,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        timer: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize memory cache.

        Args:
            metrics_store: Store receiving cache events
            max_size: Maximum number of entries
            default_ttl: Entry lifetime in seconds when set() passes none
            timer: Monotonic clock in seconds
        """
        self.metrics_store = metrics_store
        self.default_ttl = default_ttl
        self._cache: TLRUCache = TLRUCache(
            maxsize=max_size,
            ttu=self._time_to_use,
            timer=timer,
        )
        self._lock = Lock()
        logger.info(f"MonitoredMemoryCache initialized: max_size={max_size}, ttl={default_ttl}s")

    @staticmethod
    def _time_to_use(key: str, entry: Tuple[Any, float], now: float) -> float:
        return now + entry[1]

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None on a missing or expired entry."""
        with self._lock:
            try:
                value, _ = self._cache[key]
            except KeyError:
                value = None
                operation = CacheOperation.MISS
            else:
                operation = CacheOperation.HIT

        self.metrics_store.track_cache_operation(key, operation)
        return value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store a value for ``ttl`` seconds (default: cache default)."""
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            self._cache[key] = (value, ttl)

        self.metrics_store.track_cache_operation(
            key, CacheOperation.SET, ttl=ttl, size=_payload_size(value)
        )

    def delete(self, key: str) -> None:
        """Remove an entry; records a delete event even if the key was absent."""
        with self._lock:
            self._cache.pop(key, None)

        self.metrics_store.track_cache_operation(key, CacheOperation.DELETE)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def cleanup(self) -> int:
        """Drop expired entries without recording events.

        Returns:
            Number of entries removed
        """
        with self._lock:
            expired = self._cache.expire()
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)
