"""
Application-side caching for the CRM.

Provides:
- MonitoredMemoryCache: Per-entry TTL cache reporting hits and misses
- generate_cache_key: Deterministic keys from a prefix and parameters
"""

from crm_observability.modules.cache.memory_cache import (
    CACHE_DURATIONS,
    MonitoredMemoryCache,
    generate_cache_key,
)

__all__ = [
    "MonitoredMemoryCache",
    "generate_cache_key",
    "CACHE_DURATIONS",
]
