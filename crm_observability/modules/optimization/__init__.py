"""
Request admission for the CRM API.

Provides:
- RateLimitMonitor: Fixed-window request counting per (ip, endpoint)
"""

from crm_observability.modules.optimization.rate_limiter import (
    RateLimitMonitor,
    RateLimitResult,
    RateLimitWindow,
)

__all__ = [
    "RateLimitMonitor",
    "RateLimitResult",
    "RateLimitWindow",
]
