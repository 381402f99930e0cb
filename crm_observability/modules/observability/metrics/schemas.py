"""Schemas for ingested metric events and the aggregates computed from them."""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import Field

from crm_observability.types import ConfiguredBaseModel, FrozenBaseModel


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class CacheOperation(str, Enum):
    """Cache operation kinds."""

    HIT = "hit"
    MISS = "miss"
    SET = "set"
    DELETE = "delete"


class ErrorSeverity(str, Enum):
    """Error event severity levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class HealthStatus(str, Enum):
    """Overall system health."""

    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


class PerformanceMetric(FrozenBaseModel):
    """Free-form named sample (e.g. page load timing).

    Attributes:
        id: Unique sample identifier
        name: Sample name (e.g., "lcp", "dashboard.render")
        value: Measured value
        unit: Unit of the value (e.g., "ms")
        timestamp: When the sample was recorded
        tags: Optional dimensions
    """

    id: str
    name: str
    value: float
    unit: str
    timestamp: datetime = Field(default_factory=utc_now)
    tags: Optional[Dict[str, str]] = None


class APIMetric(FrozenBaseModel):
    """One completed HTTP handler invocation, successful or not."""

    endpoint: str
    method: str
    status_code: int
    response_time_ms: float
    timestamp: datetime = Field(default_factory=utc_now)
    user_agent: Optional[str] = None
    ip: Optional[str] = None
    user_id: Optional[str] = None


class CacheMetric(FrozenBaseModel):
    """One cache operation."""

    key: str
    operation: CacheOperation
    timestamp: datetime = Field(default_factory=utc_now)
    ttl: Optional[float] = None
    size: Optional[int] = None


class ErrorMetric(FrozenBaseModel):
    """One recorded error."""

    error: str
    severity: ErrorSeverity
    timestamp: datetime = Field(default_factory=utc_now)
    stack: Optional[str] = None
    endpoint: Optional[str] = None
    user_id: Optional[str] = None


class EndpointStats(ConfiguredBaseModel):
    """Per "METHOD path" breakdown inside APIStats."""

    endpoint: str
    count: int
    avg_response_time: float
    error_rate: float


class APIStats(ConfiguredBaseModel):
    """Windowed API aggregate.

    Attributes:
        total_requests: Requests inside the window
        avg_response_time: Mean response time in ms (0 with no requests)
        error_rate: Percentage of requests with status >= 400
        p95_response_time: 95th percentile response time in ms
        endpoint_stats: Breakdown per "METHOD path"
    """

    total_requests: int = 0
    avg_response_time: float = 0.0
    error_rate: float = 0.0
    p95_response_time: float = 0.0
    endpoint_stats: List[EndpointStats] = Field(default_factory=list)


class CacheStats(ConfiguredBaseModel):
    """Windowed cache aggregate; set/delete count in operations only."""

    hits: int = 0
    misses: int = 0
    total: int = 0
    hit_rate: float = 0.0
    operations: Dict[str, int] = Field(default_factory=dict)


class SystemHealth(ConfiguredBaseModel):
    """Last-hour health snapshot."""

    status: HealthStatus
    avg_response_time: float
    error_count: int
    critical_errors: int
    uptime_seconds: float
    memory_percent: Optional[float] = None
