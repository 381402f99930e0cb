"""Observability module for the CRM.

Provides the monitoring core:
- Bounded metric buffers with windowed API, cache and health aggregates
- Decorators instrumenting handlers, timed operations and database calls
- Threshold alerting with deduplication and auto-resolution
- Structured JSON logging for high-visibility events

Components:
    - metrics: Store, aggregation, instrumentation, host probe
    - logging: Structured logger
    - dashboard: Alert manager and API endpoints
"""

from .dashboard.alert_manager import Alert, AlertManager
from .logging.structured_logger import StructuredLogger, get_logger
from .metrics.metrics_store import MetricStore

__all__ = [
    "Alert",
    "AlertManager",
    "MetricStore",
    "StructuredLogger",
    "get_logger",
]
