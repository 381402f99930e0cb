"""Decorators and helpers that feed handler, database and timing events into a MetricStore."""

import functools
import inspect
import time
import traceback
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .metrics_store import MetricStore
from .schemas import ErrorMetric, ErrorSeverity

T = TypeVar("T")

CRITICAL_MARKERS = ("ECONNREFUSED", "Connection refused", "Database", "FATAL")
MEDIUM_MARKERS = ("Unauthorized", "Forbidden")
LOW_MARKERS = ("Not found", "Bad request")


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def measure_time(store: MetricStore, metric_name: Optional[str] = None):
    """Decorator recording the duration of each call as a performance sample.

    Works for both plain and coroutine functions.

    Args:
        store: Metric store receiving the samples
        metric_name: Sample name (defaults to function name)

    Example:
        @measure_time(store, "leads.export")
        def export_leads(rows): ...
    """
    def decorator(fn: Callable) -> Callable:
        name = metric_name or fn.__name__

        if inspect.iscoroutinefunction(fn):
            @functools.wraps(fn)
            async def async_wrapper(*args, **kwargs) -> Any:
                start = time.perf_counter()
                try:
                    return await fn(*args, **kwargs)
                finally:
                    store.track_performance(name, _elapsed_ms(start), "ms")

            return async_wrapper

        @functools.wraps(fn)
        def sync_wrapper(*args, **kwargs) -> Any:
            start = time.perf_counter()
            try:
                return fn(*args, **kwargs)
            finally:
                store.track_performance(name, _elapsed_ms(start), "ms")

        return sync_wrapper

    return decorator


async def measure_async_time(
    store: MetricStore,
    operation: Callable[[], Awaitable[T]],
    metric_name: str,
) -> T:
    """Await ``operation`` and record its duration under ``metric_name``."""
    start = time.perf_counter()
    try:
        return await operation()
    finally:
        store.track_performance(metric_name, _elapsed_ms(start), "ms")


def classify_error_severity(message: str) -> ErrorSeverity:
    """Map an error message onto a severity level.

    Connection and database failures are critical, auth failures medium,
    not-found and bad-request low, everything else high.
    """
    if any(marker in message for marker in CRITICAL_MARKERS):
        return ErrorSeverity.CRITICAL
    if any(marker in message for marker in MEDIUM_MARKERS):
        return ErrorSeverity.MEDIUM
    if any(marker in message for marker in LOW_MARKERS):
        return ErrorSeverity.LOW
    return ErrorSeverity.HIGH


def _format_stack(exc: BaseException) -> str:
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))


def track_api_error(
    store: MetricStore,
    exc: BaseException,
    endpoint: str,
    user_id: Optional[str] = None,
) -> ErrorMetric:
    """Record an exception raised by an API handler with a derived severity."""
    message = str(exc) or type(exc).__name__
    return store.track_error(
        message,
        classify_error_severity(message),
        endpoint=endpoint,
        user_id=user_id,
        stack=_format_stack(exc),
    )


def monitored(store: MetricStore, endpoint: str, method: str = "GET"):
    """Decorator recording an API metric for every call of an async handler.

    The handler result's ``status_code`` attribute is used when present,
    otherwise 200. An exception is recorded as a high-severity error plus a
    500 API call and then re-raised.

    Args:
        store: Metric store receiving the events
        endpoint: Request path reported for the handler
        method: HTTP method reported for the handler

    Example:
        @monitored(store, "/api/leads", "POST")
        async def create_lead(payload): ...
    """
    def decorator(fn: Callable) -> Callable:
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs) -> Any:
            start = time.perf_counter()
            try:
                result = await fn(*args, **kwargs)
            except Exception as e:
                store.track_error(
                    str(e) or type(e).__name__,
                    ErrorSeverity.HIGH,
                    endpoint=endpoint,
                    stack=_format_stack(e),
                )
                store.track_api_call(endpoint, method, 500, _elapsed_ms(start))
                raise

            status_code = getattr(result, "status_code", 200)
            store.track_api_call(endpoint, method, status_code, _elapsed_ms(start))
            return result

        return wrapper

    return decorator


async def monitor_database_operation(
    store: MetricStore,
    operation: Callable[[], Awaitable[T]],
    operation_name: str,
) -> T:
    """Run a database coroutine and record it as a ``DB`` call on ``/db/<name>``."""
    endpoint = f"/db/{operation_name}"
    start = time.perf_counter()
    try:
        result = await operation()
    except Exception as e:
        store.track_api_call(endpoint, "DB", 500, _elapsed_ms(start))
        track_api_error(store, e, endpoint)
        raise

    store.track_api_call(endpoint, "DB", 200, _elapsed_ms(start))
    return result
