"""Alert management for threshold-based monitoring and notifications.

Evaluates live API, cache and host memory figures against a fixed threshold
table on a fixed cadence. At most one open alert exists per (metric, type):
a repeated breach updates the open alert in place, and an alert is resolved
automatically once its metric is back within the threshold or manually by an
operator. Resolved alerts are kept as history up to a retention cap.
"""

import asyncio
import uuid
from datetime import datetime, timedelta
from enum import Enum
from threading import RLock
from typing import Any, Callable, Dict, List, Optional, Tuple

from crm_observability.config.monitoring_settings import AlertThresholds
from crm_observability.logger import logger
from crm_observability.types import ConfiguredBaseModel

from ..logging.structured_logger import StructuredLogger, get_logger
from ..metrics.host_probe import get_memory_usage_percent
from ..metrics.metrics_store import MetricStore
from ..metrics.schemas import APIStats, CacheStats, utc_now


class AlertType(str, Enum):
    """Alert severity levels."""

    WARNING = "warning"
    CRITICAL = "critical"


class AlertMetric(str, Enum):
    """Metrics covered by the threshold table."""

    RESPONSE_TIME = "response_time"
    ERROR_RATE = "error_rate"
    MEMORY_USAGE = "memory_usage"
    CACHE_HIT_RATE = "cache_hit_rate"


ALERT_TITLES: Dict[str, Dict[str, str]] = {
    AlertType.WARNING.value: {
        AlertMetric.RESPONSE_TIME.value: "High Response Time",
        AlertMetric.ERROR_RATE.value: "Elevated Error Rate",
        AlertMetric.MEMORY_USAGE.value: "High Memory Usage",
        AlertMetric.CACHE_HIT_RATE.value: "Low Cache Hit Rate",
    },
    AlertType.CRITICAL.value: {
        AlertMetric.RESPONSE_TIME.value: "Critical Response Time",
        AlertMetric.ERROR_RATE.value: "Critical Error Rate",
        AlertMetric.MEMORY_USAGE.value: "Critical Memory Usage",
        AlertMetric.CACHE_HIT_RATE.value: "Critical Cache Hit Rate",
    },
}


class AlertBreach(ConfiguredBaseModel):
    """A metric crossing a threshold during one evaluation pass.

    Attributes:
        type: warning or critical
        metric: Metric that crossed its threshold
        value: Live metric value
        threshold: Threshold that was crossed
        message: Human-readable description
    """

    type: AlertType
    metric: str
    value: float
    threshold: float
    message: str


class Alert(ConfiguredBaseModel):
    """Alert instance.

    Attributes:
        id: Unique alert identifier
        type: warning or critical
        title: Short title derived from type and metric
        message: Human-readable alert message
        metric: Metric that triggered the alert
        value: Latest breaching value
        threshold: Threshold from the table
        timestamp: Creation time, refreshed on every repeated breach
        acknowledged: Set by an operator, does not change the lifecycle
        resolved_at: Resolution time; once set it never changes
    """

    id: str
    type: AlertType
    title: str
    message: str
    metric: str
    value: float
    threshold: float
    timestamp: datetime
    acknowledged: bool = False
    resolved_at: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.resolved_at is None


AlertSubscriber = Callable[[List[Alert]], Any]


def get_alert_title(alert_type: str, metric: str) -> str:
    """Title for a (type, metric) pair, with a generic fallback."""
    return ALERT_TITLES.get(alert_type, {}).get(metric, f"{alert_type.upper()}: {metric}")


def check_alert_thresholds(
    api_stats: APIStats,
    cache_stats: Optional[CacheStats] = None,
    memory_percent: Optional[float] = None,
    thresholds: Optional[AlertThresholds] = None,
) -> List[AlertBreach]:
    """Compare live aggregates against the threshold table.

    Each metric yields at most one breach per pass; the critical threshold is
    checked before the warning one. Cache hit rate is only evaluated when
    there were cache lookups, memory only when a reading is available.

    Args:
        api_stats: Current API aggregate
        cache_stats: Current cache aggregate
        memory_percent: Host memory usage, None when unavailable
        thresholds: Threshold table (default: built-in table)

    Returns:
        List of breaches, possibly empty
    """
    t = thresholds or AlertThresholds()
    breaches: List[AlertBreach] = []

    if api_stats.avg_response_time > t.response_time_critical:
        breaches.append(AlertBreach(
            type=AlertType.CRITICAL,
            metric=AlertMetric.RESPONSE_TIME.value,
            value=api_stats.avg_response_time,
            threshold=t.response_time_critical,
            message="Average response time is critically high",
        ))
    elif api_stats.avg_response_time > t.response_time_warning:
        breaches.append(AlertBreach(
            type=AlertType.WARNING,
            metric=AlertMetric.RESPONSE_TIME.value,
            value=api_stats.avg_response_time,
            threshold=t.response_time_warning,
            message="Average response time is high",
        ))

    if api_stats.error_rate > t.error_rate_critical:
        breaches.append(AlertBreach(
            type=AlertType.CRITICAL,
            metric=AlertMetric.ERROR_RATE.value,
            value=api_stats.error_rate,
            threshold=t.error_rate_critical,
            message="Error rate is critically high",
        ))
    elif api_stats.error_rate > t.error_rate_warning:
        breaches.append(AlertBreach(
            type=AlertType.WARNING,
            metric=AlertMetric.ERROR_RATE.value,
            value=api_stats.error_rate,
            threshold=t.error_rate_warning,
            message="Error rate is high",
        ))

    if memory_percent is not None:
        if memory_percent > t.memory_critical:
            breaches.append(AlertBreach(
                type=AlertType.CRITICAL,
                metric=AlertMetric.MEMORY_USAGE.value,
                value=memory_percent,
                threshold=t.memory_critical,
                message="Memory usage is critically high",
            ))
        elif memory_percent > t.memory_warning:
            breaches.append(AlertBreach(
                type=AlertType.WARNING,
                metric=AlertMetric.MEMORY_USAGE.value,
                value=memory_percent,
                threshold=t.memory_warning,
                message="Memory usage is high",
            ))

    if cache_stats is not None and cache_stats.total > 0:
        if cache_stats.hit_rate < t.cache_hit_rate_critical:
            breaches.append(AlertBreach(
                type=AlertType.CRITICAL,
                metric=AlertMetric.CACHE_HIT_RATE.value,
                value=cache_stats.hit_rate,
                threshold=t.cache_hit_rate_critical,
                message="Cache hit rate is critically low",
            ))
        elif cache_stats.hit_rate < t.cache_hit_rate_warning:
            breaches.append(AlertBreach(
                type=AlertType.WARNING,
                metric=AlertMetric.CACHE_HIT_RATE.value,
                value=cache_stats.hit_rate,
                threshold=t.cache_hit_rate_warning,
                message="Cache hit rate is low",
            ))

    return breaches


class AlertManager:
    """Alert lifecycle and subscriber notification.

    Every mutation of the alert list (new alert, repeated breach, resolution,
    acknowledgement) calls each subscriber, in registration order, with the
    full alert list newest-first. A failing subscriber is logged and skipped.

    Example:
        manager = AlertManager(metrics_store=store)
        unsubscribe = manager.subscribe(lambda alerts: print(len(alerts)))

        manager.check_for_alerts()        # one evaluation pass
        manager.start()                   # evaluate every 60s in the background

        for alert in manager.get_active_alerts():
            manager.acknowledge_alert(alert.id)
    """

    def __init__(
        self,
        metrics_store: MetricStore,
        thresholds: Optional[AlertThresholds] = None,
        memory_probe: Optional[Callable[[], Optional[float]]] = get_memory_usage_percent,
        check_interval_seconds: float = 60,
        cleanup_interval_seconds: float = 3600,
        resolved_retention: int = 100,
        clock: Optional[Callable[[], datetime]] = None,
        critical_channel: Optional[StructuredLogger] = None,
    ):
        """Initialize alert manager.

        Args:
            metrics_store: Store read on every evaluation pass
            thresholds: Threshold table (default: built-in table)
            memory_probe: Returns host memory usage percent or None
            check_interval_seconds: Cadence of the evaluation loop
            cleanup_interval_seconds: Cadence of resolved-alert cleanup
            resolved_retention: Resolved alerts kept by cleanup
            clock: Returns the current aware datetime (default: UTC now)
            critical_channel: High-visibility log for new critical alerts
        """
        self.metrics_store = metrics_store
        self.thresholds = thresholds or AlertThresholds()
        self.memory_probe = memory_probe
        self.check_interval = check_interval_seconds
        self.cleanup_interval = cleanup_interval_seconds
        self.resolved_retention = resolved_retention
        self._clock = clock or utc_now
        self._critical_channel = critical_channel or get_logger("alerts")

        self._alerts: List[Alert] = []
        self._subscribers: List[AlertSubscriber] = []
        self._lock = RLock()
        self._monitor_task: Optional[asyncio.Task] = None
        self._cleanup_task: Optional[asyncio.Task] = None

    # Background tasks

    def start(self) -> None:
        """Start the evaluation and cleanup loops (requires a running event loop)."""
        if self._monitor_task is not None:
            return

        loop = asyncio.get_running_loop()
        self._monitor_task = loop.create_task(
            self._run_periodically(self.check_interval, self.check_for_alerts, "alert evaluation")
        )
        self._cleanup_task = loop.create_task(
            self._run_periodically(self.cleanup_interval, self.cleanup, "alert cleanup")
        )
        logger.info(f"Alert monitoring started: interval={self.check_interval}s")

    async def stop(self) -> None:
        """Stop the background loops."""
        for task in (self._monitor_task, self._cleanup_task):
            if task is None:
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._monitor_task = None
        self._cleanup_task = None

    @property
    def is_running(self) -> bool:
        return self._monitor_task is not None

    async def _run_periodically(self, interval: float, fn: Callable[[], Any], name: str) -> None:
        while True:
            try:
                await asyncio.sleep(interval)
                fn()
            except asyncio.CancelledError:
                logger.info(f"{name} task cancelled")
                break
            except Exception as e:
                logger.error(f"Error in {name} task: {e}")

    # Evaluation

    def _read_memory(self) -> Optional[float]:
        if self.memory_probe is None:
            return None
        try:
            return self.memory_probe()
        except Exception as e:
            logger.debug(f"Memory probe failed, skipping memory check: {e}")
            return None

    def check_for_alerts(self) -> List[Alert]:
        """Run one evaluation pass: raise or refresh alerts, then auto-resolve.

        Never raises; evaluation errors are logged.

        Returns:
            Alerts created by this pass
        """
        created: List[Alert] = []
        try:
            api_stats = self.metrics_store.get_api_stats()
            cache_stats = self.metrics_store.get_cache_stats()
            memory_percent = self._read_memory()

            breaches = check_alert_thresholds(api_stats, cache_stats, memory_percent, self.thresholds)
            for breach in breaches:
                alert, is_new = self.add_alert(breach)
                if is_new:
                    created.append(alert)

            self.auto_resolve_alerts(api_stats, cache_stats, memory_percent)
        except Exception as e:
            logger.error(f"Error checking for alerts: {e}")

        return created

    def add_alert(self, breach: AlertBreach) -> Tuple[Alert, bool]:
        """Record a breach, deduplicating against the open alert for (metric, type).

        Args:
            breach: Breach descriptor

        Returns:
            Tuple of (alert copy, True if a new alert was created)
        """
        now = self._clock()

        with self._lock:
            existing = next(
                (
                    a for a in self._alerts
                    if a.metric == breach.metric and a.type == breach.type and a.is_open
                ),
                None,
            )

            if existing is not None:
                existing.value = breach.value
                existing.timestamp = now
                alert, is_new = existing, False
            else:
                alert = Alert(
                    id=f"alert_{int(now.timestamp() * 1000)}_{uuid.uuid4().hex[:9]}",
                    type=breach.type,
                    title=get_alert_title(breach.type, breach.metric),
                    message=breach.message,
                    metric=breach.metric,
                    value=breach.value,
                    threshold=breach.threshold,
                    timestamp=now,
                )
                self._alerts.append(alert)
                is_new = True

            snapshot = alert.model_copy()

        if is_new:
            logger.warning(f"Alert raised: {snapshot.title} ({snapshot.metric}={snapshot.value})")
            if snapshot.type == AlertType.CRITICAL:
                self._critical_channel.critical(
                    f"CRITICAL ALERT: {snapshot.message}",
                    alert_id=snapshot.id,
                    metric=snapshot.metric,
                    value=snapshot.value,
                    threshold=snapshot.threshold,
                )

        self._notify_subscribers()
        return snapshot, is_new

    def auto_resolve_alerts(
        self,
        api_stats: APIStats,
        cache_stats: CacheStats,
        memory_percent: Optional[float] = None,
    ) -> List[Alert]:
        """Resolve open alerts whose metric is back within its threshold.

        Memory alerts stay open while no memory reading is available.

        Args:
            api_stats: Current API aggregate
            cache_stats: Current cache aggregate
            memory_percent: Host memory usage, None when unavailable

        Returns:
            Alerts resolved by this call
        """
        now = self._clock()
        resolved: List[Alert] = []

        with self._lock:
            for alert in self._alerts:
                if not alert.is_open:
                    continue

                if alert.metric == AlertMetric.RESPONSE_TIME:
                    should_resolve = api_stats.avg_response_time <= alert.threshold
                elif alert.metric == AlertMetric.ERROR_RATE:
                    should_resolve = api_stats.error_rate <= alert.threshold
                elif alert.metric == AlertMetric.CACHE_HIT_RATE:
                    should_resolve = cache_stats.hit_rate >= alert.threshold
                elif alert.metric == AlertMetric.MEMORY_USAGE:
                    should_resolve = memory_percent is not None and memory_percent <= alert.threshold
                else:
                    should_resolve = False

                if should_resolve:
                    alert.resolved_at = now
                    resolved.append(alert.model_copy())

        for alert in resolved:
            logger.info(f"Alert auto-resolved: {alert.title}")
            self._notify_subscribers()

        return resolved

    # Queries

    def get_alerts(self) -> List[Alert]:
        """All alerts, newest first."""
        with self._lock:
            ordered = sorted(self._alerts, key=lambda a: a.timestamp, reverse=True)
            return [a.model_copy() for a in ordered]

    def get_active_alerts(self) -> List[Alert]:
        """Open alerts, newest first."""
        return [a for a in self.get_alerts() if a.is_open]

    def get_critical_alerts(self) -> List[Alert]:
        """Open critical alerts, newest first."""
        return [a for a in self.get_active_alerts() if a.type == AlertType.CRITICAL]

    def get_alert(self, alert_id: str) -> Optional[Alert]:
        """Copy of a single alert by id."""
        with self._lock:
            alert = self._find(alert_id)
            return alert.model_copy() if alert else None

    def _find(self, alert_id: str) -> Optional[Alert]:
        return next((a for a in self._alerts if a.id == alert_id), None)

    # Operator actions

    def acknowledge_alert(self, alert_id: str) -> bool:
        """Flag an alert as seen by an operator.

        Returns:
            False if no alert has this id
        """
        with self._lock:
            alert = self._find(alert_id)
            if alert is None:
                return False
            alert.acknowledged = True

        self._notify_subscribers()
        return True

    def resolve_alert(self, alert_id: str) -> bool:
        """Resolve an alert regardless of the live metric value.

        An already resolved alert keeps its original resolution time.

        Returns:
            False if no alert has this id
        """
        with self._lock:
            alert = self._find(alert_id)
            if alert is None:
                return False
            if alert.resolved_at is None:
                alert.resolved_at = self._clock()

        logger.info(f"Alert resolved manually: {alert_id}")
        self._notify_subscribers()
        return True

    # Subscription

    def subscribe(self, callback: AlertSubscriber) -> Callable[[], None]:
        """Register a callback receiving the full alert list on every change.

        Args:
            callback: Called with the alert list, newest first

        Returns:
            Function that unregisters the callback
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def _notify_subscribers(self) -> None:
        with self._lock:
            subscribers = list(self._subscribers)

        for callback in subscribers:
            try:
                callback(self.get_alerts())
            except Exception as e:
                logger.error(f"Error notifying alert subscriber: {e}")

    # Retention

    def cleanup(self) -> int:
        """Keep only the most recently resolved alerts; open alerts are never removed.

        Returns:
            Number of alerts removed
        """
        with self._lock:
            resolved = [a for a in self._alerts if a.resolved_at is not None]
            excess = len(resolved) - self.resolved_retention
            if excess <= 0:
                return 0

            resolved.sort(key=lambda a: a.resolved_at)
            to_remove = {id(a) for a in resolved[:excess]}
            self._alerts = [a for a in self._alerts if id(a) not in to_remove]

        logger.info(f"Removed {excess} old resolved alerts")
        return excess

    def get_stats(self) -> Dict[str, int]:
        """Alert counts for the dashboard."""
        last_24h = self._clock() - timedelta(hours=24)
        alerts = self.get_alerts()

        return {
            "total": len(alerts),
            "recent": sum(1 for a in alerts if a.timestamp > last_24h),
            "active": sum(1 for a in alerts if a.is_open),
            "critical": sum(1 for a in alerts if a.is_open and a.type == AlertType.CRITICAL),
            "acknowledged": sum(1 for a in alerts if a.acknowledged),
            "resolved": sum(1 for a in alerts if not a.is_open),
        }
