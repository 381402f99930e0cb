"""Tests for threshold evaluation and the alert lifecycle."""

import asyncio

import pytest

from crm_observability.config import AlertThresholds
from crm_observability.modules.observability.dashboard.alert_manager import (
    AlertBreach,
    AlertManager,
    AlertType,
    check_alert_thresholds,
    get_alert_title,
)
from crm_observability.modules.observability.metrics import APIStats, CacheStats


def breach(metric="response_time", alert_type=AlertType.WARNING, value=3000.0, threshold=2000.0):
    return AlertBreach(
        type=alert_type,
        metric=metric,
        value=value,
        threshold=threshold,
        message="Average response time is high",
    )


class TestCheckAlertThresholds:
    def test_no_breach_on_quiet_system(self):
        assert check_alert_thresholds(APIStats(), CacheStats(), None) == []

    def test_critical_checked_before_warning(self):
        breaches = check_alert_thresholds(APIStats(avg_response_time=6000))

        assert len(breaches) == 1
        assert breaches[0].type == "critical"
        assert breaches[0].threshold == 5000

    def test_error_rate_and_memory(self):
        breaches = check_alert_thresholds(APIStats(error_rate=7), memory_percent=95.0)

        by_metric = {b.metric: b for b in breaches}
        assert by_metric["error_rate"].type == "warning"
        assert by_metric["memory_usage"].type == "critical"

    def test_cache_ignored_without_lookups(self):
        assert check_alert_thresholds(APIStats(), CacheStats(hit_rate=0, total=0)) == []

    def test_low_cache_hit_rate(self):
        breaches = check_alert_thresholds(APIStats(), CacheStats(hit_rate=60, total=10))

        assert [(b.metric, b.type) for b in breaches] == [("cache_hit_rate", "warning")]

    def test_custom_thresholds(self):
        thresholds = AlertThresholds(response_time_warning=100, response_time_critical=200)
        breaches = check_alert_thresholds(APIStats(avg_response_time=150), thresholds=thresholds)

        assert breaches[0].threshold == 100

    def test_titles(self):
        assert get_alert_title("warning", "response_time") == "High Response Time"
        assert get_alert_title("critical", "disk") == "CRITICAL: disk"


class TestDeduplication:
    def test_repeated_breach_updates_open_alert(self, alert_manager, store, clock):
        store.track_api_call("/api/reports", "GET", 200, 3000.0)
        created = alert_manager.check_for_alerts()
        assert len(created) == 1

        clock.advance(minutes=1)
        store.track_api_call("/api/reports", "GET", 200, 4000.0)
        assert alert_manager.check_for_alerts() == []

        alerts = alert_manager.get_alerts()
        assert len(alerts) == 1
        assert alerts[0].value == 3500
        assert alerts[0].timestamp == clock()

    def test_same_metric_different_type_is_separate(self, alert_manager):
        alert_manager.add_alert(breach())
        alert_manager.add_alert(breach(alert_type=AlertType.CRITICAL, value=6000, threshold=5000))

        assert len(alert_manager.get_active_alerts()) == 2
        assert len(alert_manager.get_critical_alerts()) == 1

    def test_new_alert_after_resolution(self, alert_manager):
        first, _ = alert_manager.add_alert(breach())
        alert_manager.resolve_alert(first.id)

        second, is_new = alert_manager.add_alert(breach())

        assert is_new
        assert second.id != first.id
        assert len(alert_manager.get_alerts()) == 2

    def test_new_alert_fields(self, alert_manager, clock):
        alert, is_new = alert_manager.add_alert(breach())

        assert is_new
        assert alert.id.startswith("alert_")
        assert alert.title == "High Response Time"
        assert alert.timestamp == clock()
        assert alert.acknowledged is False
        assert alert.resolved_at is None


class TestAutoResolve:
    def test_resolves_when_metric_recovers(self, alert_manager, store, clock):
        store.track_api_call("/api/reports", "GET", 200, 3000.0)
        alert_manager.check_for_alerts()

        clock.advance(hours=2)
        alert_manager.check_for_alerts()

        alert = alert_manager.get_alerts()[0]
        assert alert.resolved_at == clock()
        assert alert_manager.get_active_alerts() == []

    def test_resolution_is_idempotent(self, alert_manager, store, clock):
        store.track_api_call("/api/reports", "GET", 200, 3000.0)
        alert_manager.check_for_alerts()
        clock.advance(hours=2)
        alert_manager.check_for_alerts()
        resolved_at = alert_manager.get_alerts()[0].resolved_at

        clock.advance(minutes=5)
        alert_manager.check_for_alerts()

        alerts = alert_manager.get_alerts()
        assert len(alerts) == 1
        assert alerts[0].resolved_at == resolved_at

    def test_memory_alert_stays_open_without_reading(self, alert_manager, memory_probe):
        memory_probe.value = 85.0
        alert_manager.check_for_alerts()
        assert [a.metric for a in alert_manager.get_active_alerts()] == ["memory_usage"]

        memory_probe.value = None
        alert_manager.check_for_alerts()
        assert len(alert_manager.get_active_alerts()) == 1

        memory_probe.value = 40.0
        alert_manager.check_for_alerts()
        assert alert_manager.get_active_alerts() == []

    def test_failing_memory_probe_skips_memory_check(self, store, clock):
        def broken_probe():
            raise RuntimeError("no /proc")

        manager = AlertManager(metrics_store=store, memory_probe=broken_probe, clock=clock)
        store.track_api_call("/api/reports", "GET", 200, 3000.0)

        created = manager.check_for_alerts()

        assert [a.metric for a in created] == ["response_time"]

    def test_cache_alert_does_not_resolve_without_lookups(self, alert_manager, store, clock):
        for _ in range(4):
            store.track_cache_operation("clients", "miss")
        alert_manager.check_for_alerts()
        assert len(alert_manager.get_active_alerts()) == 1

        clock.advance(hours=2)
        alert_manager.check_for_alerts()

        assert len(alert_manager.get_active_alerts()) == 1


class TestOperatorActions:
    def test_acknowledge(self, alert_manager):
        alert, _ = alert_manager.add_alert(breach())

        assert alert_manager.acknowledge_alert(alert.id) is True
        updated = alert_manager.get_alert(alert.id)
        assert updated.acknowledged is True
        assert updated.resolved_at is None

    def test_resolve_keeps_first_resolution_time(self, alert_manager, clock):
        alert, _ = alert_manager.add_alert(breach())
        alert_manager.resolve_alert(alert.id)
        first = alert_manager.get_alert(alert.id).resolved_at

        clock.advance(minutes=10)
        assert alert_manager.resolve_alert(alert.id) is True
        assert alert_manager.get_alert(alert.id).resolved_at == first

    def test_unknown_id(self, alert_manager):
        assert alert_manager.acknowledge_alert("missing") is False
        assert alert_manager.resolve_alert("missing") is False
        assert alert_manager.get_alert("missing") is None

    def test_returned_alerts_are_copies(self, alert_manager):
        alert, _ = alert_manager.add_alert(breach())
        alert.acknowledged = True

        assert alert_manager.get_alert(alert.id).acknowledged is False


class TestSubscribers:
    def test_notified_on_every_change(self, alert_manager):
        received = []
        alert_manager.subscribe(lambda alerts: received.append(len(alerts)))

        alert, _ = alert_manager.add_alert(breach())
        alert_manager.add_alert(breach(value=3500))
        alert_manager.acknowledge_alert(alert.id)
        alert_manager.resolve_alert(alert.id)

        assert received == [1, 1, 1, 1]

    def test_notified_on_auto_resolve(self, alert_manager, store, clock):
        store.track_api_call("/api/reports", "GET", 200, 3000.0)
        alert_manager.check_for_alerts()
        received = []
        alert_manager.subscribe(received.append)

        clock.advance(hours=2)
        alert_manager.check_for_alerts()

        assert len(received) == 1
        assert [a.metric for a in received[0]] == ["response_time"]
        assert received[0][0].resolved_at == clock()

    def test_failing_subscriber_does_not_block_others(self, alert_manager):
        calls = []

        def broken(alerts):
            calls.append("broken")
            raise ValueError("subscriber bug")

        alert_manager.subscribe(broken)
        alert_manager.subscribe(lambda alerts: calls.append("ok"))

        alert_manager.add_alert(breach())

        assert calls == ["broken", "ok"]

    def test_unsubscribe(self, alert_manager):
        received = []
        unsubscribe = alert_manager.subscribe(received.append)
        unsubscribe()
        unsubscribe()

        alert_manager.add_alert(breach())

        assert received == []

    def test_subscribers_receive_newest_first(self, alert_manager, clock):
        received = []
        alert_manager.add_alert(breach())
        clock.advance(minutes=1)
        alert_manager.subscribe(received.append)

        alert_manager.add_alert(breach(metric="error_rate", value=7, threshold=5))

        assert [a.metric for a in received[-1]] == ["error_rate", "response_time"]


class TestCriticalChannel:
    def test_new_critical_alert_is_logged(self, alert_manager, critical_stream):
        alert_manager.add_alert(
            breach(metric="error_rate", alert_type=AlertType.CRITICAL, value=14, threshold=10)
        )

        output = critical_stream.getvalue()
        assert "CRITICAL ALERT" in output
        assert '"metric": "error_rate"' in output

    def test_warning_and_repeats_are_not_logged(self, alert_manager, critical_stream):
        alert_manager.add_alert(breach())
        assert critical_stream.getvalue() == ""

        critical = breach(alert_type=AlertType.CRITICAL, value=6000, threshold=5000)
        alert_manager.add_alert(critical)
        alert_manager.add_alert(critical)
        assert critical_stream.getvalue().count("CRITICAL ALERT") == 1


class TestRetention:
    def test_cleanup_keeps_recent_resolved_and_all_open(self, store, clock):
        manager = AlertManager(metrics_store=store, memory_probe=None, clock=clock, resolved_retention=2)
        resolved_ids = []
        for _ in range(3):
            alert, _ = manager.add_alert(breach())
            manager.resolve_alert(alert.id)
            resolved_ids.append(alert.id)
            clock.advance(minutes=1)
        open_alert, _ = manager.add_alert(breach())

        assert manager.cleanup() == 1

        remaining = {a.id for a in manager.get_alerts()}
        assert remaining == {resolved_ids[1], resolved_ids[2], open_alert.id}
        assert manager.cleanup() == 0

    def test_stats(self, alert_manager):
        alert, _ = alert_manager.add_alert(breach())
        alert_manager.acknowledge_alert(alert.id)
        alert_manager.add_alert(breach(alert_type=AlertType.CRITICAL, value=6000, threshold=5000))

        stats = alert_manager.get_stats()
        assert stats == {
            "total": 2,
            "recent": 2,
            "active": 2,
            "critical": 1,
            "acknowledged": 1,
            "resolved": 0,
        }


class TestBackgroundLoops:
    async def test_start_and_stop(self, store, clock):
        manager = AlertManager(
            metrics_store=store,
            memory_probe=None,
            clock=clock,
            check_interval_seconds=0.01,
        )
        store.track_api_call("/api/reports", "GET", 200, 3000.0)

        manager.start()
        assert manager.is_running
        await asyncio.sleep(0.05)
        await manager.stop()

        assert not manager.is_running
        assert len(manager.get_active_alerts()) == 1

    def test_evaluation_errors_are_logged_not_raised(self, clock):
        class BrokenStore:
            def get_api_stats(self):
                raise RuntimeError("store unavailable")

        manager = AlertManager(metrics_store=BrokenStore(), memory_probe=None, clock=clock)

        assert manager.check_for_alerts() == []


@pytest.mark.parametrize("hit_rate, expected", [(65, "warning"), (40, "critical"), (80, None)])
def test_cache_thresholds(hit_rate, expected):
    breaches = check_alert_thresholds(APIStats(), CacheStats(hit_rate=hit_rate, total=10))
    assert (breaches[0].type if breaches else None) == expected
