"""Tests for MetricStore buffering and windowed aggregation."""

import math

from crm_observability.modules.observability.metrics import (
    APIMetric,
    ErrorSeverity,
    HealthStatus,
    MetricStore,
)


class TestBuffering:
    def test_buffer_never_exceeds_cap(self, clock):
        store = MetricStore(max_size=10, clock=clock, memory_probe=None)

        for i in range(10):
            store.track_performance("render", float(i), "ms")
        assert store.get_buffer_sizes()["performance"] == 10

        store.track_performance("render", 10.0, "ms")
        assert store.get_buffer_sizes()["performance"] == 5

    def test_trim_keeps_most_recent_half_in_order(self, clock):
        store = MetricStore(max_size=10, clock=clock, memory_probe=None)

        for i in range(11):
            store.track_performance("render", float(i), "ms")

        values = [m.value for m in store.get_recent_performance_metrics(100)]
        assert values == [6.0, 7.0, 8.0, 9.0, 10.0]

    def test_categories_are_bounded_independently(self, clock):
        store = MetricStore(max_size=4, clock=clock, memory_probe=None)

        for _ in range(5):
            store.track_api_call("/api/leads", "GET", 200, 10.0)
        store.track_cache_operation("leads", "hit")

        sizes = store.get_buffer_sizes()
        assert sizes["api"] == 2
        assert sizes["cache"] == 1
        assert sizes["error"] == 0

    def test_recent_metrics_limit(self, store):
        for i in range(30):
            store.track_error(f"error {i}", ErrorSeverity.LOW)

        recent = store.get_recent_error_metrics(5)
        assert [e.error for e in recent] == [f"error {i}" for i in range(25, 30)]
        assert store.get_recent_error_metrics(0) == []

    def test_append_accepts_prebuilt_events(self, store, clock):
        store.append_api_metric(
            APIMetric(endpoint="/api/clients", method="GET", status_code=200,
                      response_time_ms=40.0, timestamp=clock())
        )
        assert store.get_api_stats().total_requests == 1

    def test_clear(self, store):
        store.track_api_call("/api/leads", "GET", 200, 10.0)
        store.track_error("boom", ErrorSeverity.HIGH)
        store.clear()
        assert set(store.get_buffer_sizes().values()) == {0}


class TestAPIStats:
    def test_error_rate_scenario(self, clock):
        store = MetricStore(clock=clock, memory_probe=None)
        for _ in range(100):
            store.track_api_call("/api/leads", "GET", 200, 100.0)
        for _ in range(10):
            store.track_api_call("/api/leads", "GET", 500, 100.0)

        stats = store.get_api_stats(3_600_000)

        assert stats.total_requests == 110
        assert stats.error_rate == 9

    def test_client_errors_count_as_errors(self, store):
        store.track_api_call("/api/leads/1", "GET", 404, 10.0)
        store.track_api_call("/api/leads/1", "GET", 200, 10.0)

        assert store.get_api_stats().error_rate == 50

    def test_empty_window(self, store):
        stats = store.get_api_stats()
        assert stats.total_requests == 0
        assert stats.avg_response_time == 0
        assert stats.error_rate == 0
        assert stats.p95_response_time == 0
        assert stats.endpoint_stats == []

    def test_events_outside_window_are_ignored(self, store, clock):
        store.track_api_call("/api/leads", "GET", 500, 9000.0)
        clock.advance(hours=2)
        store.track_api_call("/api/leads", "GET", 200, 100.0)

        stats = store.get_api_stats(3_600_000)
        assert stats.total_requests == 1
        assert stats.error_rate == 0
        assert stats.avg_response_time == 100

    def test_averages_round_half_up(self, store):
        store.track_api_call("/api/leads", "GET", 200, 100.0)
        store.track_api_call("/api/leads", "GET", 200, 101.0)

        assert store.get_api_stats().avg_response_time == 101

    def test_endpoint_breakdown(self, store):
        store.track_api_call("/api/leads", "GET", 200, 100.0)
        store.track_api_call("/api/leads", "GET", 500, 300.0)
        store.track_api_call("/api/leads", "POST", 201, 50.0)

        by_endpoint = {e.endpoint: e for e in store.get_api_stats().endpoint_stats}

        assert set(by_endpoint) == {"GET /api/leads", "POST /api/leads"}
        assert by_endpoint["GET /api/leads"].count == 2
        assert by_endpoint["GET /api/leads"].avg_response_time == 200
        assert by_endpoint["GET /api/leads"].error_rate == 50
        assert by_endpoint["POST /api/leads"].error_rate == 0

    def test_p95(self, store):
        for ms in range(1, 101):
            store.track_api_call("/api/leads", "GET", 200, float(ms))

        assert store.get_api_stats().p95_response_time == 95

    def test_nan_propagates_uncorrected(self, store):
        store.track_api_call("/api/leads", "GET", 200, float("nan"))
        store.track_api_call("/api/leads", "GET", 200, 100.0)

        assert math.isnan(store.get_api_stats().avg_response_time)


class TestCacheStats:
    def test_hit_rate(self, store):
        for _ in range(7):
            store.track_cache_operation("clients", "hit")
        for _ in range(3):
            store.track_cache_operation("clients", "miss")

        stats = store.get_cache_stats()
        assert stats.hit_rate == 70
        assert stats.hits == 7
        assert stats.misses == 3
        assert stats.total == 10

    def test_zero_operations_hit_rate_is_zero(self, store):
        stats = store.get_cache_stats()
        assert stats.hit_rate == 0
        assert not math.isnan(stats.hit_rate)

    def test_set_and_delete_do_not_affect_hit_rate(self, store):
        store.track_cache_operation("clients", "hit")
        store.track_cache_operation("clients", "set", ttl=60, size=120)
        store.track_cache_operation("clients", "delete")

        stats = store.get_cache_stats()
        assert stats.hit_rate == 100
        assert stats.total == 1
        assert stats.operations == {"hit": 1, "set": 1, "delete": 1}


class TestSystemHealth:
    def test_healthy(self, store, memory_probe):
        memory_probe.value = 42.5
        store.track_api_call("/api/leads", "GET", 200, 100.0)

        health = store.get_system_health()
        assert health.status == HealthStatus.HEALTHY
        assert health.memory_percent == 42.5

    def test_critical_error_makes_status_critical(self, store):
        store.track_error("Database unreachable", ErrorSeverity.CRITICAL)

        health = store.get_system_health()
        assert health.status == HealthStatus.CRITICAL
        assert health.critical_errors == 1

    def test_many_errors_make_status_warning(self, store):
        for _ in range(11):
            store.track_error("timeout", ErrorSeverity.HIGH)

        assert store.get_system_health().status == HealthStatus.WARNING

    def test_slow_responses(self, store):
        store.track_api_call("/api/reports", "GET", 200, 2500.0)
        assert store.get_system_health().status == HealthStatus.WARNING

        store.track_api_call("/api/reports", "GET", 200, 20000.0)
        assert store.get_system_health().status == HealthStatus.CRITICAL

    def test_uptime(self, store, clock):
        clock.advance(seconds=90)
        assert store.get_system_health().uptime_seconds == 90
