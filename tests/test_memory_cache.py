"""Tests for the instrumented memory cache."""

import pytest

from crm_observability.modules.cache import MonitoredMemoryCache, generate_cache_key


class ManualTimer:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def timer():
    return ManualTimer()


@pytest.fixture
def cache(store, timer):
    return MonitoredMemoryCache(store, default_ttl=60, timer=timer)


def operations(store):
    return [m.operation for m in store.get_recent_cache_metrics()]


def test_hit_and_miss_are_recorded(cache, store):
    assert cache.get("clients") is None
    cache.set("clients", [{"id": 1}])
    assert cache.get("clients") == [{"id": 1}]

    assert operations(store) == ["miss", "set", "hit"]
    assert store.get_cache_stats().hit_rate == 50


def test_set_records_ttl_and_size(cache, store):
    cache.set("clients", {"id": 1}, ttl=300)

    event = store.get_recent_cache_metrics()[-1]
    assert event.ttl == 300
    assert event.size == len('{"id": 1}')


def test_expired_entry_is_a_miss(cache, store, timer):
    cache.set("clients", "rows", ttl=10)
    timer.now = 9.0
    assert cache.get("clients") == "rows"

    timer.now = 11.0
    assert cache.get("clients") is None
    assert operations(store)[-1] == "miss"


def test_default_ttl(cache, timer):
    cache.set("clients", "rows")
    timer.now = 61.0

    assert cache.get("clients") is None


def test_delete(cache, store):
    cache.set("clients", "rows")
    cache.delete("clients")
    cache.delete("never-set")

    assert cache.get("clients") is None
    assert operations(store).count("delete") == 2


def test_cleanup_drops_expired_entries_silently(cache, store, timer):
    cache.set("a", 1, ttl=5)
    cache.set("b", 2, ttl=50)
    events_before = len(store.get_recent_cache_metrics())

    timer.now = 10.0
    assert cache.cleanup() == 1
    assert len(cache) == 1
    assert len(store.get_recent_cache_metrics()) == events_before


def test_clear(cache):
    cache.set("a", 1)
    cache.clear()
    assert len(cache) == 0


def test_generate_cache_key_sorts_params():
    assert generate_cache_key("leads", {"status": "new", "page": 2}) == "leads-page:2-status:new"
    assert generate_cache_key("leads", {"page": 2, "status": "new"}) == generate_cache_key(
        "leads", {"status": "new", "page": 2}
    )
