"""Tests for host memory introspection."""

from collections import namedtuple

import psutil

from crm_observability.modules.observability.metrics import host_probe

VirtualMemory = namedtuple("VirtualMemory", ["total", "available", "used", "percent"])


def test_memory_percent_comes_from_psutil(monkeypatch):
    # used/total would give 90; psutil reports usage from available memory
    memory = VirtualMemory(total=1000, available=600, used=900, percent=40.0)
    monkeypatch.setattr(host_probe.psutil, "virtual_memory", lambda: memory)

    assert host_probe.get_memory_usage_percent() == 40.0


def test_memory_percent_unavailable(monkeypatch):
    def refuse():
        raise psutil.AccessDenied()

    monkeypatch.setattr(host_probe.psutil, "virtual_memory", refuse)

    assert host_probe.get_memory_usage_percent() is None
