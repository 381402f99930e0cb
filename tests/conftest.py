"""Shared pytest fixtures for the observability engine tests."""

import io
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest

from crm_observability.modules.observability.dashboard.alert_manager import AlertManager
from crm_observability.modules.observability.logging import StructuredLogger
from crm_observability.modules.observability.metrics import MetricStore

# Monday, on a whole minute
START = datetime(2026, 10, 19, 10, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock returning aware datetimes."""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeMemoryProbe:
    """Memory probe returning a settable reading."""

    def __init__(self, value: Optional[float] = None):
        self.value = value

    def __call__(self) -> Optional[float]:
        return self.value


class RecordingRenderer:
    """Report renderer recording its calls; fails when ``error`` is set."""

    def __init__(self, error: Optional[Exception] = None, file_path: str = "/tmp/report.pdf"):
        self.error = error
        self.file_path = file_path
        self.calls: List[tuple] = []

    async def __call__(self, config, data):
        self.calls.append((config, data))
        if self.error is not None:
            raise self.error
        return self.file_path


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_probe() -> FakeMemoryProbe:
    return FakeMemoryProbe()


@pytest.fixture
def store(clock: FakeClock, memory_probe: FakeMemoryProbe) -> MetricStore:
    return MetricStore(max_size=100, clock=clock, memory_probe=memory_probe)


@pytest.fixture
def critical_stream() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def alert_manager(
    store: MetricStore,
    clock: FakeClock,
    memory_probe: FakeMemoryProbe,
    critical_stream: io.StringIO,
) -> AlertManager:
    return AlertManager(
        metrics_store=store,
        memory_probe=memory_probe,
        clock=clock,
        critical_channel=StructuredLogger("alerts", output_stream=critical_stream),
    )


@pytest.fixture
def renderer() -> RecordingRenderer:
    return RecordingRenderer()
