"""Testing fixtures – fake_clock, fake_metrics, in_memory_broker."""
from __future__ import annotations

import pytest

from mp_outbox.kernel.time import FrozenClock
from mp_outbox.testing.fakes import FakeClock, FakeMetricsRegistry, InMemoryBroker


@pytest.fixture
def fake_clock() -> FrozenClock:
    """Pytest fixture: returns a FakeClock pinned to 2026-01-01 12:00 UTC."""
    return FakeClock()


@pytest.fixture
def fake_metrics() -> FakeMetricsRegistry:
    return FakeMetricsRegistry()


@pytest.fixture
def in_memory_broker() -> InMemoryBroker:
    return InMemoryBroker()


__all__ = ["fake_clock", "fake_metrics", "in_memory_broker"]
