"""Testing fakes – in-memory doubles for kernel ports."""
from mp_outbox.kernel.time import FrozenClock
from mp_outbox.testing.fakes.broker import (
    InMemoryBroker,
    InMemoryDelivery,
    InMemorySubscription,
    PublishedMessage,
)
from mp_outbox.testing.fakes.clock import FakeClock
from mp_outbox.testing.fakes.metrics import FakeMetricsRegistry

__all__ = [
    "FakeClock",
    "FakeMetricsRegistry",
    "FrozenClock",
    "InMemoryBroker",
    "InMemoryDelivery",
    "InMemorySubscription",
    "PublishedMessage",
]
