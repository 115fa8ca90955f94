"""Testing support – in-memory broker, fake clock and metrics, test database.

Import in your ``conftest.py``::

    pytest_plugins = ["mp_outbox.testing.fixtures"]
"""
from mp_outbox.testing.fakes import (
    FakeClock,
    FakeMetricsRegistry,
    InMemoryBroker,
    InMemoryDelivery,
    InMemorySubscription,
    PublishedMessage,
)

__all__ = [
    "FakeClock",
    "FakeMetricsRegistry",
    "InMemoryBroker",
    "InMemoryDelivery",
    "InMemorySubscription",
    "PublishedMessage",
]
