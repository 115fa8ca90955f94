"""Shared pytest fixtures."""
from mp_outbox.testing.fixtures import (  # noqa: F401
    fake_clock,
    fake_metrics,
    in_memory_broker,
    sqlite_url,
)
