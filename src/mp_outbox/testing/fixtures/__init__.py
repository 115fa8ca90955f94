"""Testing fixtures – pytest fixtures for fake doubles and the test database.

Enable in ``conftest.py``::

    pytest_plugins = ["mp_outbox.testing.fixtures"]
"""
from mp_outbox.testing.fixtures.database import create_test_database, sqlite_file_url, sqlite_url
from mp_outbox.testing.fixtures.fakes import fake_clock, fake_metrics, in_memory_broker

__all__ = [
    "create_test_database",
    "fake_clock",
    "fake_metrics",
    "in_memory_broker",
    "sqlite_file_url",
    "sqlite_url",
]
