"""Unit tests for QuotaCounter: conditional increments never overshoot."""
from __future__ import annotations

import asyncio
from datetime import UTC, datetime

import pytest

from mp_outbox.adapters.sqlalchemy import SqlAlchemyUnitOfWork
from mp_outbox.application.derived import QuotaCounter, QuotaPeriod, QuotaPolicy, QuotaUsage
from mp_outbox.kernel.errors import QuotaExceededError, ValidationError
from mp_outbox.observability.metrics import names
from mp_outbox.testing import FakeClock, FakeMetricsRegistry
from mp_outbox.testing.fixtures import create_test_database


class TestQuotaPeriod:
    def test_period_keys(self) -> None:
        moment = datetime(2026, 3, 31, 23, 59, tzinfo=UTC)
        assert QuotaPeriod.DAILY.key_for(moment) == "2026-03-31"
        assert QuotaPeriod.MONTHLY.key_for(moment) == "2026-03"

    def test_naive_datetimes_are_read_as_utc(self) -> None:
        assert QuotaPeriod.DAILY.key_for(datetime(2026, 1, 2, 0, 30)) == "2026-01-02"

    def test_policy_validation(self) -> None:
        with pytest.raises(ValueError):
            QuotaPolicy(metric="", limit=10)
        with pytest.raises(ValueError):
            QuotaPolicy(metric="api_calls", limit=-1)

    def test_remaining_never_negative(self) -> None:
        assert QuotaUsage("p", "m", "2026-01", used=12, limit=10).remaining == 0


class TestQuotaCounter:
    def test_concurrent_consumers_cannot_exceed_limit(self, sqlite_url: str) -> None:
        async def run() -> None:
            factory = await create_test_database(sqlite_url)
            uow_factory = SqlAlchemyUnitOfWork.factory(factory)
            metrics = FakeMetricsRegistry()
            counter = QuotaCounter(
                uow_factory, QuotaPolicy("storage_mb", limit=100), clock=FakeClock(), metrics=metrics
            )

            results = await asyncio.gather(
                counter.consume("tenant-1", 60),
                counter.consume("tenant-1", 60),
                return_exceptions=True,
            )

            succeeded = [r for r in results if isinstance(r, QuotaUsage)]
            rejected = [r for r in results if isinstance(r, QuotaExceededError)]
            assert len(succeeded) == 1
            assert len(rejected) == 1
            assert succeeded[0].used == 60
            assert (await counter.usage("tenant-1")).used == 60
            metrics.assert_counter_total(names.QUOTA_EXCEEDED, 1)
            await factory.dispose()

        asyncio.run(run())

    def test_many_concurrent_consumers_near_the_limit(self, sqlite_url: str) -> None:
        async def run() -> None:
            factory = await create_test_database(sqlite_url)
            uow_factory = SqlAlchemyUnitOfWork.factory(factory)
            metrics = FakeMetricsRegistry()
            counter = QuotaCounter(
                uow_factory, QuotaPolicy("storage_mb", limit=100), clock=FakeClock(), metrics=metrics
            )

            results = await asyncio.gather(
                *(counter.consume("tenant-1", 15) for _ in range(10)),
                return_exceptions=True,
            )

            succeeded = [r for r in results if isinstance(r, QuotaUsage)]
            rejected = [r for r in results if isinstance(r, QuotaExceededError)]
            assert len(succeeded) == 6
            assert len(rejected) == 4
            assert sorted(r.used for r in succeeded) == [15, 30, 45, 60, 75, 90]
            assert (await counter.usage("tenant-1")).used == 90
            metrics.assert_counter_total(names.QUOTA_EXCEEDED, 4)
            await factory.dispose()

        asyncio.run(run())

    def test_consume_up_to_the_limit_exactly(self, sqlite_url: str) -> None:
        async def run() -> None:
            factory = await create_test_database(sqlite_url)
            counter = QuotaCounter(
                SqlAlchemyUnitOfWork.factory(factory), QuotaPolicy("api_calls", limit=3), clock=FakeClock()
            )
            for expected in (1, 2, 3):
                assert (await counter.consume("tenant-1")).used == expected
            with pytest.raises(QuotaExceededError) as exc_info:
                await counter.consume("tenant-1")
            assert exc_info.value.detail["used"] == 3
            assert exc_info.value.detail["limit"] == 3
            assert exc_info.value.detail["period"] == "2026-01"
            usage = await counter.usage("tenant-1")
            assert (usage.used, usage.remaining) == (3, 0)
            await factory.dispose()

        asyncio.run(run())

    def test_new_period_starts_from_zero(self, sqlite_url: str) -> None:
        async def run() -> None:
            factory = await create_test_database(sqlite_url)
            clock = FakeClock()
            counter = QuotaCounter(
                SqlAlchemyUnitOfWork.factory(factory),
                QuotaPolicy("exports", limit=2, period=QuotaPeriod.DAILY),
                clock=clock,
            )
            await counter.consume("tenant-1", 2)
            with pytest.raises(QuotaExceededError):
                await counter.consume("tenant-1")
            clock.advance(days=1)
            usage = await counter.consume("tenant-1")
            assert (usage.period_key, usage.used) == ("2026-01-02", 1)
            await factory.dispose()

        asyncio.run(run())

    def test_principals_are_counted_separately(self, sqlite_url: str) -> None:
        async def run() -> None:
            factory = await create_test_database(sqlite_url)
            counter = QuotaCounter(
                SqlAlchemyUnitOfWork.factory(factory), QuotaPolicy("api_calls", limit=5), clock=FakeClock()
            )
            await counter.consume("tenant-1", 5)
            assert (await counter.consume("tenant-2", 5)).used == 5
            await factory.dispose()

        asyncio.run(run())

    def test_oversized_request_against_fresh_period_rejected(self, sqlite_url: str) -> None:
        async def run() -> None:
            factory = await create_test_database(sqlite_url)
            counter = QuotaCounter(
                SqlAlchemyUnitOfWork.factory(factory), QuotaPolicy("api_calls", limit=5), clock=FakeClock()
            )
            with pytest.raises(QuotaExceededError):
                await counter.consume("tenant-1", 6)
            assert (await counter.usage("tenant-1")).used == 0
            await factory.dispose()

        asyncio.run(run())

    @pytest.mark.parametrize("amount", [0, -3])
    def test_non_positive_amount_rejected(self, amount: int) -> None:
        counter = QuotaCounter(lambda: None, QuotaPolicy("api_calls", limit=5))

        async def run() -> None:
            with pytest.raises(ValidationError):
                await counter.consume("tenant-1", amount)

        asyncio.run(run())
