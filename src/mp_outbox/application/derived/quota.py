"""Application derived state – QuotaCounter.

Usage counters are incremented with a single conditional update so that
two concurrent requests can never both squeeze under the limit::

    UPDATE quota_counters
       SET used = used + :amount
     WHERE principal_id = :p AND metric = :m AND period_key = :k
       AND used + :amount <= limit_value

Zero rows updated means either the period row does not exist yet (create it
and retry once) or the limit would be exceeded.
"""
from __future__ import annotations

import abc
import dataclasses
from collections.abc import Callable
from datetime import datetime
from enum import Enum
from typing import Protocol

from mp_outbox.kernel.errors import QuotaExceededError, ValidationError
from mp_outbox.kernel.time import Clock, SystemClock, as_utc
from mp_outbox.observability.logging import get_logger
from mp_outbox.observability.metrics import Metrics, NoopMetrics
from mp_outbox.observability.metrics import names

logger = get_logger(__name__)


class QuotaPeriod(str, Enum):
    DAILY = "DAILY"
    MONTHLY = "MONTHLY"

    def key_for(self, moment: datetime) -> str:
        moment = as_utc(moment)
        if self is QuotaPeriod.DAILY:
            return moment.strftime("%Y-%m-%d")
        return moment.strftime("%Y-%m")


@dataclasses.dataclass(frozen=True)
class QuotaPolicy:
    metric: str
    limit: int
    period: QuotaPeriod = QuotaPeriod.MONTHLY

    def __post_init__(self) -> None:
        if not self.metric:
            raise ValueError("QuotaPolicy.metric must not be blank")
        if self.limit < 0:
            raise ValueError("QuotaPolicy.limit must be >= 0")


@dataclasses.dataclass(frozen=True)
class QuotaUsage:
    principal_id: str
    metric: str
    period_key: str
    used: int
    limit: int

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)


class QuotaRepository(abc.ABC):
    """Port: per-(principal, metric, period) usage counters."""

    @abc.abstractmethod
    async def try_increment(
        self, principal_id: str, metric: str, period_key: str, amount: int
    ) -> QuotaUsage | None:
        """Conditionally add *amount*; ``None`` when no row was updated."""

    @abc.abstractmethod
    async def create_if_absent(self, principal_id: str, metric: str, period_key: str, limit: int) -> bool: ...

    @abc.abstractmethod
    async def get(self, principal_id: str, metric: str, period_key: str) -> QuotaUsage | None: ...


class QuotaUnitOfWork(Protocol):
    quotas: QuotaRepository

    async def __aenter__(self) -> "QuotaUnitOfWork": ...
    async def __aexit__(self, *exc_info: object) -> None: ...


class QuotaCounter:
    """Enforces one :class:`QuotaPolicy` with atomic conditional increments.

    A rejected increment raises :class:`QuotaExceededError` and leaves the
    counter untouched. It is never retried automatically.
    """

    def __init__(
        self,
        uow_factory: Callable[[], QuotaUnitOfWork],
        policy: QuotaPolicy,
        *,
        clock: Clock | None = None,
        metrics: Metrics | None = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._policy = policy
        self._clock = clock or SystemClock()
        self._exceeded = (metrics or NoopMetrics()).instrument(names.QUOTA_EXCEEDED)

    @property
    def policy(self) -> QuotaPolicy:
        return self._policy

    async def consume(self, principal_id: str, amount: int = 1, now: datetime | None = None) -> QuotaUsage:
        if amount <= 0:
            raise ValidationError.for_field("amount", amount, "quota amount must be positive")
        policy = self._policy
        period_key = policy.period.key_for(now or self._clock.now())
        async with self._uow_factory() as uow:
            usage = await uow.quotas.try_increment(principal_id, policy.metric, period_key, amount)
            if usage is None:
                await uow.quotas.create_if_absent(principal_id, policy.metric, period_key, policy.limit)
                usage = await uow.quotas.try_increment(principal_id, policy.metric, period_key, amount)
            current = None if usage is not None else await uow.quotas.get(principal_id, policy.metric, period_key)
        if usage is None:
            self._exceeded.add(1, {"metric": policy.metric})
            logger.info(
                "quota.exceeded",
                principal_id=principal_id,
                metric=policy.metric,
                period=period_key,
                requested=amount,
                used=current.used if current else None,
                limit=current.limit if current else policy.limit,
            )
            raise QuotaExceededError(
                principal_id,
                policy.metric,
                requested=amount,
                used=current.used if current else None,
                limit=current.limit if current else policy.limit,
                period=period_key,
            )
        return usage

    async def usage(self, principal_id: str, now: datetime | None = None) -> QuotaUsage:
        policy = self._policy
        period_key = policy.period.key_for(now or self._clock.now())
        async with self._uow_factory() as uow:
            usage = await uow.quotas.get(principal_id, policy.metric, period_key)
        return usage or QuotaUsage(principal_id, policy.metric, period_key, 0, policy.limit)


__all__ = [
    "QuotaCounter",
    "QuotaPeriod",
    "QuotaPolicy",
    "QuotaRepository",
    "QuotaUnitOfWork",
    "QuotaUsage",
]
