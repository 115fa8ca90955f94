"""SQLAlchemy adapter – SqlAlchemyQuotaRepository."""
from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from mp_outbox.adapters.sqlalchemy._dialect import insert_if_absent
from mp_outbox.adapters.sqlalchemy.models import QuotaCounterModel
from mp_outbox.application.derived.quota import QuotaRepository, QuotaUsage
from mp_outbox.kernel.time import utc_now


class SqlAlchemyQuotaRepository(QuotaRepository):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def try_increment(
        self, principal_id: str, metric: str, period_key: str, amount: int
    ) -> QuotaUsage | None:
        result = await self._session.execute(
            update(QuotaCounterModel)
            .where(
                QuotaCounterModel.principal_id == principal_id,
                QuotaCounterModel.metric == metric,
                QuotaCounterModel.period_key == period_key,
                QuotaCounterModel.used + amount <= QuotaCounterModel.limit_value,
            )
            .values(used=QuotaCounterModel.used + amount, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        return await self.get(principal_id, metric, period_key)

    async def create_if_absent(self, principal_id: str, metric: str, period_key: str, limit: int) -> bool:
        return await insert_if_absent(
            self._session,
            QuotaCounterModel,
            {
                "principal_id": principal_id,
                "metric": metric,
                "period_key": period_key,
                "used": 0,
                "limit_value": limit,
                "updated_at": utc_now(),
            },
            ["principal_id", "metric", "period_key"],
        )

    async def get(self, principal_id: str, metric: str, period_key: str) -> QuotaUsage | None:
        result = await self._session.execute(
            select(QuotaCounterModel.used, QuotaCounterModel.limit_value).where(
                QuotaCounterModel.principal_id == principal_id,
                QuotaCounterModel.metric == metric,
                QuotaCounterModel.period_key == period_key,
            )
        )
        row = result.first()
        if row is None:
            return None
        return QuotaUsage(principal_id, metric, period_key, int(row.used), int(row.limit_value))


__all__ = ["SqlAlchemyQuotaRepository"]
