"""SQLAlchemy adapter – SqlAlchemyDeadLetterStore."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from mp_outbox.adapters.sqlalchemy.models import DeadLetterModel
from mp_outbox.kernel.messaging import DeadLetterEntry, DeadLetterStore
from mp_outbox.kernel.time import as_utc


class SqlAlchemyDeadLetterStore(DeadLetterStore):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def push(self, entry: DeadLetterEntry) -> None:
        self._session.add(
            DeadLetterModel(
                id=entry.id,
                consumer_group=entry.consumer_group,
                event_id=entry.event_id,
                event_type=entry.event_type,
                topic=entry.topic,
                data=entry.data,
                reason=entry.reason,
                attempts=entry.attempts,
                failed_at=entry.failed_at,
                replayed_at=entry.replayed_at,
            )
        )
        await self._session.flush()

    async def get(self, entry_id: str) -> DeadLetterEntry | None:
        row = await self._session.get(DeadLetterModel, entry_id)
        return self._row_to_entry(row) if row is not None else None

    async def list(
        self,
        consumer_group: str,
        limit: int = 100,
        *,
        include_replayed: bool = False,
    ) -> list[DeadLetterEntry]:
        stmt = select(DeadLetterModel).where(DeadLetterModel.consumer_group == consumer_group)
        if not include_replayed:
            stmt = stmt.where(DeadLetterModel.replayed_at.is_(None))
        result = await self._session.execute(stmt.order_by(DeadLetterModel.failed_at).limit(limit))
        return [self._row_to_entry(row) for row in result.scalars().all()]

    async def mark_replayed(self, entry_id: str, replayed_at: datetime) -> None:
        await self._session.execute(
            update(DeadLetterModel)
            .where(DeadLetterModel.id == entry_id)
            .values(replayed_at=replayed_at)
            .execution_options(synchronize_session=False)
        )

    def _row_to_entry(self, row: DeadLetterModel) -> DeadLetterEntry:
        return DeadLetterEntry(
            id=row.id,
            consumer_group=row.consumer_group,
            event_id=row.event_id,
            event_type=row.event_type,
            topic=row.topic,
            data=row.data,
            reason=row.reason,
            attempts=row.attempts,
            failed_at=as_utc(row.failed_at),
            replayed_at=as_utc(row.replayed_at) if row.replayed_at else None,
        )


__all__ = ["SqlAlchemyDeadLetterStore"]
