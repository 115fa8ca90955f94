"""SQLAlchemy adapter – SqlAlchemyOutboxStore."""
from __future__ import annotations

from collections.abc import Collection
from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from mp_outbox.adapters.sqlalchemy.models import OutboxRecordModel
from mp_outbox.kernel.errors import MAX_REASON_LENGTH
from mp_outbox.kernel.messaging import OutboxBacklog, OutboxRecord, OutboxStore
from mp_outbox.kernel.time import as_utc


class SqlAlchemyOutboxStore(OutboxStore):
    """Outbox table access bound to the unit of work's session."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def append(self, record: OutboxRecord) -> OutboxRecord:
        row = OutboxRecordModel(**self._record_to_dict(record))
        self._session.add(row)
        await self._session.flush()
        record.id = row.id
        return record

    async def get(self, event_id: str) -> OutboxRecord | None:
        result = await self._session.execute(
            select(OutboxRecordModel).where(OutboxRecordModel.event_id == event_id)
        )
        row = result.scalar_one_or_none()
        return self._row_to_record(row) if row is not None else None

    async def fetch_unpublished(
        self,
        limit: int = 50,
        *,
        claim: bool = False,
        exclude_keys: Collection[str] = (),
    ) -> list[OutboxRecord]:
        stmt = select(OutboxRecordModel).where(OutboxRecordModel.published.is_(False))
        if exclude_keys:
            stmt = stmt.where(OutboxRecordModel.partition_key.not_in(sorted(exclude_keys)))
        stmt = stmt.order_by(OutboxRecordModel.created_at, OutboxRecordModel.event_id).limit(limit)
        if claim:
            stmt = stmt.with_for_update(skip_locked=True)
        result = await self._session.execute(stmt)
        return [self._row_to_record(row) for row in result.scalars().all()]

    async def mark_published(self, record_id: int, published_at: datetime) -> bool:
        result = await self._session.execute(
            update(OutboxRecordModel)
            .where(OutboxRecordModel.id == record_id, OutboxRecordModel.published.is_(False))
            .values(published=True, published_at=published_at)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def record_failure(self, record_id: int, error: str) -> None:
        await self._session.execute(
            update(OutboxRecordModel)
            .where(OutboxRecordModel.id == record_id)
            .values(
                publish_attempts=OutboxRecordModel.publish_attempts + 1,
                last_error=error[:MAX_REASON_LENGTH],
            )
            .execution_options(synchronize_session=False)
        )

    async def purge_published(self, before: datetime, limit: int | None = None) -> int:
        condition = (OutboxRecordModel.published.is_(True), OutboxRecordModel.published_at < before)
        if limit is None:
            stmt = delete(OutboxRecordModel).where(*condition)
        else:
            victims = (
                select(OutboxRecordModel.id)
                .where(*condition)
                .order_by(OutboxRecordModel.published_at)
                .limit(limit)
                .scalar_subquery()
            )
            stmt = delete(OutboxRecordModel).where(OutboxRecordModel.id.in_(victims))
        result = await self._session.execute(stmt.execution_options(synchronize_session=False))
        return result.rowcount

    async def backlog(self) -> OutboxBacklog:
        result = await self._session.execute(
            select(func.count(OutboxRecordModel.id), func.min(OutboxRecordModel.created_at)).where(
                OutboxRecordModel.published.is_(False)
            )
        )
        pending, oldest = result.one()
        return OutboxBacklog(pending=pending or 0, oldest_created_at=as_utc(oldest) if oldest else None)

    def _record_to_dict(self, record: OutboxRecord) -> dict:
        return {
            "event_id": record.event_id,
            "event_type": record.event_type,
            "partition_key": record.partition_key,
            "producer": record.producer,
            "payload": record.payload,
            "trace_context": dict(record.trace_context),
            "occurred_at": record.occurred_at,
            "created_at": record.created_at,
            "published": record.published,
            "published_at": record.published_at,
            "publish_attempts": record.publish_attempts,
            "last_error": record.last_error,
        }

    def _row_to_record(self, row: OutboxRecordModel) -> OutboxRecord:
        return OutboxRecord(
            id=row.id,
            event_id=row.event_id,
            event_type=row.event_type,
            partition_key=row.partition_key,
            producer=row.producer,
            payload=row.payload,
            trace_context=dict(row.trace_context or {}),
            occurred_at=as_utc(row.occurred_at),
            created_at=as_utc(row.created_at),
            published=row.published,
            published_at=as_utc(row.published_at) if row.published_at else None,
            publish_attempts=row.publish_attempts,
            last_error=row.last_error,
        )


__all__ = ["SqlAlchemyOutboxStore"]
