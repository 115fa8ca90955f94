"""SQLAlchemy adapter – SqlAlchemyDedupLedger."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from mp_outbox.adapters.sqlalchemy.models import DedupLedgerModel
from mp_outbox.kernel.errors import DuplicateEventError
from mp_outbox.kernel.messaging import DedupLedger, DedupLedgerEntry


class SqlAlchemyDedupLedger(DedupLedger):
    """Ledger rows written in the consumer's own transaction.

    The insert is executed immediately (not deferred to flush) so a
    concurrent winner surfaces here as :class:`DuplicateEventError`.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def contains(self, consumer_group: str, event_id: str) -> bool:
        result = await self._session.execute(
            select(DedupLedgerModel.event_id).where(
                DedupLedgerModel.consumer_group == consumer_group,
                DedupLedgerModel.event_id == event_id,
            )
        )
        return result.first() is not None

    async def record(self, entry: DedupLedgerEntry) -> None:
        try:
            await self._session.execute(
                insert(DedupLedgerModel).values(
                    consumer_group=entry.consumer_group,
                    event_id=entry.event_id,
                    processed_at=entry.processed_at,
                )
            )
        except IntegrityError as exc:
            raise DuplicateEventError(entry.consumer_group, entry.event_id, cause=exc) from exc

    async def purge_before(self, consumer_group: str, before: datetime) -> int:
        result = await self._session.execute(
            delete(DedupLedgerModel).where(
                DedupLedgerModel.consumer_group == consumer_group,
                DedupLedgerModel.processed_at < before,
            )
        )
        return result.rowcount


__all__ = ["SqlAlchemyDedupLedger"]
