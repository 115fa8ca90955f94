"""SQLAlchemy adapter – SqlAlchemyUnitOfWork."""
from __future__ import annotations

from collections.abc import Callable
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from mp_outbox.adapters.sqlalchemy.dead_letter import SqlAlchemyDeadLetterStore
from mp_outbox.adapters.sqlalchemy.ledger import SqlAlchemyDedupLedger
from mp_outbox.adapters.sqlalchemy.outbox import SqlAlchemyOutboxStore
from mp_outbox.adapters.sqlalchemy.permissions import SqlAlchemyPermissionStore
from mp_outbox.adapters.sqlalchemy.quota import SqlAlchemyQuotaRepository
from mp_outbox.adapters.sqlalchemy.scores import SqlAlchemyScoreRepository, SqlAlchemyVoteSource
from mp_outbox.kernel.messaging import UnitOfWork


class SqlAlchemyUnitOfWork(UnitOfWork):
    """SQLAlchemy async unit of work.

    Domain rows written through ``session`` and every store below share one
    transaction: outbox records, ledger entries and aggregate deltas commit
    or roll back together.
    """

    def __init__(self, session_factory: Callable[[], AsyncSession]) -> None:
        self._factory = session_factory
        self.session: Any = None

    @classmethod
    def factory(cls, session_factory: Callable[[], AsyncSession]) -> Callable[[], "SqlAlchemyUnitOfWork"]:
        return lambda: cls(session_factory)

    async def __aenter__(self) -> "SqlAlchemyUnitOfWork":
        self.session = self._factory()
        self.outbox = SqlAlchemyOutboxStore(self.session)
        self.ledger = SqlAlchemyDedupLedger(self.session)
        self.dead_letters = SqlAlchemyDeadLetterStore(self.session)
        self.scores = SqlAlchemyScoreRepository(self.session)
        self.votes = SqlAlchemyVoteSource(self.session)
        self.quotas = SqlAlchemyQuotaRepository(self.session)
        self.permissions = SqlAlchemyPermissionStore(self.session)
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        try:
            if exc_type is None:
                await self.commit()
            else:
                await self.rollback()
        finally:
            await self.session.close()

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()


__all__ = ["SqlAlchemyUnitOfWork"]
