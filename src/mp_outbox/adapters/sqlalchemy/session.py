"""SQLAlchemy adapter – SqlAlchemySessionFactory."""
from __future__ import annotations

from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from mp_outbox.adapters.sqlalchemy.models import Base


def _serialize_sqlite_writers(engine: AsyncEngine) -> None:
    """Take SQLite's write lock at BEGIN.

    A deferred transaction that reads and then writes can hit SQLITE_BUSY
    without waiting when another writer holds the lock; ``BEGIN IMMEDIATE``
    makes concurrent transactions queue on the busy timeout instead.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class SqlAlchemySessionFactory:
    """Creates async SQLAlchemy sessions from an engine URL.

    *schema* maps the unqualified tables onto one partition's schema, so each
    service gets its own outbox, ledger and aggregate tables.
    """

    def __init__(self, database_url: str, *, schema: str | None = None, **engine_kwargs: Any) -> None:
        self._engine = create_async_engine(database_url, **engine_kwargs)
        if self._engine.dialect.name == "sqlite":
            _serialize_sqlite_writers(self._engine)
        if schema is not None:
            self._engine = self._engine.execution_options(schema_translate_map={None: schema})
        self._session_factory = async_sessionmaker(self._engine, class_=AsyncSession, expire_on_commit=False)

    def __call__(self) -> AsyncSession:
        return self._session_factory()

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def create_tables(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self._engine.dispose()


__all__ = ["SqlAlchemySessionFactory"]
