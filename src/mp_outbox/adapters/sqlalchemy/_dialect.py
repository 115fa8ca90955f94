"""SQLAlchemy adapter – dialect-specific statement helpers."""
from __future__ import annotations

from typing import Any

from sqlalchemy import insert
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession


async def insert_if_absent(
    session: AsyncSession,
    model: Any,
    values: dict[str, Any],
    index_elements: list[str],
) -> bool:
    """``INSERT ... ON CONFLICT DO NOTHING``; return ``True`` if a row was inserted.

    Dialects without an upsert clause fall back to a savepoint so a conflict
    does not poison the surrounding transaction.
    """
    dialect = session.bind.dialect.name if session.bind is not None else ""
    if dialect == "postgresql":
        stmt = postgresql.insert(model).values(**values).on_conflict_do_nothing(index_elements=index_elements)
    elif dialect == "sqlite":
        stmt = sqlite.insert(model).values(**values).on_conflict_do_nothing(index_elements=index_elements)
    else:
        try:
            async with session.begin_nested():
                await session.execute(insert(model).values(**values))
        except IntegrityError:
            return False
        return True
    result = await session.execute(stmt)
    return result.rowcount == 1


__all__ = ["insert_if_absent"]
