"""Kernel messaging – unit of work port (the local transaction boundary)."""
from __future__ import annotations

import abc
from typing import Any

from mp_outbox.kernel.messaging.dead_letter import DeadLetterStore
from mp_outbox.kernel.messaging.ledger import DedupLedger
from mp_outbox.kernel.messaging.outbox import OutboxStore


class UnitOfWork(abc.ABC):
    """Port: one local transaction plus the stores that join it.

    Leaving the ``async with`` block normally commits; leaving it with an
    exception rolls back.
    """

    outbox: OutboxStore
    ledger: DedupLedger
    dead_letters: DeadLetterStore

    @abc.abstractmethod
    async def commit(self) -> None: ...

    @abc.abstractmethod
    async def rollback(self) -> None: ...

    async def __aenter__(self) -> "UnitOfWork":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        if exc_type is None:
            await self.commit()
        else:
            await self.rollback()


__all__ = ["UnitOfWork"]
