"""Application consumer – ConsumerWorker: the receive loop of one consumer group."""
from __future__ import annotations

import asyncio
import contextlib

from mp_outbox.application.consumer.dispatcher import IdempotentDispatcher
from mp_outbox.kernel.messaging import Delivery, Subscription
from mp_outbox.observability.logging import get_logger

logger = get_logger(__name__)


class ConsumerWorker:
    """Feed deliveries from *subscription* to *dispatcher* on a background task.

    ``stop()`` waits for the delivery being dispatched to commit and ack
    before tearing the subscription down.
    """

    def __init__(self, subscription: Subscription, dispatcher: IdempotentDispatcher) -> None:
        self._subscription = subscription
        self._dispatcher = dispatcher
        self._task: asyncio.Task[None] | None = None
        self._idle = asyncio.Event()
        self._idle.set()
        self._stopping = False

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.is_running:
            return
        self._stopping = False
        await self._subscription.start()
        self._task = asyncio.create_task(
            self._run(), name=f"consumer:{self._dispatcher.consumer_group}"
        )
        logger.info("consumer.started", consumer_group=self._dispatcher.consumer_group)

    async def stop(self) -> None:
        self._stopping = True
        if self._task is not None:
            await self._idle.wait()
            if not self._task.done():
                # only reachable while waiting for the next delivery
                self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        await self._subscription.stop()
        logger.info("consumer.stopped", consumer_group=self._dispatcher.consumer_group)

    async def _run(self) -> None:
        async for delivery in self._subscription:
            self._idle.clear()
            try:
                await self._process(delivery)
            finally:
                self._idle.set()
            if self._stopping:
                break

    async def _process(self, delivery: Delivery) -> None:
        try:
            await self._dispatcher.dispatch(delivery)
        except Exception:  # noqa: BLE001
            logger.exception("consumer.dispatch_failed", delivery=repr(delivery))
            await delivery.nack()


__all__ = ["ConsumerWorker"]
