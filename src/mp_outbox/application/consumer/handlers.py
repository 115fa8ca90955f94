"""Application consumer – handler registry keyed by versioned event type."""
from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from mp_outbox.kernel.errors import ConflictError
from mp_outbox.kernel.messaging import EventEnvelope, EventType

EventHandler = Callable[[EventEnvelope, Any], Awaitable[None]]
"""``async handler(envelope, uow)``: mutate derived state through *uow* only."""


class HandlerRegistry:
    """Maps ``Name.vN`` event types to handlers.

    Each version is registered separately, so a consumer that only knows
    ``TripCreated.v1`` ignores ``TripCreated.v2`` until it opts in.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, EventHandler] = {}

    def register(self, event_type: str, handler: EventHandler) -> None:
        EventType.parse(event_type)
        if event_type in self._handlers:
            raise ConflictError(f"A handler for '{event_type}' is already registered")
        self._handlers[event_type] = handler

    def on(self, event_type: str) -> Callable[[EventHandler], EventHandler]:
        """Decorator form of :meth:`register`."""

        def decorator(handler: EventHandler) -> EventHandler:
            self.register(event_type, handler)
            return handler

        return decorator

    def get(self, event_type: str) -> EventHandler | None:
        return self._handlers.get(event_type)

    def event_types(self) -> list[str]:
        return sorted(self._handlers)

    def __contains__(self, event_type: object) -> bool:
        return event_type in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)


__all__ = ["EventHandler", "HandlerRegistry"]
