"""Application cache – BoundedTTLCache, the in-process TaggedCacheStore."""
from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any

from mp_outbox.config.settings import RelaySettings
from mp_outbox.kernel.time import Clock, SystemClock

__all__ = ["BoundedTTLCache"]


@dataclass
class _Entry:
    value: Any
    expires_at: float
    tags: frozenset[str] = field(default_factory=frozenset)


class BoundedTTLCache:
    """LRU cache bounded by ``max_entries`` whose entries expire after ``ttl_seconds``.

    Not shared between processes; pair it with an event handler that calls
    :meth:`delete` / :meth:`invalidate_tag` so other replicas converge.
    """

    def __init__(self, max_entries: int = 10_000, ttl_seconds: float = 30.0, *, clock: Clock | None = None) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._max_entries = max_entries
        self._ttl = ttl_seconds
        self._clock = clock or SystemClock()
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self._tags: dict[str, set[str]] = {}
        self._generation = 0
        self.evictions = 0

    @classmethod
    def from_settings(cls, settings: RelaySettings, *, clock: Clock | None = None) -> "BoundedTTLCache":
        return cls(settings.permission_cache_max_entries, settings.permission_cache_ttl_seconds, clock=clock)

    async def get(self, key: str) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock.timestamp():
            self._remove(key)
            return None
        self._entries.move_to_end(key)
        return entry.value

    async def set(
        self,
        key: str,
        value: Any,
        ttl: float | None = None,
        tags: list[str] | None = None,
        *,
        generation: int | None = None,
    ) -> bool:
        if generation is not None and generation != self._generation:
            return False
        if key in self._entries:
            self._remove(key)
        entry = _Entry(value, self._clock.timestamp() + (ttl or self._ttl), frozenset(tags or ()))
        self._entries[key] = entry
        for tag in entry.tags:
            self._tags.setdefault(tag, set()).add(key)
        while len(self._entries) > self._max_entries:
            oldest = next(iter(self._entries))
            self._remove(oldest)
            self.evictions += 1
        return True

    async def delete(self, key: str) -> bool:
        self._generation += 1
        return self._remove(key)

    async def invalidate_tag(self, tag: str) -> int:
        self._generation += 1
        keys = list(self._tags.pop(tag, set()))
        for key in keys:
            self._remove(key)
        return len(keys)

    async def generation(self) -> int:
        return self._generation

    def clear(self) -> None:
        self._generation += 1
        self._entries.clear()
        self._tags.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def _remove(self, key: str) -> bool:
        entry = self._entries.pop(key, None)
        if entry is None:
            return False
        for tag in entry.tags:
            keys = self._tags.get(tag)
            if keys is not None:
                keys.discard(key)
                if not keys:
                    del self._tags[tag]
        return True
