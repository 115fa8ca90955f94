"""Application cache – TaggedCacheStore port."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

__all__ = ["CacheInvalidationEvent", "TaggedCacheStore"]


@dataclass(frozen=True)
class CacheInvalidationEvent:
    """Emitted when a tag is invalidated."""
    tag: str
    keys_removed: int = 0


@runtime_checkable
class TaggedCacheStore(Protocol):
    """Port: TTL cache with tag-based invalidation and a generation counter.

    Every invalidation bumps the generation. A caller that reads
    :meth:`generation` before loading from the source of truth passes it to
    :meth:`set`; the write is refused if an invalidation happened in between,
    so a stale load can never overwrite a fresher invalidation.
    """

    async def get(self, key: str) -> Any: ...
    async def set(
        self,
        key: str,
        value: Any,
        ttl: float | None = None,
        tags: list[str] | None = None,
        *,
        generation: int | None = None,
    ) -> bool: ...
    async def delete(self, key: str) -> bool: ...
    async def invalidate_tag(self, tag: str) -> int: ...  # returns number of removed keys
    async def generation(self) -> int: ...
