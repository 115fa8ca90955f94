"""Application derived state – PermissionService and its decision cache.

Decisions are cached per ``(principal, resource type, resource id, action)``
in a bounded short-TTL :class:`TaggedCacheStore`. Mutations invalidate the
affected entries synchronously in the same call, and a ``PermissionChanged.v1``
event lets other processes invalidate theirs. A load that overlaps an
invalidation is not cached (generation check), so a revoked grant is never
served from cache after :meth:`PermissionService.revoke` returns.
"""
from __future__ import annotations

import abc
import asyncio
import dataclasses
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from mp_outbox.application.cache import CacheInvalidationEvent, CacheKey, TaggedCacheStore
from mp_outbox.application.outbox import OutboxWriter
from mp_outbox.kernel.errors import (
    CacheUnavailableError,
    PermissionDeniedError,
    ValidationError,
    describe_error,
)
from mp_outbox.kernel.messaging import EventEnvelope, OutboxStore
from mp_outbox.observability.logging import get_logger
from mp_outbox.observability.metrics import Metrics, NoopMetrics
from mp_outbox.observability.metrics import names
from mp_outbox.resilience.retry import BackoffStrategy, ExponentialBackoff

logger = get_logger(__name__)

PERMISSION_CHANGED = "PermissionChanged.v1"


@dataclasses.dataclass(frozen=True)
class PermissionKey:
    principal_id: str
    resource_type: str
    resource_id: str
    action: str

    @property
    def cache_key(self) -> str:
        return CacheKey.for_permission(self.principal_id, self.resource_type, self.resource_id, self.action)

    @property
    def tags(self) -> list[str]:
        return [
            CacheKey.for_principal(self.principal_id),
            CacheKey.for_resource(self.resource_type, self.resource_id),
        ]

    def __str__(self) -> str:
        return f"{self.resource_type}:{self.resource_id}:{self.action}"


class PermissionStore(abc.ABC):
    """Port: authoritative grants."""

    @abc.abstractmethod
    async def is_allowed(self, key: PermissionKey) -> bool: ...

    @abc.abstractmethod
    async def grant(self, key: PermissionKey) -> bool:
        """Return ``True`` if the grant was newly created."""

    @abc.abstractmethod
    async def revoke(self, key: PermissionKey) -> bool:
        """Return ``True`` if a grant was removed."""

    @abc.abstractmethod
    async def revoke_resource(self, resource_type: str, resource_id: str) -> int: ...


class PermissionUnitOfWork(Protocol):
    outbox: OutboxStore
    permissions: PermissionStore

    async def __aenter__(self) -> "PermissionUnitOfWork": ...
    async def __aexit__(self, *exc_info: object) -> None: ...


class PermissionService:
    """Cached permission checks in front of a :class:`PermissionStore`."""

    def __init__(
        self,
        uow_factory: Callable[[], PermissionUnitOfWork],
        cache: TaggedCacheStore,
        *,
        writer: OutboxWriter | None = None,
        ttl_seconds: float | None = None,
        invalidation_attempts: int = 3,
        invalidation_backoff: BackoffStrategy | None = None,
        metrics: Metrics | None = None,
    ) -> None:
        if invalidation_attempts <= 0:
            raise ValueError("invalidation_attempts must be positive")
        self._uow_factory = uow_factory
        self._cache = cache
        self._writer = writer
        self._ttl = ttl_seconds
        self._invalidation_attempts = invalidation_attempts
        self._invalidation_backoff = invalidation_backoff or ExponentialBackoff(base_delay=0.05, max_delay=1.0)
        metrics = metrics or NoopMetrics()
        self._hits = metrics.instrument(names.PERMISSION_CACHE_HIT)
        self._misses = metrics.instrument(names.PERMISSION_CACHE_MISS)

    async def check(self, principal_id: str, resource_type: str, resource_id: str, action: str) -> bool:
        """Return the decision; store errors propagate rather than granting.

        An unreachable cache degrades to an uncached store read.
        """
        key = PermissionKey(principal_id, resource_type, str(resource_id), action)
        try:
            cached = await self._cache.get(key.cache_key)
            generation = await self._cache.generation() if cached is None else 0
        except CacheUnavailableError:
            logger.warning("permission.cache_unavailable", cache_key=key.cache_key)
            return await self._load(key)
        if cached is not None:
            self._hits.add(1, {"resource_type": resource_type})
            return bool(cached)
        self._misses.add(1, {"resource_type": resource_type})
        allowed = await self._load(key)
        try:
            stored = await self._cache.set(key.cache_key, allowed, self._ttl, key.tags, generation=generation)
        except CacheUnavailableError:
            stored = False
        if not stored:
            logger.debug("permission.load_discarded", cache_key=key.cache_key)
        return allowed

    async def _load(self, key: PermissionKey) -> bool:
        async with self._uow_factory() as uow:
            return await uow.permissions.is_allowed(key)

    async def require(self, principal_id: str, resource_type: str, resource_id: str, action: str) -> None:
        if not await self.check(principal_id, resource_type, resource_id, action):
            raise PermissionDeniedError(permission=f"{resource_type}:{resource_id}:{action}")

    async def grant(self, principal_id: str, resource_type: str, resource_id: str, action: str) -> bool:
        key = PermissionKey(principal_id, resource_type, str(resource_id), action)
        async with self._uow_factory() as uow:
            changed = await uow.permissions.grant(key)
            if changed:
                await self._emit(uow, key, granted=True)
            await self._cache.delete(key.cache_key)
        await self._invalidate_after_commit(key.cache_key, lambda: self._cache.delete(key.cache_key))
        logger.info("permission.granted", principal_id=principal_id, permission=str(key), changed=changed)
        return changed

    async def revoke(self, principal_id: str, resource_type: str, resource_id: str, action: str) -> bool:
        """Remove a grant; a cached ``True`` is gone once this returns.

        The entry is dropped before the commit, so an unreachable cache aborts
        the revoke instead of leaving a stale grant behind, and again after
        the commit for loads that raced with it.
        """
        key = PermissionKey(principal_id, resource_type, str(resource_id), action)
        async with self._uow_factory() as uow:
            changed = await uow.permissions.revoke(key)
            if changed:
                await self._emit(uow, key, granted=False)
            await self._cache.delete(key.cache_key)
        await self._invalidate_after_commit(key.cache_key, lambda: self._cache.delete(key.cache_key))
        logger.info("permission.revoked", principal_id=principal_id, permission=str(key), changed=changed)
        return changed

    async def revoke_resource(self, resource_type: str, resource_id: str) -> CacheInvalidationEvent:
        """Drop every grant on a resource (e.g. it was deleted)."""
        tag = CacheKey.for_resource(resource_type, resource_id)
        async with self._uow_factory() as uow:
            removed = await uow.permissions.revoke_resource(resource_type, str(resource_id))
            if removed and self._writer is not None:
                await self._writer.append(
                    uow.outbox,
                    PERMISSION_CHANGED,
                    partition_key=tag,
                    payload={"resourceType": resource_type, "resourceId": str(resource_id), "granted": False},
                )
            keys_removed = await self._cache.invalidate_tag(tag)
        keys_removed += await self._invalidate_after_commit(tag, lambda: self._cache.invalidate_tag(tag)) or 0
        logger.info("permission.resource_revoked", tag=tag, grants_removed=removed)
        return CacheInvalidationEvent(tag=tag, keys_removed=keys_removed)

    async def _invalidate_after_commit(self, target: str, invalidate: Callable[[], Awaitable[Any]]) -> Any:
        """Run *invalidate*, retrying an unreachable cache; never raises.

        The change is already committed, so a cache that stays down is logged
        and the entry expires with its TTL.
        """
        for attempt in range(1, self._invalidation_attempts + 1):
            try:
                return await invalidate()
            except CacheUnavailableError as exc:
                if attempt == self._invalidation_attempts:
                    logger.error(
                        "permission.invalidation_failed",
                        target=target,
                        attempts=attempt,
                        error=describe_error(exc),
                    )
                    return None
                await asyncio.sleep(self._invalidation_backoff.compute(attempt))
        return None

    async def handle_permission_changed(self, envelope: EventEnvelope, uow: Any) -> None:
        """Invalidate this process's entries for a change made elsewhere."""
        payload = envelope.payload
        if not isinstance(payload, dict) or "resourceType" not in payload or "resourceId" not in payload:
            raise ValidationError(f"malformed {PERMISSION_CHANGED} payload")
        if payload.get("principalId") is not None and payload.get("action") is not None:
            key = PermissionKey(
                str(payload["principalId"]),
                str(payload["resourceType"]),
                str(payload["resourceId"]),
                str(payload["action"]),
            )
            await self._cache.delete(key.cache_key)
        else:
            await self._cache.invalidate_tag(CacheKey.for_resource(payload["resourceType"], payload["resourceId"]))

    async def _emit(self, uow: PermissionUnitOfWork, key: PermissionKey, *, granted: bool) -> None:
        if self._writer is None:
            return
        await self._writer.append(
            uow.outbox,
            PERMISSION_CHANGED,
            partition_key=CacheKey.for_resource(key.resource_type, key.resource_id),
            payload={
                "principalId": key.principal_id,
                "resourceType": key.resource_type,
                "resourceId": key.resource_id,
                "action": key.action,
                "granted": granted,
            },
        )


__all__ = [
    "PERMISSION_CHANGED",
    "PermissionKey",
    "PermissionService",
    "PermissionStore",
    "PermissionUnitOfWork",
]
