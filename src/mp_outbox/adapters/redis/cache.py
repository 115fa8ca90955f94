"""Redis adapter – RedisCache, the connection shared by the Redis stores."""
from __future__ import annotations

import logging
from collections.abc import Awaitable
from typing import Any, TypeVar

from mp_outbox.kernel.errors import CacheUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _require_redis() -> Any:
    try:
        import redis.asyncio as aioredis
        return aioredis
    except ImportError as exc:
        raise ImportError("Install 'mp-outbox[redis]' to use the Redis adapter") from exc


class RedisCache:
    """Async Redis client wrapper.

    Connection and command failures surface as :class:`CacheUnavailableError`
    so callers can tell an unreachable cache from a cache miss.
    """

    def __init__(self, url: str, **kwargs: Any) -> None:
        aioredis = _require_redis()
        self._client = aioredis.from_url(url, **kwargs)
        self._redis_error: type[BaseException] = aioredis.RedisError

    async def _run(self, command: str, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except self._redis_error as exc:
            logger.warning("redis.%s failed error=%s", command, exc)
            raise CacheUnavailableError(f"Redis {command} failed", cause=exc) from exc

    async def get(self, key: str) -> bytes | None:
        return await self._run("get", self._client.get(key))

    async def set(self, key: str, value: bytes, ttl: int | None = None) -> None:
        await self._run("set", self._client.set(key, value, ex=ttl))

    async def delete(self, key: str) -> int:
        return int(await self._run("delete", self._client.delete(key)) or 0)

    async def eval(self, script: str, keys: list[str], args: list[Any]) -> Any:
        return await self._run("eval", self._client.eval(script, len(keys), *keys, *args))

    async def ping(self) -> bool:
        return bool(await self._run("ping", self._client.ping()))

    async def close(self) -> None:
        await self._client.aclose()


__all__ = ["RedisCache"]
