"""Redis adapter – RedisTaggedCacheStore, the shared permission decision cache."""
from __future__ import annotations

import json
from typing import Any

from mp_outbox.adapters.redis.cache import RedisCache

_SET_IF_GENERATION = """
if ARGV[1] ~= '' and (redis.call('GET', KEYS[1]) or '0') ~= ARGV[1] then
    return 0
end
redis.call('SET', KEYS[2], ARGV[2], 'PX', ARGV[3])
for i = 3, #KEYS do
    redis.call('SADD', KEYS[i], KEYS[2])
    redis.call('PEXPIRE', KEYS[i], ARGV[3])
end
return 1
"""

_DELETE = """
redis.call('INCR', KEYS[1])
return redis.call('DEL', KEYS[2])
"""

_INVALIDATE_TAG = """
redis.call('INCR', KEYS[1])
local removed = 0
for _, key in ipairs(redis.call('SMEMBERS', KEYS[2])) do
    removed = removed + redis.call('DEL', key)
end
redis.call('DEL', KEYS[2])
return removed
"""


class RedisTaggedCacheStore:
    """:class:`TaggedCacheStore` shared by every replica through Redis.

    All keys of one namespace carry the same hash tag so the Lua scripts stay
    on a single cluster slot. Writes and invalidations are scripts, so the
    generation check and the write are atomic.
    """

    def __init__(self, cache: RedisCache, *, namespace: str = "perm", default_ttl: float = 30.0) -> None:
        self._cache = cache
        self._prefix = f"{{{namespace}}}"
        self._default_ttl = default_ttl

    def _value_key(self, key: str) -> str:
        return f"{self._prefix}:v:{key}"

    def _tag_key(self, tag: str) -> str:
        return f"{self._prefix}:t:{tag}"

    @property
    def _generation_key(self) -> str:
        return f"{self._prefix}:gen"

    async def get(self, key: str) -> Any:
        raw = await self._cache.get(self._value_key(key))
        if raw is None:
            return None
        return json.loads(raw)

    async def set(
        self,
        key: str,
        value: Any,
        ttl: float | None = None,
        tags: list[str] | None = None,
        *,
        generation: int | None = None,
    ) -> bool:
        ttl_ms = int((ttl or self._default_ttl) * 1000)
        keys = [self._generation_key, self._value_key(key), *(self._tag_key(t) for t in tags or [])]
        expected = "" if generation is None else str(generation)
        stored = await self._cache.eval(_SET_IF_GENERATION, keys, [expected, json.dumps(value), ttl_ms])
        return bool(stored)

    async def delete(self, key: str) -> bool:
        removed = await self._cache.eval(_DELETE, [self._generation_key, self._value_key(key)], [])
        return bool(removed)

    async def invalidate_tag(self, tag: str) -> int:
        return int(await self._cache.eval(_INVALIDATE_TAG, [self._generation_key, self._tag_key(tag)], []))

    async def generation(self) -> int:
        raw = await self._cache.get(self._generation_key)
        return int(raw) if raw is not None else 0


__all__ = ["RedisTaggedCacheStore"]
