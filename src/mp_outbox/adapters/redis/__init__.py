"""Redis adapter – shared decision cache."""
from mp_outbox.adapters.redis.cache import RedisCache
from mp_outbox.adapters.redis.tagged import RedisTaggedCacheStore

__all__ = ["RedisCache", "RedisTaggedCacheStore"]
