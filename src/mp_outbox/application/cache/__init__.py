"""Application cache – bounded TTL cache with tag invalidation."""
from mp_outbox.application.cache.keys import CacheKey
from mp_outbox.application.cache.tags import CacheInvalidationEvent, TaggedCacheStore
from mp_outbox.application.cache.ttl import BoundedTTLCache

__all__ = [
    "BoundedTTLCache",
    "CacheInvalidationEvent",
    "CacheKey",
    "TaggedCacheStore",
]
