"""Cache layer for the storefront API.

Provides Redis caching with the cache-aside pattern:
- Fingerprint keys per list page and per entity
- Availability tracking with bypass when Redis is down
- Pattern-based invalidation after writes
- TTL-based expiration as the backstop
"""

from storefront.cache.aside import CacheAside, JsonCodec, ModelCodec
from storefront.cache.invalidation import InvalidationRouter, ParentRef
from storefront.cache.keys import CacheKeys, EntityType
from storefront.cache.store import CacheError, CacheRead, CacheStore, CacheWrite

__all__ = [
    "CacheAside",
    "CacheError",
    "CacheKeys",
    "CacheRead",
    "CacheStore",
    "CacheWrite",
    "EntityType",
    "InvalidationRouter",
    "JsonCodec",
    "ModelCodec",
    "ParentRef",
]
