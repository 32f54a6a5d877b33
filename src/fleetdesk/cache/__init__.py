"""Cache layer for fleetdesk.

In-process caching with the cache-aside pattern:
- TTL store with LRU eviction and tag index
- Deterministic key construction from filters
- Cache-aside wrapper with in-flight de-duplication
- Tag-based invalidation after writes, optionally fanned out via Redis
"""

from fleetdesk.cache.errors import CacheError, InvalidKeyPatternError
from fleetdesk.cache.invalidation import (
    CacheInvalidationBroadcaster,
    CacheInvalidator,
    InvalidationMessage,
    InvalidationType,
)
from fleetdesk.cache.keys import CacheKeys, build_key, entity_tag, namespace
from fleetdesk.cache.query import CacheAside, cache_query, cached
from fleetdesk.cache.store import CacheEntry, CacheStats, MemoryCache
from fleetdesk.cache.sweeper import CacheSweeper

__all__ = [
    # Store
    "CacheEntry",
    "CacheStats",
    "MemoryCache",
    "CacheSweeper",
    # Keys
    "CacheKeys",
    "build_key",
    "entity_tag",
    "namespace",
    # Cache-aside
    "CacheAside",
    "cache_query",
    "cached",
    # Invalidation
    "CacheInvalidator",
    "CacheInvalidationBroadcaster",
    "InvalidationMessage",
    "InvalidationType",
    # Errors
    "CacheError",
    "InvalidKeyPatternError",
]
