"""Administrative cache endpoints.

Provides visibility into and control over the in-process cache:
- Entry counts, hit ratio, eviction and expiration stats
- Key browsing by glob pattern
- Pattern-based deletion and full clears

Patterns are glob-style (``vehicles:*``, ``booking:?1``). A pattern that
cannot be parsed, or that would match every key, is rejected with 400 and
nothing is deleted; a full clear must be requested without a pattern.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from fleetdesk.api.deps import get_invalidator, get_store
from fleetdesk.cache.invalidation import CacheInvalidator
from fleetdesk.cache.store import MemoryCache
from fleetdesk.security.deps import require_permission
from fleetdesk.security.rbac import Permission
from fleetdesk.security.tokens import User

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin/cache",
    tags=["admin - cache"],
)

CacheAdmin = Annotated[User, Depends(require_permission(Permission.MANAGE_CACHE))]
Store = Annotated[MemoryCache, Depends(get_store)]


class CacheKeyInfo(BaseModel):
    """Information about a cached key."""

    key: str
    ttl_remaining: float
    hit_count: int
    tags: list[str]


class CacheStatsResponse(BaseModel):
    """Complete cache statistics."""

    timestamp: datetime
    size: int
    max_size: int
    active: int
    expired: int
    total_hits: int
    average_hits: float
    hits: int
    misses: int
    hit_ratio: float
    evictions: int
    expirations: int
    keys: list[CacheKeyInfo]


class ClearRequest(BaseModel):
    pattern: str | None = None


class InvalidationResult(BaseModel):
    """Result of a cache invalidation operation."""

    pattern: str | None
    deleted_count: int
    timestamp: datetime


@router.get("/stats", response_model=CacheStatsResponse)
async def get_cache_stats(user: CacheAdmin, store: Store) -> CacheStatsResponse:
    """Get cache statistics including per-key TTL and hit counts."""
    stats = store.stats()
    return CacheStatsResponse(
        timestamp=datetime.now(UTC),
        size=stats.size,
        max_size=stats.max_size,
        active=stats.active,
        expired=stats.expired,
        total_hits=stats.total_hits,
        average_hits=round(stats.average_hits, 2),
        hits=stats.hits,
        misses=stats.misses,
        hit_ratio=stats.hit_ratio,
        evictions=stats.evictions,
        expirations=stats.expirations,
        keys=[
            CacheKeyInfo(
                key=info.key,
                ttl_remaining=info.ttl_remaining,
                hit_count=info.hit_count,
                tags=info.tags,
            )
            for info in stats.keys
        ],
    )


@router.get("/keys", response_model=list[str])
async def list_cache_keys(
    user: CacheAdmin,
    store: Store,
    pattern: str = Query(..., description="Glob pattern, e.g. 'vehicles:*'"),
    limit: int = Query(default=100, ge=1, le=1000, description="Maximum keys to return"),
) -> list[str]:
    """List live keys matching a pattern."""
    return store.keys_matching(pattern)[:limit]


@router.post("/clear", response_model=InvalidationResult)
async def clear_cache(
    user: CacheAdmin,
    store: Store,
    invalidator: Annotated[CacheInvalidator, Depends(get_invalidator)],
    body: ClearRequest | None = None,
) -> InvalidationResult:
    """Clear the cache, or only keys matching ``pattern``.

    A full clear is also broadcast to peer processes.
    WARNING: This is a destructive operation.
    """
    pattern = body.pattern if body is not None else None
    if pattern is None:
        deleted = invalidator.invalidate_all_cache()
    else:
        deleted = store.delete_by_pattern(pattern)

    logger.info(
        f"Cache cleared by {user.sub}: {deleted} entries",
        extra={"pattern": pattern},
    )
    return InvalidationResult(pattern=pattern, deleted_count=deleted, timestamp=datetime.now(UTC))


@router.delete("/invalidate", response_model=InvalidationResult)
async def invalidate_cache(
    user: CacheAdmin,
    store: Store,
    pattern: str = Query(..., description="Key pattern to invalidate (e.g., 'vehicle:*')"),
) -> InvalidationResult:
    """Delete keys matching a pattern.

    WARNING: This is a destructive operation.
    """
    deleted = store.delete_by_pattern(pattern)
    logger.info(f"Cache pattern {pattern!r} invalidated by {user.sub}: {deleted} entries")
    return InvalidationResult(pattern=pattern, deleted_count=deleted, timestamp=datetime.now(UTC))
