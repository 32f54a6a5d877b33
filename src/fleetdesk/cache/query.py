"""Cache-aside wrapper around arbitrary async fetchers.

Usage:
    vehicles = await cache.get_or_set(
        CacheKeys.vehicles(filters),
        lambda: repository.list(filters),
        ttl=60,
    )

On a hit the fetcher is not called. On a miss the fetcher runs, its
result is stored and returned. A fetcher exception propagates untouched
and nothing is stored, so the next call tries again.

Concurrent misses on the same key share a single fetch: the first caller
starts it as a task and later callers await the same task. Callers that
go away (cancelled requests) do not cancel the shared fetch; its result is
still cached for whoever asks next.

An invalidation that covers the key while a fetch is running detaches
that fetch: its result goes back to the callers already waiting on it
but is not stored, and a caller arriving after the invalidation starts a
fresh fetch instead of joining, since the running one may predate the
write that caused the invalidation.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any, ParamSpec, TypeVar

from fleetdesk.cache.errors import CacheError
from fleetdesk.cache.keys import namespace
from fleetdesk.cache.store import MemoryCache
from fleetdesk.observability.metrics import get_metrics

logger = logging.getLogger(__name__)

T = TypeVar("T")
P = ParamSpec("P")

_MISS = object()


@dataclass
class _InFlight:
    task: asyncio.Task[Any]
    version: tuple[int, int, int]
    tags: tuple[str, ...]


class CacheAside:
    """Cache-aside reads over a ``MemoryCache``."""

    def __init__(self, store: MemoryCache, enabled: bool = True) -> None:
        self.store = store
        self.enabled = enabled
        self._in_flight: dict[str, _InFlight] = {}

    @property
    def in_flight(self) -> int:
        """Number of fetches currently running."""
        return len(self._in_flight)

    async def get_or_set(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[T]],
        ttl: float | None = None,
        tags: Iterable[str] = (),
    ) -> T:
        """Return the cached value for ``key`` or compute, store and return it."""
        metrics = get_metrics()
        ns = namespace(key)

        if not self.enabled:
            metrics.cache_lookups_total.labels(namespace=ns, result="bypass").inc()
            return await fetcher()

        cached = self._read(key)
        if cached is not _MISS:
            metrics.cache_lookups_total.labels(namespace=ns, result="hit").inc()
            return cached  # type: ignore[no-any-return]

        metrics.cache_lookups_total.labels(namespace=ns, result="miss").inc()

        pending = self._in_flight.get(key)
        if pending is not None and self._joinable(key, pending):
            logger.debug(f"Joining in-flight fetch for {key}")
        else:
            entry_tags = tuple(tags)
            version = self.store.version(key, entry_tags)
            task = asyncio.ensure_future(self._fill(key, fetcher, ttl, entry_tags, version))
            pending = _InFlight(task, version, entry_tags)
            self._in_flight[key] = pending
            task.add_done_callback(functools.partial(self._forget, key))

        return await asyncio.shield(pending.task)  # type: ignore[no-any-return]

    def lookup(self, key: str) -> tuple[bool, Any]:
        """Plain read: returns (hit, value). Never raises."""
        value = self._read(key) if self.enabled else _MISS
        if value is _MISS:
            return False, None
        return True, value

    def _joinable(self, key: str, pending: _InFlight) -> bool:
        if pending.task.done():
            return False
        if self.store.version(key, pending.tags) != pending.version:
            logger.debug(f"Cache invalidated during fetch, not joining {key}")
            return False
        return True

    async def _fill(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[T]],
        ttl: float | None,
        tags: tuple[str, ...],
        version: tuple[int, int, int],
    ) -> T:
        value = await fetcher()

        if self.store.version(key, tags) != version:
            logger.debug(f"Cache invalidated during fetch, not storing {key}")
            return value

        try:
            self.store.set(key, value, ttl=ttl, tags=tags)
        except CacheError as e:
            logger.warning(f"Cache write failed for {key}, serving uncached: {e}")
        return value

    def _read(self, key: str) -> Any:
        try:
            return self.store.get(key, _MISS)
        except CacheError as e:
            logger.warning(f"Cache read failed for {key}, treating as miss: {e}")
            get_metrics().cache_lookups_total.labels(
                namespace=namespace(key), result="degraded"
            ).inc()
            return _MISS

    def _forget(self, key: str, task: asyncio.Task[Any]) -> None:
        pending = self._in_flight.get(key)
        if pending is not None and pending.task is task:
            del self._in_flight[key]
        # Waiters that were cancelled never retrieve the exception
        if not task.cancelled():
            task.exception()


async def cache_query(
    cache: CacheAside,
    key: str,
    fetcher: Callable[[], Awaitable[T]],
    ttl: float | None = None,
) -> T:
    """Cache a query result under ``key``."""
    return await cache.get_or_set(key, fetcher, ttl=ttl)


def cached(
    cache: CacheAside | Callable[[], CacheAside],
    key: str | Callable[..., str],
    ttl: float | None = None,
    tags: Iterable[str] = (),
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator form of ``get_or_set``.

    ``cache`` may be a factory so the decorated function can be defined
    before the application builds its cache. ``key`` may be a callable
    receiving the same arguments as the decorated function.

    Usage:
        @cached(lambda: app.state.cache_aside, key=lambda vid: CacheKeys.vehicle(vid), ttl=300)
        async def load_vehicle(vid: str) -> dict: ...
    """
    frozen_tags = tuple(tags)

    def decorator(fn: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @functools.wraps(fn)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            target = cache if isinstance(cache, CacheAside) else cache()
            resolved = key(*args, **kwargs) if callable(key) else key
            return await target.get_or_set(
                resolved, lambda: fn(*args, **kwargs), ttl=ttl, tags=frozen_tags
            )

        return wrapper

    return decorator
