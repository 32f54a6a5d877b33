"""Periodic removal of expired entries.

Reads already drop stale entries lazily; the sweeper reclaims memory held
by entries nobody reads again.
"""

from __future__ import annotations

import asyncio
import logging

from fleetdesk.cache.store import MemoryCache

logger = logging.getLogger(__name__)


class CacheSweeper:
    """Runs ``store.sweep()`` every ``interval`` seconds."""

    def __init__(self, store: MemoryCache, interval: float = 60.0) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be > 0, got {interval}")
        self.store = store
        self.interval = interval
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info(f"Cache sweeper started (every {self.interval}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Cache sweeper stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            removed = self.store.sweep()
            if removed:
                logger.info(f"Cleaned up {removed} expired cache entries")
