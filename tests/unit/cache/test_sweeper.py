"""Tests for the background expiry sweeper."""

import asyncio

import pytest

from fleetdesk.cache.store import MemoryCache
from fleetdesk.cache.sweeper import CacheSweeper


class TestCacheSweeper:
    """Test sweeper lifecycle."""

    def test_interval_must_be_positive(self, store: MemoryCache) -> None:
        with pytest.raises(ValueError):
            CacheSweeper(store, interval=0)

    @pytest.mark.asyncio
    async def test_sweeps_expired_entries(self, store: MemoryCache, clock) -> None:
        """Expired entries disappear without being read."""
        store.set("k:1", 1, ttl=1)
        store.set("k:2", 2, ttl=100)
        clock.advance(5)

        sweeper = CacheSweeper(store, interval=0.01)
        sweeper.start()
        await asyncio.sleep(0.05)
        await sweeper.stop()

        assert len(store) == 1
        assert store.stats().expirations == 1

    @pytest.mark.asyncio
    async def test_start_is_idempotent_and_stop_clears(self, store: MemoryCache) -> None:
        sweeper = CacheSweeper(store, interval=60)
        sweeper.start()
        sweeper.start()
        assert sweeper.running is True

        await sweeper.stop()
        assert sweeper.running is False
        await sweeper.stop()
