"""Tests for cache invalidation and the Pub/Sub broadcaster."""

import pytest

from fleetdesk.cache.invalidation import (
    CacheInvalidationBroadcaster,
    CacheInvalidator,
    InvalidationMessage,
    InvalidationType,
)
from fleetdesk.cache.keys import CacheKeys, entity_tag
from fleetdesk.cache.store import MemoryCache


@pytest.fixture
def invalidator(store: MemoryCache) -> CacheInvalidator:
    return CacheInvalidator(store)


def _fill(store: MemoryCache) -> None:
    store.set(CacheKeys.vehicles(), [])
    store.set(CacheKeys.vehicles({"status": "available"}), [])
    store.set(CacheKeys.vehicle("v1"), {}, tags=[entity_tag("vehicle", "v1")])
    store.set(CacheKeys.vehicle("v2"), {}, tags=[entity_tag("vehicle", "v2")])
    store.set(CacheKeys.vehicle_maintenance("v1"), [], tags=[entity_tag("vehicle", "v1")])
    store.set(CacheKeys.bookings({"status": "active"}), [])
    store.set(CacheKeys.booking("b1"), {}, tags=[entity_tag("booking", "b1")])
    store.set(CacheKeys.customer("c1"), {}, tags=[entity_tag("customer", "c1")])
    store.set(CacheKeys.dashboard_summary(), {})
    store.set(CacheKeys.dashboard_summary("u1"), {})
    store.set(CacheKeys.financial_summary(), {})
    store.set(CacheKeys.report("revenue"), {})
    store.set(CacheKeys.settings(), {})


class TestCacheInvalidator:
    """Test key families removed per write."""

    def test_vehicle_with_id(self, store: MemoryCache, invalidator: CacheInvalidator) -> None:
        """Vehicle writes drop listings and every entry tagged with the vehicle."""
        _fill(store)
        invalidator.invalidate_vehicle_cache("v1")

        assert CacheKeys.vehicles() not in store
        assert CacheKeys.vehicles({"status": "available"}) not in store
        assert CacheKeys.vehicle("v1") not in store
        assert CacheKeys.vehicle_maintenance("v1") not in store
        assert CacheKeys.vehicle("v2") in store
        assert CacheKeys.bookings({"status": "active"}) in store

    def test_vehicle_without_id(self, store: MemoryCache, invalidator: CacheInvalidator) -> None:
        """Without an id every vehicle entry goes."""
        _fill(store)
        invalidator.invalidate_vehicle_cache()

        assert CacheKeys.vehicle("v2") not in store
        assert CacheKeys.settings() in store

    def test_booking(self, store: MemoryCache, invalidator: CacheInvalidator) -> None:
        """Booking writes reach listings, the booking and dashboards."""
        _fill(store)
        invalidator.invalidate_booking_cache("b1", customer_id="c1", vehicle_id="v1")

        assert CacheKeys.bookings({"status": "active"}) not in store
        assert CacheKeys.booking("b1") not in store
        assert CacheKeys.dashboard_summary("u1") not in store
        assert CacheKeys.customer("c1") not in store
        assert CacheKeys.vehicle("v1") not in store
        assert CacheKeys.vehicle("v2") in store

    def test_customer(self, store: MemoryCache, invalidator: CacheInvalidator) -> None:
        _fill(store)
        invalidator.invalidate_customer_cache("c1")
        assert CacheKeys.customer("c1") not in store
        assert CacheKeys.booking("b1") in store

    def test_dashboard(self, store: MemoryCache, invalidator: CacheInvalidator) -> None:
        """Global and per-user dashboards alike."""
        _fill(store)
        invalidator.invalidate_dashboard_cache()
        assert CacheKeys.dashboard_summary() not in store
        assert CacheKeys.dashboard_summary("u1") not in store
        assert CacheKeys.financial_summary() in store

    def test_financial(self, store: MemoryCache, invalidator: CacheInvalidator) -> None:
        """Financial writes also clear dashboards."""
        _fill(store)
        store.set(CacheKeys.recurring_upcoming(7), [])
        invalidator.invalidate_financial_cache()

        assert CacheKeys.financial_summary() not in store
        assert CacheKeys.report("revenue") not in store
        assert CacheKeys.recurring_upcoming(7) not in store
        assert CacheKeys.dashboard_summary() not in store
        assert CacheKeys.vehicle("v1") in store

    def test_user(self, store: MemoryCache, invalidator: CacheInvalidator) -> None:
        store.set(CacheKeys.user("u1"), {})
        store.set(CacheKeys.user_sessions("u1"), [])
        store.set(CacheKeys.user("u2"), {})
        invalidator.invalidate_user_cache("u1")
        assert len(store) == 1

    def test_maintenance(self, store: MemoryCache, invalidator: CacheInvalidator) -> None:
        store.set(CacheKeys.maintenance_urgent(), [])
        store.set(CacheKeys.vehicle_maintenance("v1"), [])
        store.set(CacheKeys.vehicle("v1"), {})
        invalidator.invalidate_maintenance_cache("v1")
        assert CacheKeys.maintenance_urgent() not in store
        assert CacheKeys.vehicle_maintenance("v1") not in store
        assert CacheKeys.vehicle("v1") in store

    def test_investor(self, store: MemoryCache, invalidator: CacheInvalidator) -> None:
        store.set(CacheKeys.investor("i1"), {})
        store.set(CacheKeys.investors(), [])
        assert invalidator.invalidate_investor_cache("i1") == 2

    def test_all(self, store: MemoryCache, invalidator: CacheInvalidator) -> None:
        _fill(store)
        count = len(store)
        assert invalidator.invalidate_all_cache() == count
        assert len(store) == 0

    def test_returns_removed_count(
        self, store: MemoryCache, invalidator: CacheInvalidator
    ) -> None:
        """Nothing cached means nothing removed."""
        assert invalidator.invalidate_vehicle_cache("v9") == 0


class TestInvalidationMessage:
    """Test the wire form."""

    def test_bytes_round_trip(self) -> None:
        message = InvalidationMessage(
            type=InvalidationType.BOOKING, ids={"booking_id": "b1"}, origin="node-a"
        )
        assert InvalidationMessage.from_bytes(message.to_bytes()) == message

    def test_apply_matches_method(self, store: MemoryCache, invalidator: CacheInvalidator) -> None:
        """Applying a message has the same effect as the named method."""
        _fill(store)
        invalidator.apply(
            InvalidationMessage(type=InvalidationType.VEHICLE, ids={"vehicle_id": "v1"})
        )
        assert CacheKeys.vehicle("v1") not in store
        assert CacheKeys.vehicle("v2") in store


class TestBroadcaster:
    """Test message handling without a Redis server."""

    @pytest.fixture
    def broadcaster(self, invalidator: CacheInvalidator) -> CacheInvalidationBroadcaster:
        broadcaster = CacheInvalidationBroadcaster("redis://localhost:6379/0", instance_id="node-a")
        broadcaster.attach(invalidator)
        return broadcaster

    def test_attach_links_both_ways(
        self, broadcaster: CacheInvalidationBroadcaster, invalidator: CacheInvalidator
    ) -> None:
        assert broadcaster.invalidator is invalidator
        assert invalidator.broadcaster is broadcaster

    def test_remote_message_applied(
        self, store: MemoryCache, broadcaster: CacheInvalidationBroadcaster
    ) -> None:
        """Peers' invalidations reach the local store."""
        store.set(CacheKeys.vehicle("v1"), {}, tags=[entity_tag("vehicle", "v1")])
        message = InvalidationMessage(
            type=InvalidationType.VEHICLE, ids={"vehicle_id": "v1"}, origin="node-b"
        )
        broadcaster.handle_message(message.to_bytes())
        assert CacheKeys.vehicle("v1") not in store

    def test_own_message_ignored(
        self, store: MemoryCache, broadcaster: CacheInvalidationBroadcaster
    ) -> None:
        """Echoes of our own publishes are skipped."""
        store.set(CacheKeys.vehicle("v1"), {})
        message = InvalidationMessage(type=InvalidationType.ALL, origin="node-a")
        broadcaster.handle_message(message.to_bytes())
        assert CacheKeys.vehicle("v1") in store

    def test_garbage_message_ignored(
        self, store: MemoryCache, broadcaster: CacheInvalidationBroadcaster
    ) -> None:
        store.set(CacheKeys.vehicle("v1"), {})
        broadcaster.handle_message(b"not json")
        broadcaster.handle_message(b'{"type": "spaceship"}')
        assert CacheKeys.vehicle("v1") in store

    def test_publish_without_loop_is_skipped(
        self, store: MemoryCache, invalidator: CacheInvalidator, broadcaster: CacheInvalidationBroadcaster
    ) -> None:
        """Local invalidation works outside an event loop."""
        store.set(CacheKeys.vehicle("v1"), {})
        assert invalidator.invalidate_vehicle_cache("v1") == 1
