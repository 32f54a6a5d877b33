"""Cache invalidation after writes.

Every mutating handler calls the matching ``invalidate_*_cache`` method
right after the write commits and before it responds. Removal is
synchronous; nothing is deferred.

Invalidation is tag based. Every entry is tagged with its key namespace
("vehicles", "booking", ...) and, where the caller supplied them, with
entity tags ("vehicle:v1"). The invalidator removes exact keys and whole
tags; it never pattern-matches keys. It errs wide: deleting too much costs
a cache miss, deleting too little serves stale data.

With more than one worker process each process holds its own store. When
a broadcaster is attached, each local invalidation is also published on a
Redis Pub/Sub channel and every peer applies it to its own store.

Example:
    invalidator = CacheInvalidator(store)
    await repository.update_vehicle(vehicle_id, changes)
    invalidator.invalidate_vehicle_cache(vehicle_id)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, cast

import orjson
import redis.asyncio as redis

from fleetdesk.cache.keys import CacheKeys, entity_tag
from fleetdesk.observability.metrics import get_metrics

if TYPE_CHECKING:
    from redis.asyncio import Redis
    from redis.asyncio.client import PubSub

    from fleetdesk.cache.store import MemoryCache

logger = logging.getLogger(__name__)

INVALIDATION_CHANNEL = "fleetdesk:cache:invalidation"

# Namespaces holding aggregates over bookings, invoices and payments
_DASHBOARD_TAGS = ("dashboard",)
_FINANCIAL_TAGS = ("financial", "invoices", "invoice", "payments", "report", "recurring")


class InvalidationType(str, Enum):
    """Entity family an invalidation applies to."""

    BOOKING = "booking"
    CUSTOMER = "customer"
    VEHICLE = "vehicle"
    DASHBOARD = "dashboard"
    FINANCIAL = "financial"
    USER = "user"
    MAINTENANCE = "maintenance"
    INVESTOR = "investor"
    ALL = "all"


@dataclass
class InvalidationMessage:
    """A single invalidation, as applied locally and broadcast to peers."""

    type: InvalidationType
    ids: dict[str, str] = field(default_factory=dict)
    origin: str | None = None

    def to_bytes(self) -> bytes:
        return orjson.dumps({"type": self.type.value, "ids": self.ids, "origin": self.origin})

    @classmethod
    def from_bytes(cls, data: bytes) -> "InvalidationMessage":
        parsed = orjson.loads(data)
        return cls(
            type=InvalidationType(parsed["type"]),
            ids={str(k): str(v) for k, v in (parsed.get("ids") or {}).items()},
            origin=parsed.get("origin"),
        )


@dataclass
class _Plan:
    keys: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    clear_all: bool = False


def _plan(message: InvalidationMessage) -> _Plan:
    """Translate a message into the keys and tags to remove."""
    ids = message.ids
    plan = _Plan()

    if message.type == InvalidationType.ALL:
        plan.clear_all = True

    elif message.type == InvalidationType.BOOKING:
        plan.tags.extend(["bookings", *_DASHBOARD_TAGS])
        if booking_id := ids.get("booking_id"):
            plan.keys.append(CacheKeys.booking(booking_id))
            plan.tags.append(entity_tag("booking", booking_id))
        else:
            plan.tags.append("booking")
        if customer_id := ids.get("customer_id"):
            plan.keys.append(CacheKeys.customer_stats(customer_id))
            plan.tags.append(entity_tag("customer", customer_id))
        if vehicle_id := ids.get("vehicle_id"):
            plan.keys.append(CacheKeys.vehicles_available())
            plan.tags.append(entity_tag("vehicle", vehicle_id))

    elif message.type == InvalidationType.CUSTOMER:
        plan.tags.append("customers")
        if customer_id := ids.get("customer_id"):
            plan.keys.extend(
                [CacheKeys.customer(customer_id), CacheKeys.customer_stats(customer_id)]
            )
            plan.tags.append(entity_tag("customer", customer_id))
        else:
            plan.tags.append("customer")

    elif message.type == InvalidationType.VEHICLE:
        plan.tags.append("vehicles")
        if vehicle_id := ids.get("vehicle_id"):
            plan.keys.extend(
                [CacheKeys.vehicle(vehicle_id), CacheKeys.vehicle_maintenance(vehicle_id)]
            )
            plan.tags.append(entity_tag("vehicle", vehicle_id))
        else:
            plan.tags.append("vehicle")

    elif message.type == InvalidationType.DASHBOARD:
        # Per-user and global aggregates alike
        plan.tags.extend(_DASHBOARD_TAGS)

    elif message.type == InvalidationType.FINANCIAL:
        plan.tags.extend([*_FINANCIAL_TAGS, *_DASHBOARD_TAGS])

    elif message.type == InvalidationType.USER:
        if user_id := ids.get("user_id"):
            plan.keys.extend([CacheKeys.user(user_id), CacheKeys.user_sessions(user_id)])
            plan.tags.append(entity_tag("user", user_id))
        else:
            plan.tags.append("user")

    elif message.type == InvalidationType.MAINTENANCE:
        plan.tags.append("maintenance")
        if vehicle_id := ids.get("vehicle_id"):
            plan.keys.append(CacheKeys.vehicle_maintenance(vehicle_id))

    elif message.type == InvalidationType.INVESTOR:
        plan.tags.append("investors")
        if investor_id := ids.get("investor_id"):
            plan.keys.append(CacheKeys.investor(investor_id))
            plan.tags.append(entity_tag("investor", investor_id))
        else:
            plan.tags.append("investor")

    return plan


class CacheInvalidator:
    """Removes cache entries affected by a write.

    Each ``invalidate_*`` method returns the number of entries removed from
    the local store.
    """

    def __init__(
        self,
        store: MemoryCache,
        broadcaster: CacheInvalidationBroadcaster | None = None,
    ) -> None:
        self.store = store
        self.broadcaster = broadcaster

    def invalidate_booking_cache(
        self,
        booking_id: str | None = None,
        customer_id: str | None = None,
        vehicle_id: str | None = None,
    ) -> int:
        return self._invalidate(
            InvalidationType.BOOKING,
            booking_id=booking_id,
            customer_id=customer_id,
            vehicle_id=vehicle_id,
        )

    def invalidate_customer_cache(self, customer_id: str | None = None) -> int:
        return self._invalidate(InvalidationType.CUSTOMER, customer_id=customer_id)

    def invalidate_vehicle_cache(self, vehicle_id: str | None = None) -> int:
        return self._invalidate(InvalidationType.VEHICLE, vehicle_id=vehicle_id)

    def invalidate_dashboard_cache(self, user_id: str | None = None) -> int:
        return self._invalidate(InvalidationType.DASHBOARD, user_id=user_id)

    def invalidate_financial_cache(self) -> int:
        return self._invalidate(InvalidationType.FINANCIAL)

    def invalidate_user_cache(self, user_id: str) -> int:
        return self._invalidate(InvalidationType.USER, user_id=user_id)

    def invalidate_maintenance_cache(self, vehicle_id: str | None = None) -> int:
        return self._invalidate(InvalidationType.MAINTENANCE, vehicle_id=vehicle_id)

    def invalidate_investor_cache(self, investor_id: str | None = None) -> int:
        return self._invalidate(InvalidationType.INVESTOR, investor_id=investor_id)

    def invalidate_all_cache(self) -> int:
        return self._invalidate(InvalidationType.ALL)

    def apply(self, message: InvalidationMessage) -> int:
        """Apply a message to the local store only."""
        plan = _plan(message)

        if plan.clear_all:
            removed = len(self.store)
            self.store.clear()
        else:
            removed = self.store.delete_many(plan.keys) + self.store.delete_by_tag(*plan.tags)

        get_metrics().cache_invalidations_total.labels(family=message.type.value).inc()
        logger.debug(
            f"Invalidated {message.type.value} cache ({removed} entries)",
            extra={"ids": message.ids},
        )
        return removed

    def _invalidate(self, type_: InvalidationType, **ids: str | None) -> int:
        message = InvalidationMessage(
            type=type_,
            ids={name: value for name, value in ids.items() if value},
        )
        removed = self.apply(message)
        if self.broadcaster is not None:
            self.broadcaster.publish_nowait(message)
        return removed


class CacheInvalidationBroadcaster:
    """Fans invalidations out to peer processes via Redis Pub/Sub.

    Local invalidation never waits on Redis: ``publish_nowait`` schedules
    the publish on the running loop and failures are only logged. Messages
    carrying our own instance id are ignored on receipt.

    The broadcaster should be started during application startup and
    stopped during shutdown.
    """

    def __init__(
        self,
        redis_url: str,
        instance_id: str,
        channel: str = INVALIDATION_CHANNEL,
    ) -> None:
        self.redis_url = redis_url
        self.instance_id = instance_id
        self.channel = channel
        self.invalidator: CacheInvalidator | None = None
        self._running = False
        self._task: asyncio.Task[None] | None = None
        self._pending: set[asyncio.Task[int]] = set()
        self._pubsub: PubSub | None = None
        self._redis: Redis | None = None

    def _get_redis(self) -> Redis:
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url)  # type: ignore[no-untyped-call]
        return self._redis

    def attach(self, invalidator: CacheInvalidator) -> None:
        """Apply received messages to ``invalidator`` and publish its own."""
        self.invalidator = invalidator
        invalidator.broadcaster = self

    async def start(self) -> None:
        """Start listening for invalidation messages."""
        if self._running:
            return

        self._pubsub = self._get_redis().pubsub()
        await self._pubsub.subscribe(self.channel)

        self._running = True
        self._task = asyncio.create_task(self._listen_loop())
        logger.info(f"Started cache invalidation broadcaster on channel {self.channel}")

    async def stop(self) -> None:
        """Stop listening and close the connection."""
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

        if self._pubsub:
            await self._pubsub.unsubscribe(self.channel)
            await self._pubsub.aclose()
            self._pubsub = None

        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

        logger.info("Stopped cache invalidation broadcaster")

    async def _listen_loop(self) -> None:
        while self._running and self._pubsub:
            try:
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=1.0,
                )
                if message is not None and message["type"] == "message":
                    self.handle_message(message["data"])

            except asyncio.CancelledError:
                break
            except redis.RedisError as e:
                logger.error(f"Error in invalidation listener: {e}")
                await asyncio.sleep(1)

    def handle_message(self, data: bytes) -> None:
        """Apply a message received from a peer."""
        try:
            message = InvalidationMessage.from_bytes(data)
        except (orjson.JSONDecodeError, KeyError, ValueError) as e:
            logger.error(f"Failed to parse invalidation message: {e}")
            return

        if message.origin == self.instance_id or self.invalidator is None:
            return

        removed = self.invalidator.apply(message)
        logger.debug(
            f"Applied remote invalidation {message.type.value} from {message.origin} "
            f"({removed} entries)"
        )

    async def publish(self, message: InvalidationMessage) -> int:
        """Publish to all instances. Returns the number of subscribers reached."""
        message.origin = self.instance_id
        try:
            return cast(int, await self._get_redis().publish(self.channel, message.to_bytes()))
        except redis.RedisError as e:
            logger.warning(f"Failed to broadcast {message.type.value} invalidation: {e}")
            return 0

    def publish_nowait(self, message: InvalidationMessage) -> None:
        """Schedule ``publish`` without blocking the caller."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop, invalidation not broadcast")
            return
        task = loop.create_task(self.publish(message))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
