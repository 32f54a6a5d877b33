"""Vehicle endpoints.

Reads go through the cache-aside wrapper; every write invalidates the
vehicle caches before the response is sent. Read responses carry
``X-Cache: HIT`` or ``X-Cache: MISS``.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Annotated, Any, TypeVar

from fastapi import APIRouter, Depends, Query, Response, status

from fleetdesk.api.deps import get_cache_aside, get_invalidator, get_vehicle_repository
from fleetdesk.api.errors import ConflictError, NotFoundError
from fleetdesk.api.repositories import (
    Vehicle,
    VehicleCreate,
    VehicleRepository,
    VehicleStatus,
    VehicleUpdate,
)
from fleetdesk.cache.invalidation import CacheInvalidator
from fleetdesk.cache.keys import CacheKeys, entity_tag
from fleetdesk.cache.query import CacheAside
from fleetdesk.security.deps import require_permission
from fleetdesk.security.rbac import Permission
from fleetdesk.security.tokens import User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/vehicles", tags=["vehicles"])

T = TypeVar("T")

LIST_TTL = 60
DETAIL_TTL = 300

Reader = Annotated[User, Depends(require_permission(Permission.READ_VEHICLES))]
Writer = Annotated[User, Depends(require_permission(Permission.WRITE_VEHICLES))]
Repository = Annotated[VehicleRepository, Depends(get_vehicle_repository)]
Cache = Annotated[CacheAside, Depends(get_cache_aside)]
Invalidator = Annotated[CacheInvalidator, Depends(get_invalidator)]


async def _read_through(
    cache: CacheAside,
    response: Response,
    key: str,
    fetcher: Callable[[], Awaitable[T]],
    ttl: int,
    tags: tuple[str, ...] = (),
) -> T:
    fetched = False

    async def fetch() -> T:
        nonlocal fetched
        fetched = True
        return await fetcher()

    value = await cache.get_or_set(key, fetch, ttl=ttl, tags=tags)
    response.headers["X-Cache"] = "MISS" if fetched else "HIT"
    return value


@router.get("", response_model=list[Vehicle])
async def list_vehicles(
    user: Reader,
    response: Response,
    repository: Repository,
    cache: Cache,
    status_filter: VehicleStatus | None = Query(default=None, alias="status"),
    brand: str | None = None,
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=500),
) -> list[dict[str, Any]]:
    """List vehicles, cached per filter combination."""
    filters = {
        "status": status_filter.value if status_filter else None,
        "brand": brand.lower() if brand else None,
        "offset": offset or None,
        "limit": limit if limit != 100 else None,
    }
    return await _read_through(
        cache,
        response,
        CacheKeys.vehicles(filters),
        lambda: repository.list_vehicles(status_filter, brand, offset, limit),
        ttl=LIST_TTL,
    )


@router.get("/{vehicle_id}", response_model=Vehicle)
async def get_vehicle(
    vehicle_id: str,
    user: Reader,
    response: Response,
    repository: Repository,
    cache: Cache,
) -> dict[str, Any]:
    async def load() -> dict[str, Any]:
        vehicle = await repository.get(vehicle_id)
        if vehicle is None:
            # Raising keeps the miss out of the cache
            raise NotFoundError("Vehicle", vehicle_id)
        return vehicle

    return await _read_through(
        cache,
        response,
        CacheKeys.vehicle(vehicle_id),
        load,
        ttl=DETAIL_TTL,
        tags=(entity_tag("vehicle", vehicle_id),),
    )


@router.post("", response_model=Vehicle, status_code=status.HTTP_201_CREATED)
async def create_vehicle(
    data: VehicleCreate,
    user: Writer,
    repository: Repository,
    invalidator: Invalidator,
) -> Vehicle:
    if await repository.plate_taken(data.plate_number):
        raise ConflictError("Vehicle", data.plate_number)

    vehicle = await repository.create(data)
    invalidator.invalidate_vehicle_cache(vehicle.id)
    logger.info(f"Vehicle {vehicle.id} created by {user.sub}")
    return vehicle


@router.patch("/{vehicle_id}", response_model=Vehicle)
async def update_vehicle(
    vehicle_id: str,
    changes: VehicleUpdate,
    user: Writer,
    repository: Repository,
    invalidator: Invalidator,
) -> Vehicle:
    if changes.plate_number is not None and await repository.plate_taken(
        changes.plate_number, exclude_id=vehicle_id
    ):
        raise ConflictError("Vehicle", changes.plate_number)

    vehicle = await repository.update(vehicle_id, changes)
    if vehicle is None:
        raise NotFoundError("Vehicle", vehicle_id)

    invalidator.invalidate_vehicle_cache(vehicle_id)
    if changes.mileage is not None:
        invalidator.invalidate_maintenance_cache(vehicle_id)
    return vehicle


@router.delete("/{vehicle_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_vehicle(
    vehicle_id: str,
    user: Writer,
    repository: Repository,
    invalidator: Invalidator,
) -> Response:
    if not await repository.delete(vehicle_id):
        raise NotFoundError("Vehicle", vehicle_id)

    invalidator.invalidate_vehicle_cache(vehicle_id)
    invalidator.invalidate_maintenance_cache(vehicle_id)
    logger.info(f"Vehicle {vehicle_id} deleted by {user.sub}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
