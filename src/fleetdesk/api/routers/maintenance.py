"""Vehicle maintenance schedule endpoints."""

from __future__ import annotations

import logging
from datetime import UTC, date, datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from fleetdesk.api.deps import (
    get_cache_aside,
    get_invalidator,
    get_maintenance_repository,
    get_vehicle_repository,
)
from fleetdesk.api.errors import BadRequestError, NotFoundError
from fleetdesk.api.repositories import MaintenanceScheduleRepository, VehicleRepository, VehicleUpdate
from fleetdesk.cache.invalidation import CacheInvalidator
from fleetdesk.cache.keys import CacheKeys, build_key, entity_tag
from fleetdesk.cache.query import CacheAside
from fleetdesk.scheduling.maintenance import (
    MaintenanceSchedule,
    MaintenanceStatus,
    ScheduleType,
    check_all,
    check_due,
    complete_service,
)
from fleetdesk.scheduling.recurrence import IntervalKind
from fleetdesk.security.deps import require_permission
from fleetdesk.security.rbac import Permission
from fleetdesk.security.tokens import User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/maintenance", tags=["maintenance"])

CHECK_TTL = 120

Reader = Annotated[User, Depends(require_permission(Permission.READ_MAINTENANCE))]
Writer = Annotated[User, Depends(require_permission(Permission.WRITE_VEHICLES))]
Schedules = Annotated[MaintenanceScheduleRepository, Depends(get_maintenance_repository)]
Vehicles = Annotated[VehicleRepository, Depends(get_vehicle_repository)]
Cache = Annotated[CacheAside, Depends(get_cache_aside)]
Invalidator = Annotated[CacheInvalidator, Depends(get_invalidator)]


class ScheduleCreate(BaseModel):
    vehicle_id: str
    service_type: str = Field(min_length=1)
    schedule_type: ScheduleType
    mileage_interval: int | None = Field(default=None, ge=0)
    time_interval: IntervalKind | None = None
    time_interval_days: int | None = Field(default=None, ge=1)
    last_service_mileage: int | None = Field(default=None, ge=0)
    last_service_date: date | None = None
    reminder_days_before: int = Field(default=7, ge=0)
    reminder_mileage_before: int = Field(default=500, ge=0)


class ScheduleOut(BaseModel):
    id: str
    vehicle_id: str
    service_type: str
    schedule_type: ScheduleType
    mileage_interval: int | None
    time_interval: IntervalKind | None
    time_interval_days: int | None
    last_service_mileage: int
    last_service_date: date | None
    next_service_mileage: int | None
    next_service_date: date | None
    reminder_days_before: int
    reminder_mileage_before: int
    is_active: bool

    @classmethod
    def from_domain(cls, schedule: MaintenanceSchedule) -> "ScheduleOut":
        return cls(
            id=schedule.id,
            vehicle_id=schedule.vehicle_id,
            service_type=schedule.service_type,
            schedule_type=schedule.schedule_type,
            mileage_interval=schedule.mileage_interval,
            time_interval=schedule.time_interval,
            time_interval_days=schedule.time_interval_days,
            last_service_mileage=schedule.last_service_mileage,
            last_service_date=schedule.last_service_date,
            next_service_mileage=schedule.next_service_mileage,
            next_service_date=schedule.next_service_date,
            reminder_days_before=schedule.reminder_days_before,
            reminder_mileage_before=schedule.reminder_mileage_before,
            is_active=schedule.is_active,
        )


class StatusOut(BaseModel):
    schedule_id: str
    vehicle_id: str
    service_type: str
    due_by_mileage: bool
    due_by_time: bool
    reminder_reasons: list[str]
    remaining_km: int | None
    days_until: int | None

    @classmethod
    def from_domain(cls, s: MaintenanceStatus) -> "StatusOut":
        return cls(
            schedule_id=s.schedule_id,
            vehicle_id=s.vehicle_id,
            service_type=s.service_type,
            due_by_mileage=s.due_by_mileage,
            due_by_time=s.due_by_time,
            reminder_reasons=s.reminder_reasons,
            remaining_km=s.remaining_km,
            days_until=s.days_until,
        )


class CheckReport(BaseModel):
    checked_on: date
    due_by_mileage: list[StatusOut]
    due_by_time: list[StatusOut]
    upcoming_reminders: list[StatusOut]


class ServiceCompleted(BaseModel):
    mileage: int = Field(ge=0)
    service_date: date | None = None


@router.post("/schedules", response_model=ScheduleOut, status_code=status.HTTP_201_CREATED)
async def create_schedule(
    data: ScheduleCreate,
    user: Writer,
    schedules: Schedules,
    vehicles: Vehicles,
    invalidator: Invalidator,
) -> ScheduleOut:
    vehicle = await vehicles.get_model(data.vehicle_id)
    if vehicle is None:
        raise NotFoundError("Vehicle", data.vehicle_id)
    if data.schedule_type is not ScheduleType.MILEAGE and (
        data.time_interval is None and data.time_interval_days is None
    ):
        raise BadRequestError("Time based schedules need time_interval or time_interval_days")

    try:
        schedule = MaintenanceSchedule(
            vehicle_id=data.vehicle_id,
            service_type=data.service_type,
            schedule_type=data.schedule_type,
            mileage_interval=data.mileage_interval,
            time_interval=data.time_interval,
            time_interval_days=data.time_interval_days,
            last_service_mileage=(
                data.last_service_mileage
                if data.last_service_mileage is not None
                else vehicle.mileage
            ),
            last_service_date=data.last_service_date or datetime.now(UTC).date(),
            reminder_days_before=data.reminder_days_before,
            reminder_mileage_before=data.reminder_mileage_before,
        )
    except ValueError as e:
        raise BadRequestError(str(e)) from e

    await schedules.save(schedule)
    invalidator.invalidate_maintenance_cache(schedule.vehicle_id)
    return ScheduleOut.from_domain(schedule)


@router.get("/schedules", response_model=list[ScheduleOut])
async def list_schedules(
    user: Reader,
    schedules: Schedules,
    vehicle_id: str | None = None,
) -> list[ScheduleOut]:
    return [ScheduleOut.from_domain(s) for s in await schedules.list_schedules(vehicle_id)]


@router.post("/schedules/{schedule_id}/complete", response_model=ScheduleOut)
async def complete_schedule(
    schedule_id: str,
    data: ServiceCompleted,
    user: Writer,
    schedules: Schedules,
    vehicles: Vehicles,
    invalidator: Invalidator,
) -> ScheduleOut:
    """Record a completed service and roll the schedule forward."""
    schedule = await schedules.get(schedule_id)
    if schedule is None:
        raise NotFoundError("Maintenance schedule", schedule_id)

    updated = complete_service(
        schedule, data.mileage, data.service_date or datetime.now(UTC).date()
    )
    await schedules.save(updated)

    vehicle = await vehicles.get_model(schedule.vehicle_id)
    if vehicle is not None and data.mileage > vehicle.mileage:
        await vehicles.update(vehicle.id, VehicleUpdate(mileage=data.mileage))
        invalidator.invalidate_vehicle_cache(vehicle.id)
    invalidator.invalidate_maintenance_cache(schedule.vehicle_id)
    return ScheduleOut.from_domain(updated)


@router.get("/check", response_model=CheckReport)
async def check_maintenance(
    user: Reader,
    schedules: Schedules,
    vehicles: Vehicles,
    cache: Cache,
    on: date | None = Query(default=None, description="Check date, defaults to today (UTC)"),
) -> CheckReport:
    """Sort active schedules into due-by-mileage, due-by-time and reminders.

    Cached per day; tagged with the vehicles namespace so odometer updates
    drop it.
    """
    today = on or datetime.now(UTC).date()

    async def load() -> CheckReport:
        report = check_all(
            await schedules.list_schedules(), await vehicles.mileages(), today
        )
        return CheckReport(
            checked_on=today,
            due_by_mileage=[StatusOut.from_domain(s) for s in report.due_by_mileage],
            due_by_time=[StatusOut.from_domain(s) for s in report.due_by_time],
            upcoming_reminders=[StatusOut.from_domain(s) for s in report.upcoming_reminders],
        )

    return await cache.get_or_set(
        build_key("maintenance", {"check": today.isoformat()}),
        load,
        ttl=CHECK_TTL,
        tags=("vehicles",),
    )


@router.get("/vehicles/{vehicle_id}", response_model=list[StatusOut])
async def vehicle_maintenance(
    vehicle_id: str,
    user: Reader,
    schedules: Schedules,
    vehicles: Vehicles,
    cache: Cache,
) -> list[StatusOut]:
    """Due state of every schedule for one vehicle, as of today."""
    today = datetime.now(UTC).date()

    async def load() -> list[StatusOut]:
        vehicle = await vehicles.get_model(vehicle_id)
        if vehicle is None:
            raise NotFoundError("Vehicle", vehicle_id)
        return [
            StatusOut.from_domain(check_due(s, vehicle.mileage, today))
            for s in await schedules.list_schedules(vehicle_id)
            if s.is_active
        ]

    return await cache.get_or_set(
        CacheKeys.vehicle_maintenance(vehicle_id),
        load,
        ttl=CHECK_TTL,
        tags=(entity_tag("vehicle", vehicle_id),),
    )
