"""In-memory document stores backing the API.

They stand in for the primary database. Reads return copies so cached
values never alias live records.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field

from fleetdesk.scheduling.maintenance import MaintenanceSchedule


class VehicleStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    RENTED = "RENTED"
    MAINTENANCE = "MAINTENANCE"
    OUT_OF_SERVICE = "OUT_OF_SERVICE"


class VehicleBase(BaseModel):
    plate_number: str = Field(min_length=1, max_length=20)
    brand: str = Field(min_length=1)
    model: str = Field(min_length=1)
    year: int = Field(ge=1950, le=2100)
    status: VehicleStatus = VehicleStatus.AVAILABLE
    mileage: int = Field(default=0, ge=0)
    daily_rate: Decimal = Field(default=Decimal("0"), ge=0)


class VehicleCreate(VehicleBase):
    pass


class VehicleUpdate(BaseModel):
    plate_number: str | None = Field(default=None, min_length=1, max_length=20)
    brand: str | None = None
    model: str | None = None
    year: int | None = Field(default=None, ge=1950, le=2100)
    status: VehicleStatus | None = None
    mileage: int | None = Field(default=None, ge=0)
    daily_rate: Decimal | None = Field(default=None, ge=0)


class Vehicle(VehicleBase):
    id: str
    updated_at: datetime


class VehicleRepository:
    """Vehicles keyed by id, with a unique plate number."""

    def __init__(self) -> None:
        self._vehicles: dict[str, Vehicle] = {}
        self._lock = asyncio.Lock()
        self.reads = 0

    async def list_vehicles(
        self,
        status: VehicleStatus | None = None,
        brand: str | None = None,
        offset: int = 0,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        async with self._lock:
            self.reads += 1
            rows = [
                v
                for v in self._vehicles.values()
                if (status is None or v.status == status)
                and (brand is None or v.brand.lower() == brand.lower())
            ]
        rows.sort(key=lambda v: v.plate_number)
        return [v.model_dump(mode="json") for v in rows[offset : offset + limit]]

    async def get(self, vehicle_id: str) -> dict[str, Any] | None:
        async with self._lock:
            self.reads += 1
            vehicle = self._vehicles.get(vehicle_id)
        return vehicle.model_dump(mode="json") if vehicle else None

    async def get_model(self, vehicle_id: str) -> Vehicle | None:
        async with self._lock:
            return self._vehicles.get(vehicle_id)

    async def plate_taken(self, plate_number: str, exclude_id: str | None = None) -> bool:
        async with self._lock:
            return any(
                v.plate_number.upper() == plate_number.upper() and v.id != exclude_id
                for v in self._vehicles.values()
            )

    async def create(self, data: VehicleCreate) -> Vehicle:
        vehicle = Vehicle(id=uuid4().hex, updated_at=datetime.now(UTC), **data.model_dump())
        async with self._lock:
            self._vehicles[vehicle.id] = vehicle
        return vehicle

    async def update(self, vehicle_id: str, changes: VehicleUpdate) -> Vehicle | None:
        async with self._lock:
            current = self._vehicles.get(vehicle_id)
            if current is None:
                return None
            updated = current.model_copy(
                update={**changes.model_dump(exclude_unset=True, exclude_none=True), "updated_at": datetime.now(UTC)}
            )
            self._vehicles[vehicle_id] = updated
            return updated

    async def delete(self, vehicle_id: str) -> bool:
        async with self._lock:
            return self._vehicles.pop(vehicle_id, None) is not None

    async def mileages(self) -> dict[str, int]:
        async with self._lock:
            return {v.id: v.mileage for v in self._vehicles.values()}


class MaintenanceScheduleRepository:
    def __init__(self) -> None:
        self._schedules: dict[str, MaintenanceSchedule] = {}
        self._lock = asyncio.Lock()

    async def list_schedules(self, vehicle_id: str | None = None) -> list[MaintenanceSchedule]:
        async with self._lock:
            return [
                s
                for s in self._schedules.values()
                if vehicle_id is None or s.vehicle_id == vehicle_id
            ]

    async def get(self, schedule_id: str) -> MaintenanceSchedule | None:
        async with self._lock:
            return self._schedules.get(schedule_id)

    async def save(self, schedule: MaintenanceSchedule) -> None:
        async with self._lock:
            self._schedules[schedule.id] = schedule
