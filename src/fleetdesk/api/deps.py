"""FastAPI dependencies resolving per-application services from ``app.state``."""

from __future__ import annotations

from fastapi import Request

from fleetdesk.api.repositories import MaintenanceScheduleRepository, VehicleRepository
from fleetdesk.cache.invalidation import CacheInvalidator
from fleetdesk.cache.query import CacheAside
from fleetdesk.cache.store import MemoryCache
from fleetdesk.config import Settings
from fleetdesk.scheduling.processor import (
    InMemoryRecurringExpenseRepository,
    RecurringExpenseProcessor,
)


def get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def get_store(request: Request) -> MemoryCache:
    store: MemoryCache = request.app.state.cache
    return store


def get_cache_aside(request: Request) -> CacheAside:
    cache: CacheAside = request.app.state.cache_aside
    return cache


def get_invalidator(request: Request) -> CacheInvalidator:
    invalidator: CacheInvalidator = request.app.state.invalidator
    return invalidator


def get_vehicle_repository(request: Request) -> VehicleRepository:
    repository: VehicleRepository = request.app.state.vehicles
    return repository


def get_maintenance_repository(request: Request) -> MaintenanceScheduleRepository:
    repository: MaintenanceScheduleRepository = request.app.state.maintenance_schedules
    return repository


def get_recurring_repository(request: Request) -> InMemoryRecurringExpenseRepository:
    repository: InMemoryRecurringExpenseRepository = request.app.state.recurring_expenses
    return repository


def get_recurring_processor(request: Request) -> RecurringExpenseProcessor:
    processor: RecurringExpenseProcessor = request.app.state.recurring_processor
    return processor
