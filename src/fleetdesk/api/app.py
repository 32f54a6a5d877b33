"""FastAPI application factory for fleetdesk.

Creates the application with:
- Vehicle, maintenance and recurring expense routers
- Administrative cache endpoints
- Health probes and Prometheus metrics
- One in-process cache per application, with a periodic sweeper
- Optional Redis Pub/Sub fan-out of invalidations between workers
- Result-envelope error handling
- ORJSON for fast JSON serialization
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, cast

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import ExceptionHandler

from fleetdesk.api.errors import (
    ApiError,
    api_exception_handler,
    generic_exception_handler,
    http_exception_handler,
    invalid_pattern_handler,
    validation_exception_handler,
)
from fleetdesk.api.middleware import CorrelationMiddleware
from fleetdesk.api.repositories import MaintenanceScheduleRepository, VehicleRepository
from fleetdesk.api.routers import admin_cache, health, maintenance, recurring, vehicles
from fleetdesk.api.routers import metrics as metrics_router
from fleetdesk.cache.errors import InvalidKeyPatternError
from fleetdesk.cache.invalidation import CacheInvalidationBroadcaster, CacheInvalidator
from fleetdesk.cache.query import CacheAside
from fleetdesk.cache.store import MemoryCache
from fleetdesk.cache.sweeper import CacheSweeper
from fleetdesk.config import Settings
from fleetdesk.config import settings as default_settings
from fleetdesk.observability import configure_logging
from fleetdesk.observability.metrics import get_metrics
from fleetdesk.scheduling.processor import (
    InMemoryRecurringExpenseRepository,
    RecurringExpenseProcessor,
)
from fleetdesk.security.tokens import TokenValidator

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle.

    On startup:
    - Configure structured logging
    - Register the cache with Prometheus
    - Start the expiry sweeper
    - Start the invalidation broadcaster (if Redis is configured)

    On shutdown:
    - Stop the broadcaster and the sweeper
    - Clear the cache
    """
    settings: Settings = app.state.settings
    state = app.state

    configure_logging(
        json_format=settings.env != "dev",
        level=settings.log_level,
    )

    logger.info(f"Starting fleetdesk ({settings.env}, instance {settings.instance_id})")
    collector = get_metrics().register_store(state.cache)

    state.sweeper.start()
    if state.broadcaster is not None:
        await state.broadcaster.start()

    state.started = True
    logger.info("fleetdesk startup complete")

    yield

    logger.info("Shutting down fleetdesk")
    state.started = False
    if state.broadcaster is not None:
        await state.broadcaster.stop()
    await state.sweeper.stop()
    get_metrics().unregister(collector)
    state.cache.clear()
    logger.info("fleetdesk shutdown complete")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Each application owns its cache, repositories and processor; they live
    on ``app.state`` and are resolved by the dependencies in
    ``fleetdesk.api.deps``.
    """
    settings = settings or default_settings

    app = FastAPI(
        title="fleetdesk",
        description="Rental fleet back office",
        version="0.1.0",
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    store = MemoryCache(
        max_size=settings.cache_max_size,
        default_ttl=settings.cache_default_ttl,
    )
    invalidator = CacheInvalidator(store)

    broadcaster: CacheInvalidationBroadcaster | None = None
    if settings.redis_url:
        broadcaster = CacheInvalidationBroadcaster(
            settings.redis_url,
            instance_id=settings.instance_id,
            channel=settings.invalidation_channel,
        )
        broadcaster.attach(invalidator)

    recurring_expenses = InMemoryRecurringExpenseRepository()

    app.state.settings = settings
    app.state.started = False
    app.state.cache = store
    app.state.cache_aside = CacheAside(store, enabled=settings.cache_enabled)
    app.state.invalidator = invalidator
    app.state.broadcaster = broadcaster
    app.state.sweeper = CacheSweeper(store, interval=settings.cache_sweep_interval)
    app.state.token_validator = (
        TokenValidator(settings.jwt_secret, settings.jwt_algorithm) if settings.jwt_secret else None
    )
    app.state.vehicles = VehicleRepository()
    app.state.maintenance_schedules = MaintenanceScheduleRepository()
    app.state.recurring_expenses = recurring_expenses
    app.state.recurring_processor = RecurringExpenseProcessor(recurring_expenses, invalidator)

    app.add_middleware(CorrelationMiddleware)

    # Register exception handlers
    app.add_exception_handler(ApiError, cast(ExceptionHandler, api_exception_handler))
    app.add_exception_handler(
        StarletteHTTPException, cast(ExceptionHandler, http_exception_handler)
    )
    app.add_exception_handler(
        RequestValidationError, cast(ExceptionHandler, validation_exception_handler)
    )
    app.add_exception_handler(
        InvalidKeyPatternError, cast(ExceptionHandler, invalid_pattern_handler)
    )
    app.add_exception_handler(Exception, cast(ExceptionHandler, generic_exception_handler))

    # Include routers
    app.include_router(health.router)
    if settings.enable_metrics:
        app.include_router(metrics_router.router)

    app.include_router(vehicles.router)
    app.include_router(maintenance.router)
    app.include_router(recurring.router)
    app.include_router(admin_cache.router)

    return app
