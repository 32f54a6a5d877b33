"""Global pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import Callable, Iterator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from fleetdesk.api.app import create_app
from fleetdesk.cache.store import MemoryCache
from fleetdesk.config import Settings
from fleetdesk.security.tokens import TokenValidator


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> MemoryCache:
    return MemoryCache(max_size=100, default_ttl=300, clock=clock)


@pytest.fixture
def app_settings() -> Settings:
    """Settings with auth disabled, no Redis and a long sweep interval."""
    return Settings(
        env="test",
        jwt_secret=None,
        redis_url=None,
        recurring_api_key="cron-secret",
        cache_sweep_interval=3600,
    )


@pytest.fixture
def app(app_settings: Settings) -> FastAPI:
    return create_app(app_settings)


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def secured_settings(app_settings: Settings) -> Settings:
    """Same settings with JWT authentication turned on."""
    return app_settings.model_copy(update={"jwt_secret": "test-secret"})


@pytest.fixture
def secured_client(secured_settings: Settings) -> Iterator[TestClient]:
    with TestClient(create_app(secured_settings)) as test_client:
        yield test_client


@pytest.fixture
def auth_headers(secured_settings: Settings) -> Callable[..., dict[str, str]]:
    """Build an Authorization header for a user holding ``roles``."""
    validator = TokenValidator(secured_settings.jwt_secret or "")

    def _headers(*roles: str, sub: str = "u1") -> dict[str, str]:
        return {"Authorization": f"Bearer {validator.create_token(sub, list(roles))}"}

    return _headers
