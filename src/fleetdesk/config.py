from __future__ import annotations

from uuid import uuid4

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="FLEETDESK_", env_file=".env", extra="ignore")

    app_name: str = "fleetdesk"
    env: str = "dev"
    host: str = "0.0.0.0"  # nosec B104 - intentional for container deployments
    port: int = 8080

    # Instance ID, used to drop our own invalidation broadcasts
    instance_id: str = Field(default_factory=lambda: str(uuid4())[:8])

    # In-memory cache
    cache_enabled: bool = True
    cache_default_ttl: int = Field(default=300, gt=0)
    cache_max_size: int = Field(default=1000, gt=0)
    cache_sweep_interval: float = Field(default=60.0, gt=0)

    # Redis Pub/Sub for cross-process invalidation (disabled when unset)
    redis_url: str | None = None
    invalidation_channel: str = "fleetdesk:cache:invalidation"

    # Authentication (disabled when no secret is configured)
    jwt_secret: str | None = None
    jwt_algorithm: str = "HS256"

    # Shared secret for the cron caller of the recurring expense processor
    recurring_api_key: str | None = None

    # Observability
    enable_metrics: bool = True
    log_level: str = "INFO"


settings = Settings()
