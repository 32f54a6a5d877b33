"""API routers for fleetdesk."""

from fleetdesk.api.routers import admin_cache, health, maintenance, metrics, recurring, vehicles

__all__ = ["admin_cache", "health", "maintenance", "metrics", "recurring", "vehicles"]
