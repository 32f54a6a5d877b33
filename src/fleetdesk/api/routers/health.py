"""Health check endpoints for fleetdesk.

- /health/live  - Liveness probe (always returns OK if process is running)
- /health/ready - Readiness probe (cache state and background workers)
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter(tags=["health"])


@router.get("/health/live")
async def live() -> dict[str, str]:
    """Liveness probe.

    Returns OK if the process is running.
    """
    return {"status": "ok"}


@router.get("/health/ready")
async def ready(request: Request) -> JSONResponse:
    """Readiness probe.

    Ready once startup has completed and the sweeper is running. The cache
    itself cannot be unhealthy; a stopped sweeper only means expired entries
    linger until read.
    """
    state = request.app.state
    sweeper = getattr(state, "sweeper", None)
    sweeper_running = sweeper is not None and sweeper.running
    started = getattr(state, "started", False)

    result: dict[str, Any] = {
        "status": "healthy" if started else "unhealthy",
        "components": {
            "cache": {
                "status": "up",
                "entries": len(state.cache),
                "max_entries": state.cache.max_size,
                "enabled": state.cache_aside.enabled,
            },
            "sweeper": {"status": "up" if sweeper_running else "down"},
            "broadcaster": {
                "status": "up" if getattr(state, "broadcaster", None) is not None else "disabled"
            },
        },
    }
    return JSONResponse(content=result, status_code=200 if started else 503)
