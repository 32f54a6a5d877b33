"""Observability for fleetdesk: structured logging and Prometheus metrics."""

from fleetdesk.observability.logging import (
    LogContext,
    configure_logging,
    request_id_var,
    user_id_var,
)
from fleetdesk.observability.metrics import get_metrics, metrics_registry

__all__ = [
    # Logging
    "configure_logging",
    "LogContext",
    "request_id_var",
    "user_id_var",
    # Metrics
    "metrics_registry",
    "get_metrics",
]
