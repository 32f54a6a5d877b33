"""Prometheus metrics for fleetdesk.

Provides metrics collection and exposure:
- Cache lookups by namespace and result (hit, miss, degraded)
- Invalidations by entity family
- Store gauges/counters (size, evictions, expirations) read from the live store
- Recurring expense processing outcomes

Usage:
    from fleetdesk.observability.metrics import get_metrics

    metrics = get_metrics()
    metrics.cache_lookups_total.labels(namespace="vehicles", result="hit").inc()
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from prometheus_client import REGISTRY, CollectorRegistry, Counter, generate_latest
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily
from prometheus_client.registry import Collector

from fleetdesk.config import settings

if TYPE_CHECKING:
    from fleetdesk.cache.store import MemoryCache

logger = logging.getLogger(__name__)


class NoOpMetric:
    """Stand-in used when metrics are disabled."""

    def labels(self, **kwargs: Any) -> "NoOpMetric":
        return self

    def inc(self, amount: float = 1) -> None:
        pass


@dataclass
class MetricsRegistry:
    """Registry for Prometheus metrics."""

    cache_lookups_total: Any = field(default_factory=NoOpMetric)
    cache_invalidations_total: Any = field(default_factory=NoOpMetric)
    recurring_processed_total: Any = field(default_factory=NoOpMetric)

    _initialized: bool = field(default=False, repr=False)
    _registry: CollectorRegistry | None = field(default=None, repr=False)

    def initialize(self, registry: CollectorRegistry = REGISTRY) -> None:
        """Create the Prometheus metrics once per process."""
        if self._initialized:
            return

        if not settings.enable_metrics:
            logger.info("Metrics are disabled")
            self._initialized = True
            return

        self._registry = registry

        self.cache_lookups_total = Counter(
            "fleetdesk_cache_lookups_total",
            "Cache-aside lookups",
            ["namespace", "result"],
            registry=registry,
        )
        self.cache_invalidations_total = Counter(
            "fleetdesk_cache_invalidations_total",
            "Cache invalidation calls",
            ["family"],
            registry=registry,
        )
        self.recurring_processed_total = Counter(
            "fleetdesk_recurring_processed_total",
            "Recurring expense processing outcomes",
            ["outcome"],
            registry=registry,
        )

        self._initialized = True
        logger.info("Prometheus metrics initialized")

    def register_store(self, store: MemoryCache) -> CacheStoreCollector | None:
        """Expose a live store's statistics. Returns the collector to unregister."""
        if self._registry is None:
            return None
        collector = CacheStoreCollector(store)
        self._registry.register(collector)
        return collector

    def unregister(self, collector: CacheStoreCollector | None) -> None:
        if collector is not None and self._registry is not None:
            self._registry.unregister(collector)

    def generate_latest(self) -> bytes:
        """Generate Prometheus metrics in exposition format."""
        if self._registry is None:
            return b"# Metrics disabled\n"
        return generate_latest(self._registry)


class CacheStoreCollector(Collector):
    """Reads store statistics at scrape time."""

    def __init__(self, store: MemoryCache) -> None:
        self.store = store

    def collect(self) -> Iterator[Any]:
        stats = self.store.stats(include_keys=False)

        yield GaugeMetricFamily("fleetdesk_cache_entries", "Entries held", value=stats.size)
        yield GaugeMetricFamily("fleetdesk_cache_max_entries", "Entry bound", value=stats.max_size)
        yield CounterMetricFamily(
            "fleetdesk_cache_evictions",
            "Live entries evicted under size pressure",
            value=stats.evictions,
        )
        yield CounterMetricFamily(
            "fleetdesk_cache_expirations",
            "Entries removed after their TTL",
            value=stats.expirations,
        )


# Global metrics registry
metrics_registry = MetricsRegistry()


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry.

    Initializes metrics on first access.
    """
    if not metrics_registry._initialized:
        metrics_registry.initialize()
    return metrics_registry
