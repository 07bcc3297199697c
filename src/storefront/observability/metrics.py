"""Prometheus metrics for the storefront API.

Provides metrics collection and exposure:
- HTTP request metrics (latency, count, in-progress)
- Database metrics (query count and time, pool usage)
- Cache metrics (operation results, latency)
- Business metrics (product and category operations)
- Rate limiter rejections

Usage:
    from storefront.observability.metrics import get_metrics

    metrics = get_metrics()
    metrics.http_requests_total.labels(method="GET", route="/api/products", status_code=200).inc()
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from storefront.config import settings

if TYPE_CHECKING:
    from starlette.types import ASGIApp

logger = logging.getLogger(__name__)

PREFIX = "storefront"

_NUMERIC_SEGMENT = re.compile(r"/\d+(?=/|$)")


@dataclass
class MetricsRegistry:
    """Registry for Prometheus metrics.

    Each instance owns its own ``CollectorRegistry`` so that test apps can
    build fresh registries without colliding on metric names.
    """

    enabled: bool = True

    # HTTP metrics
    http_requests_total: Any = None
    http_request_duration_seconds: Any = None
    http_requests_in_progress: Any = None

    # Database metrics
    db_queries_total: Any = None
    db_query_duration_seconds: Any = None
    db_pool_connections: Any = None

    # Cache metrics
    cache_operations_total: Any = None
    cache_operation_duration_seconds: Any = None

    # Business metrics
    product_operations_total: Any = None
    category_operations_total: Any = None
    rate_limit_exceeded_total: Any = None

    _initialized: bool = field(default=False, repr=False)
    _registry: CollectorRegistry | None = field(default=None, repr=False)

    def initialize(self) -> None:
        """Create the Prometheus collectors."""
        if self._initialized:
            return

        if not self.enabled:
            logger.info("Metrics are disabled")
            self._initialized = True
            return

        registry = CollectorRegistry(auto_describe=True)
        self._registry = registry

        self.http_requests_total = Counter(
            f"{PREFIX}_http_requests_total",
            "Total HTTP requests",
            ["method", "route", "status_code"],
            registry=registry,
        )
        self.http_request_duration_seconds = Histogram(
            f"{PREFIX}_http_request_duration_seconds",
            "HTTP request latency in seconds",
            ["method", "route", "status_code"],
            buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0),
            registry=registry,
        )
        self.http_requests_in_progress = Gauge(
            f"{PREFIX}_http_requests_in_progress",
            "HTTP requests currently in progress",
            ["method"],
            registry=registry,
        )

        self.db_queries_total = Counter(
            f"{PREFIX}_db_queries_total",
            "Total database queries",
            ["operation", "pool"],
            registry=registry,
        )
        self.db_query_duration_seconds = Histogram(
            f"{PREFIX}_db_query_duration_seconds",
            "Database query latency in seconds",
            ["operation", "pool"],
            buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 2.0),
            registry=registry,
        )
        self.db_pool_connections = Gauge(
            f"{PREFIX}_db_pool_connections",
            "Database pool connections by state",
            ["pool", "state"],
            registry=registry,
        )

        self.cache_operations_total = Counter(
            f"{PREFIX}_cache_operations_total",
            "Total cache operations",
            ["operation", "result"],
            registry=registry,
        )
        self.cache_operation_duration_seconds = Histogram(
            f"{PREFIX}_cache_operation_duration_seconds",
            "Cache operation latency in seconds",
            ["operation"],
            buckets=(0.0001, 0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1),
            registry=registry,
        )

        self.product_operations_total = Counter(
            f"{PREFIX}_product_operations_total",
            "Total product operations",
            ["operation"],
            registry=registry,
        )
        self.category_operations_total = Counter(
            f"{PREFIX}_category_operations_total",
            "Total category operations",
            ["operation"],
            registry=registry,
        )
        self.rate_limit_exceeded_total = Counter(
            f"{PREFIX}_rate_limit_exceeded_total",
            "Requests rejected by the rate limiter",
            registry=registry,
        )

        self._initialized = True
        logger.info("Prometheus metrics initialized")

    def generate_latest(self) -> bytes:
        """Generate Prometheus metrics in exposition format."""
        if self._registry is None:
            return b"# Metrics disabled\n"
        return generate_latest(self._registry)


metrics_registry = MetricsRegistry(enabled=settings.enable_metrics)


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry.

    Initializes metrics on first access.
    """
    if not metrics_registry._initialized:
        metrics_registry.initialize()
    return metrics_registry


def normalize_route(path: str) -> str:
    """Collapse numeric path segments to keep label cardinality bounded.

    Examples:
        /api/products/42 -> /api/products/{id}
        /api/categories -> /api/categories
    """
    return _NUMERIC_SEGMENT.sub("/{id}", path) or "/"


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware for HTTP request metrics."""

    def __init__(self, app: "ASGIApp", metrics: MetricsRegistry | None = None) -> None:
        super().__init__(app)
        self.metrics = metrics or get_metrics()

    async def dispatch(self, request: Request, call_next: Callable[[Request], Any]) -> Response:
        if request.url.path in ("/health", "/health/live", "/metrics"):
            return await call_next(request)

        method = request.method
        route = normalize_route(request.url.path)

        if self.metrics.http_requests_in_progress:
            self.metrics.http_requests_in_progress.labels(method=method).inc()

        start_time = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            duration = time.perf_counter() - start_time

            if self.metrics.http_requests_total:
                self.metrics.http_requests_total.labels(
                    method=method, route=route, status_code=status_code
                ).inc()

            if self.metrics.http_request_duration_seconds:
                self.metrics.http_request_duration_seconds.labels(
                    method=method, route=route, status_code=status_code
                ).observe(duration)

            if self.metrics.http_requests_in_progress:
                self.metrics.http_requests_in_progress.labels(method=method).dec()


def record_db_query(operation: str, pool: str, duration: float) -> None:
    """Record database query metrics.

    Args:
        operation: Query operation (read, write)
        pool: Pool the statement ran on (primary, replica)
        duration: Query duration in seconds
    """
    metrics = get_metrics()
    if metrics.db_queries_total:
        metrics.db_queries_total.labels(operation=operation, pool=pool).inc()
    if metrics.db_query_duration_seconds:
        metrics.db_query_duration_seconds.labels(operation=operation, pool=pool).observe(duration)


def record_db_pool(pool: str, stats: dict[str, int]) -> None:
    """Publish pool statistics as gauges."""
    metrics = get_metrics()
    if metrics.db_pool_connections:
        for state, value in stats.items():
            metrics.db_pool_connections.labels(pool=pool, state=state).set(value)


def record_cache_operation(operation: str, result: str, duration: float | None = None) -> None:
    """Record a cache operation.

    Args:
        operation: Cache operation (get, set, delete, sweep)
        result: Outcome (hit, miss, success, error, bypass)
        duration: Operation duration in seconds, when a store call was made
    """
    metrics = get_metrics()
    if metrics.cache_operations_total:
        metrics.cache_operations_total.labels(operation=operation, result=result).inc()
    if duration is not None and metrics.cache_operation_duration_seconds:
        metrics.cache_operation_duration_seconds.labels(operation=operation).observe(duration)


def record_product_operation(operation: str) -> None:
    metrics = get_metrics()
    if metrics.product_operations_total:
        metrics.product_operations_total.labels(operation=operation).inc()


def record_category_operation(operation: str) -> None:
    metrics = get_metrics()
    if metrics.category_operations_total:
        metrics.category_operations_total.labels(operation=operation).inc()


def record_rate_limit_exceeded() -> None:
    metrics = get_metrics()
    if metrics.rate_limit_exceeded_total:
        metrics.rate_limit_exceeded_total.inc()
