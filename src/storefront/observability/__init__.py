"""Observability module for the storefront API.

Provides metrics and structured logging:
- Prometheus metrics
- Request/response instrumentation
- JSON structured logging with correlation IDs
"""

from storefront.observability.logging import (
    LogContext,
    configure_logging,
    correlation_id_var,
    request_id_var,
)
from storefront.observability.metrics import (
    MetricsMiddleware,
    MetricsRegistry,
    get_metrics,
    metrics_registry,
)

__all__ = [
    # Logging
    "configure_logging",
    "LogContext",
    "request_id_var",
    "correlation_id_var",
    # Metrics
    "metrics_registry",
    "MetricsRegistry",
    "get_metrics",
    "MetricsMiddleware",
]
