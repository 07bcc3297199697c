"""FastAPI application factory for the storefront API.

Creates the application with:
- Category, product and audit log routers under /api
- Health and Prometheus metrics endpoints
- Lifecycle management for the database pools and the cache connection
- Correlation, metrics, rate limiting, CORS, gzip and security headers middleware
- Consistent {success, error, code, requestId} error bodies
- ORJSON for fast JSON serialization
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, cast

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware
from starlette.types import ExceptionHandler

from storefront.api.deps import ServiceContainer
from storefront.api.errors import (
    ApiError,
    api_error_handler,
    category_not_found_handler,
    generic_exception_handler,
    http_exception_handler,
    integrity_error_handler,
    invalid_cursor_handler,
    no_update_fields_handler,
    store_timeout_handler,
    store_unavailable_handler,
    validation_exception_handler,
)
from storefront.api.middleware import (
    CorrelationMiddleware,
    RateLimitConfig,
    RateLimitMiddleware,
    SecurityHeadersMiddleware,
)
from storefront.api.routers import audit, categories, health, products
from storefront.api.routers import metrics as metrics_router
from storefront.audit import configure_audit_logging
from storefront.config import Settings, settings
from storefront.errors import InvalidCursor, NoUpdateFields, StoreTimeout, StoreUnavailable
from storefront.observability import configure_logging
from storefront.observability.metrics import MetricsMiddleware, get_metrics
from storefront.persistence.repositories import CategoryNotFound

logger = logging.getLogger(__name__)

API_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle.

    On startup:
    - Configure structured logging and the audit logger
    - Initialize Prometheus metrics
    - Open the database pools and the cache connection

    On shutdown:
    - Close the cache connection
    - Dispose the database pools
    """
    config: Settings = app.state.settings
    configure_logging(json_format=config.env != "dev", level=config.log_level)
    configure_audit_logging(config.audit_log_file)
    get_metrics()

    container: ServiceContainer | None = getattr(app.state, "container", None)
    if container is None:
        container = ServiceContainer.from_settings(config)
        app.state.container = container

    logger.info(f"Starting storefront API ({config.env})")
    await container.open()
    if container.db.router.has_replica:
        logger.info("Read replica configured; reads are routed to it")
    if not container.cache_store.available:
        logger.warning("Cache unavailable; serving every read from the database")
    logger.info("Storefront API startup complete")

    yield

    logger.info("Shutting down storefront API")
    await container.close()
    logger.info("Storefront API shutdown complete")


def _register_exception_handlers(app: FastAPI) -> None:
    handlers: list[tuple[type[Exception], Any]] = [
        (ApiError, api_error_handler),
        (StarletteHTTPException, http_exception_handler),
        (RequestValidationError, validation_exception_handler),
        (InvalidCursor, invalid_cursor_handler),
        (NoUpdateFields, no_update_fields_handler),
        (CategoryNotFound, category_not_found_handler),
        (StoreUnavailable, store_unavailable_handler),
        (StoreTimeout, store_timeout_handler),
        (IntegrityError, integrity_error_handler),
        (Exception, generic_exception_handler),
    ]
    for exc_class, handler in handlers:
        app.add_exception_handler(exc_class, cast(ExceptionHandler, handler))


def create_app(
    container: ServiceContainer | None = None,
    config: Settings | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        container: Pre-built services; built from settings at startup when None
        config: Settings to use instead of the process-wide ones
    """
    config = config or settings
    app = FastAPI(
        title="Storefront API",
        description="Catalog API for categories and products",
        version=API_VERSION,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.settings = config
    if container is not None:
        app.state.container = container

    # Middleware added first runs innermost; CorrelationMiddleware is outermost
    if config.enable_rate_limiting:
        app.add_middleware(
            RateLimitMiddleware,
            config=RateLimitConfig(
                requests_per_window=config.rate_limit_requests,
                window_seconds=config.rate_limit_window,
                trust_proxy_headers=config.rate_limit_trust_proxy,
            ),
        )

    if config.enable_compression:
        app.add_middleware(GZipMiddleware, minimum_size=config.compression_min_size)

    if config.enable_security_headers:
        app.add_middleware(
            SecurityHeadersMiddleware,
            enable_hsts=config.enable_hsts,
            hsts_max_age=config.hsts_max_age,
            hsts_include_subdomains=config.hsts_include_subdomains,
            hsts_preload=config.hsts_preload,
            csp_policy=config.csp_policy,
            permissions_policy=config.permissions_policy,
        )

    if config.enable_metrics:
        app.add_middleware(MetricsMiddleware)

    origins = [origin.strip() for origin in config.cors_origin.split(",") if origin.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        # Browsers reject credentials with a wildcard origin
        allow_credentials="*" not in origins,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["x-request-id", "RateLimit-Limit", "RateLimit-Remaining", "RateLimit-Reset"],
    )

    app.add_middleware(CorrelationMiddleware)

    _register_exception_handlers(app)

    app.include_router(health.router)
    if config.enable_metrics:
        app.include_router(metrics_router.router)

    app.include_router(categories.router)
    app.include_router(products.router)
    app.include_router(audit.router)

    @app.get("/", include_in_schema=False)
    async def root() -> dict[str, Any]:
        return {
            "success": True,
            "message": "Storefront API",
            "version": API_VERSION,
            "endpoints": {
                "categories": "/api/categories",
                "products": "/api/products",
                "auditLogs": "/api/audit-logs",
                "health": "/health",
                "docs": "/docs",
            },
        }

    return app
