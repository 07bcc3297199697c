"""Health check endpoints.

- /health/live - Liveness probe (always OK while the process runs)
- /health      - Database connectivity, pool statistics and cache state;
                 503 when the database is unreachable or its pool saturated
"""

from __future__ import annotations

import asyncio
import time
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import ORJSONResponse

from storefront.api.deps import ContainerDep
from storefront.observability.metrics import record_db_pool

router = APIRouter(tags=["health"])

CHECK_TIMEOUT = 5.0
# Share of primary pool capacity in use at which the service reports degraded
POOL_SATURATION = 0.9


class HealthStatus(str, Enum):
    """Health check status."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@router.get("/health/live")
async def liveness() -> dict[str, str]:
    return {"status": "alive"}


@router.get("/health")
async def health(request: Request, container: ContainerDep) -> ORJSONResponse:
    """Report database and cache health.

    An unreachable database (unhealthy) or a primary pool close to
    saturation (degraded) answers 503. The cache is optional; its state is
    reported but never fails the check.
    """
    start = time.monotonic()
    try:
        db_ok = await asyncio.wait_for(container.db.health_check(), timeout=CHECK_TIMEOUT)
    except asyncio.TimeoutError:
        db_ok = False
    db_latency = (time.monotonic() - start) * 1000

    try:
        pools = container.db.pool_stats()
    except RuntimeError:
        pools = {"primary": None, "replica": None}
    for name, stats in pools.items():
        if stats is not None:
            record_db_pool(name, stats)

    cache_configured = container.cache_store.client is not None
    cache_available = container.cache_store.available

    primary = pools.get("primary")
    capacity = container.db.pool_size + container.db.max_overflow
    saturated = primary is not None and primary["checked_out"] >= capacity * POOL_SATURATION

    if not db_ok:
        status = HealthStatus.UNHEALTHY
    elif saturated:
        status = HealthStatus.DEGRADED
    else:
        status = HealthStatus.HEALTHY

    body: dict[str, Any] = {
        "success": status is HealthStatus.HEALTHY,
        "status": status.value,
        "environment": request.app.state.settings.env,
        "timestamp": datetime.now(UTC).isoformat(),
        "database": {
            "status": "connected" if db_ok else "disconnected",
            "latency_ms": round(db_latency, 2),
            "pools": pools,
        },
        "cache": {
            "configured": cache_configured,
            "available": cache_available,
            "state": container.cache_store.state.value,
        },
    }
    return ORJSONResponse(
        status_code=200 if status is HealthStatus.HEALTHY else 503, content=body
    )
