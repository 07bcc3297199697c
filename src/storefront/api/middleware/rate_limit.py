"""Rate limiting middleware for the storefront API.

Counts requests per client IP. When the shared cache is reachable the
count is a Redis sliding window, so every worker sees the same budget.
Otherwise each process falls back to an in-memory fixed window.
"""

from __future__ import annotations

import logging
import math
import time
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from storefront.observability.metrics import record_rate_limit_exceeded

if TYPE_CHECKING:
    from redis.asyncio import Redis
    from starlette.types import ASGIApp

    from storefront.cache.store import CacheStore

logger = logging.getLogger(__name__)

KEY_PREFIX = "rl:"
# Seconds between sweeps of expired in-memory windows
PRUNE_INTERVAL = 60.0


@dataclass
class RateLimitConfig:
    """Rate limiting configuration."""

    # Maximum requests per window
    requests_per_window: int = 100
    # Window duration in seconds
    window_seconds: int = 900
    # Paths that are never limited
    bypass_paths: frozenset[str] = field(
        default_factory=lambda: frozenset({"/health", "/health/live", "/metrics"})
    )
    # Take the client address from X-Forwarded-For / X-Real-IP
    trust_proxy_headers: bool = False


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    # Seconds until the budget frees up again
    reset_after: int

    def headers(self) -> dict[str, str]:
        headers = {
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": str(self.reset_after),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.reset_after)
        return headers


class SlidingWindowRateLimiter:
    """Redis-backed sliding window rate limiter.

    Uses sorted sets to implement accurate sliding window counting.
    """

    def __init__(self, redis: Redis, config: RateLimitConfig):
        self.redis = redis
        self.config = config

    async def hit(self, key: str) -> RateLimitResult:
        now = time.time()
        window = self.config.window_seconds
        window_start = now - window

        pipe = self.redis.pipeline()
        pipe.zremrangebyscore(key, 0, window_start)
        pipe.zcard(key)
        pipe.zrange(key, 0, 0, withscores=True)
        # Unique member so concurrent hits at the same timestamp all count
        pipe.zadd(key, {f"{now}:{uuid.uuid4().hex[:8]}": now})
        pipe.expire(key, window + 1)
        results = await pipe.execute()

        current_count = int(results[1])
        oldest = results[2]

        limit = self.config.requests_per_window
        allowed = current_count < limit
        if oldest:
            reset_after = math.ceil(float(oldest[0][1]) + window - now)
        else:
            reset_after = window
        return RateLimitResult(
            allowed=allowed,
            limit=limit,
            remaining=max(0, limit - current_count - 1),
            reset_after=max(1, reset_after),
        )


class MemoryRateLimiter:
    """Per-process fixed window limiter.

    A window opens on a key's first hit and lasts ``window_seconds``.
    """

    def __init__(self, config: RateLimitConfig, clock: Callable[[], float] = time.monotonic):
        self.config = config
        self._clock = clock
        self._windows: dict[str, tuple[int, float]] = {}
        self._next_prune = clock() + PRUNE_INTERVAL

    def __len__(self) -> int:
        return len(self._windows)

    def _prune(self, now: float) -> None:
        if now < self._next_prune:
            return
        self._next_prune = now + PRUNE_INTERVAL
        expired = [key for key, (_, reset_at) in self._windows.items() if now >= reset_at]
        for key in expired:
            del self._windows[key]

    async def hit(self, key: str) -> RateLimitResult:
        now = self._clock()
        self._prune(now)

        hits, reset_at = self._windows.get(key, (0, 0.0))
        if now >= reset_at:
            hits, reset_at = 0, now + self.config.window_seconds
        hits += 1
        self._windows[key] = (hits, reset_at)

        limit = self.config.requests_per_window
        return RateLimitResult(
            allowed=hits <= limit,
            limit=limit,
            remaining=max(0, limit - hits),
            reset_after=max(1, math.ceil(reset_at - now)),
        )

    def reset(self, key: str | None = None) -> None:
        if key is None:
            self._windows.clear()
        else:
            self._windows.pop(key, None)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Rate limiting middleware keyed on the client IP.

    The Redis client is looked up at request time from the application's
    service container, so the limiter follows the cache's availability.
    """

    def __init__(self, app: ASGIApp, config: RateLimitConfig | None = None):
        super().__init__(app)
        self.config = config or RateLimitConfig()
        self.memory = MemoryRateLimiter(self.config)
        self._redis_limiter: SlidingWindowRateLimiter | None = None

    def _shared_store(self, request: Request) -> CacheStore | None:
        container = getattr(request.app.state, "container", None)
        if container is None:
            return None
        store: CacheStore = container.cache_store
        if store.client is None or not store.available:
            return None
        return store

    def _get_redis_limiter(self, redis: Redis) -> SlidingWindowRateLimiter:
        if self._redis_limiter is None or self._redis_limiter.redis is not redis:
            self._redis_limiter = SlidingWindowRateLimiter(redis, self.config)
        return self._redis_limiter

    async def _hit(self, request: Request, key: str) -> RateLimitResult:
        store = self._shared_store(request)
        if store is not None and store.client is not None:
            try:
                return await self._get_redis_limiter(store.client).hit(key)
            except Exception as e:
                store.report_error(e)
                logger.debug(f"Redis rate limiter unavailable, using memory window: {e}")
        return await self.memory.hit(key)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if path in self.config.bypass_paths:
            return await call_next(request)

        client_ip = self._get_client_ip(request)
        result = await self._hit(request, f"{KEY_PREFIX}{client_ip}")

        if not result.allowed:
            logger.warning(
                "Rate limit exceeded",
                extra={"client_ip": client_ip, "path": path},
            )
            record_rate_limit_exceeded()
            return JSONResponse(
                status_code=429,
                content={
                    "success": False,
                    "error": "Too many requests, please try again later",
                    "code": "RATE_LIMIT_EXCEEDED",
                    "retryAfter": result.reset_after,
                    "requestId": getattr(request.state, "request_id", None),
                },
                headers=result.headers(),
            )

        response = await call_next(request)
        for name, value in result.headers().items():
            response.headers[name] = value
        return response

    def _get_client_ip(self, request: Request) -> str:
        if self.config.trust_proxy_headers:
            forwarded = request.headers.get("x-forwarded-for")
            if forwarded:
                # First entry is the original client
                return forwarded.split(",")[0].strip()
            real_ip = request.headers.get("x-real-ip")
            if real_ip:
                return real_ip

        if request.client:
            return request.client.host

        return "unknown"
