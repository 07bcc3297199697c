"""Tests for rate limiting."""

from __future__ import annotations

import pytest
from starlette.requests import Request

from storefront.api.middleware.rate_limit import (
    MemoryRateLimiter,
    RateLimitConfig,
    RateLimitMiddleware,
    SlidingWindowRateLimiter,
)
from tests.unit.fakes import FakeRedis, build_container, make_client


class Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def make_request(headers: dict[str, str] | None = None, client: tuple[str, int] | None = ("10.0.0.9", 5000)) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/api/products",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


class TestMemoryRateLimiter:
    """Test the in-process fixed window."""

    @pytest.mark.asyncio
    async def test_limit_and_reset(self) -> None:
        """The window admits ``requests_per_window`` hits, then rejects until it ends."""
        clock = Clock()
        limiter = MemoryRateLimiter(RateLimitConfig(requests_per_window=3, window_seconds=60), clock)

        results = [await limiter.hit("rl:a") for _ in range(4)]

        assert [r.allowed for r in results] == [True, True, True, False]
        assert [r.remaining for r in results] == [2, 1, 0, 0]
        assert results[-1].reset_after == 60

        clock.now = 60.0
        assert (await limiter.hit("rl:a")).allowed is True

    @pytest.mark.asyncio
    async def test_keys_are_independent(self) -> None:
        """Each client has its own budget."""
        limiter = MemoryRateLimiter(RateLimitConfig(requests_per_window=1), Clock())
        assert (await limiter.hit("rl:a")).allowed
        assert (await limiter.hit("rl:b")).allowed
        assert not (await limiter.hit("rl:a")).allowed

    @pytest.mark.asyncio
    async def test_expired_windows_pruned(self) -> None:
        """Old windows do not accumulate."""
        clock = Clock()
        limiter = MemoryRateLimiter(RateLimitConfig(window_seconds=10), clock)
        for i in range(5):
            await limiter.hit(f"rl:{i}")
        assert len(limiter) == 5

        clock.now = 120.0
        await limiter.hit("rl:new")
        assert len(limiter) == 1

    @pytest.mark.asyncio
    async def test_reset(self) -> None:
        """Windows can be cleared."""
        limiter = MemoryRateLimiter(RateLimitConfig(requests_per_window=1), Clock())
        await limiter.hit("rl:a")
        limiter.reset("rl:a")
        assert (await limiter.hit("rl:a")).allowed
        limiter.reset()
        assert len(limiter) == 0


class TestSlidingWindowRateLimiter:
    """Test the Redis sliding window."""

    @pytest.mark.asyncio
    async def test_counts_in_redis(self) -> None:
        """Hits are recorded in a sorted set per client."""
        redis = FakeRedis()
        limiter = SlidingWindowRateLimiter(redis, RateLimitConfig(requests_per_window=2, window_seconds=60))  # type: ignore[arg-type]

        first = await limiter.hit("rl:10.0.0.1")
        second = await limiter.hit("rl:10.0.0.1")
        third = await limiter.hit("rl:10.0.0.1")

        assert (first.allowed, second.allowed, third.allowed) == (True, True, False)
        assert first.remaining == 1
        assert 1 <= third.reset_after <= 60
        assert len(redis.zsets["rl:10.0.0.1"]) == 3


class TestClientIp:
    """Test client address resolution."""

    def test_socket_address(self) -> None:
        """Without proxy trust the socket peer is used."""
        middleware = RateLimitMiddleware(None, RateLimitConfig())  # type: ignore[arg-type]
        request = make_request({"x-forwarded-for": "1.2.3.4"})
        assert middleware._get_client_ip(request) == "10.0.0.9"

    def test_forwarded_for(self) -> None:
        """With proxy trust the first forwarded address wins."""
        middleware = RateLimitMiddleware(None, RateLimitConfig(trust_proxy_headers=True))  # type: ignore[arg-type]
        request = make_request({"x-forwarded-for": "1.2.3.4, 10.0.0.1"})
        assert middleware._get_client_ip(request) == "1.2.3.4"

    def test_real_ip(self) -> None:
        """X-Real-IP is used when X-Forwarded-For is absent."""
        middleware = RateLimitMiddleware(None, RateLimitConfig(trust_proxy_headers=True))  # type: ignore[arg-type]
        assert middleware._get_client_ip(make_request({"x-real-ip": "5.6.7.8"})) == "5.6.7.8"

    def test_unknown(self) -> None:
        """Requests without a peer share one bucket."""
        middleware = RateLimitMiddleware(None, RateLimitConfig())  # type: ignore[arg-type]
        assert middleware._get_client_ip(make_request(client=None)) == "unknown"


class TestMiddleware:
    """Test rate limiting through the application."""

    def test_headers_and_rejection(self) -> None:
        """Allowed responses carry RateLimit headers; excess requests get 429."""
        container, _ = build_container(cache_enabled=False)
        client = make_client(container, enable_rate_limiting=True, rate_limit_requests=2)

        first = client.get("/api/products")
        assert first.status_code == 200
        assert first.headers["RateLimit-Limit"] == "2"
        assert first.headers["RateLimit-Remaining"] == "1"

        client.get("/api/products")
        rejected = client.get("/api/products", headers={"x-request-id": "r-429"})

        assert rejected.status_code == 429
        body = rejected.json()
        assert body["success"] is False
        assert body["code"] == "RATE_LIMIT_EXCEEDED"
        assert body["requestId"] == "r-429"
        assert body["retryAfter"] > 0
        assert rejected.headers["Retry-After"] == str(body["retryAfter"])
        assert rejected.headers["RateLimit-Remaining"] == "0"

    def test_redis_backed(self) -> None:
        """With Redis available the budget is kept in Redis."""
        redis = FakeRedis()
        container, _ = build_container(redis)
        client = make_client(container, enable_rate_limiting=True, rate_limit_requests=5)

        client.get("/api/products")

        assert "rl:testclient" in redis.zsets

    def test_falls_back_when_redis_fails(self) -> None:
        """A Redis outage switches to the in-memory window instead of failing."""
        redis = FakeRedis()
        container, _ = build_container(redis)
        client = make_client(container, enable_rate_limiting=True, rate_limit_requests=1)
        redis.fail = True

        assert client.get("/api/products").status_code == 200
        assert client.get("/api/products").status_code == 429
        assert container.cache_store.available is False
