"""Redis-backed key-value store for cached responses.

Wraps a ``redis.asyncio`` client and tracks whether the store is usable.
Callers check ``available`` synchronously (no network round trip) before
deciding to use the cache at all.

Store failures are never raised: every operation returns a ``CacheRead`` or
``CacheWrite`` outcome that carries a ``CacheError`` when the call failed or
timed out.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, TypeVar

import redis.asyncio as redis

from storefront.observability.metrics import record_cache_operation

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)

T = TypeVar("T")

SWEEP_BATCH = 100


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    READY = "ready"
    ERROR = "error"
    CLOSED = "closed"


@dataclass(frozen=True)
class CacheError:
    """Why a cache operation did not complete."""

    operation: str
    key: str
    reason: str


@dataclass(frozen=True)
class CacheRead:
    value: bytes | None = None
    error: CacheError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def hit(self) -> bool:
        return self.error is None and self.value is not None


@dataclass(frozen=True)
class CacheWrite:
    # Keys removed, for delete and sweep
    count: int = 0
    error: CacheError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class CacheStore:
    """Availability-tracking wrapper around a Redis client.

    Lifecycle hooks drive ``available``:

    - ``_on_connect``: connection attempt started, not yet usable
    - ``_on_ready``: a call succeeded, usable
    - ``_on_error``: a call failed; unusable for ``retry_after`` seconds,
      after which the next call probes the store
    - ``_on_close``: closed for good

    Example:
        store = CacheStore.from_url("redis://localhost:6379/0")
        await store.open()
        outcome = await store.get("product:42")
        if outcome.hit:
            ...
        await store.close()
    """

    def __init__(
        self,
        client: Redis | None,
        *,
        operation_timeout: float = 0.5,
        retry_after: float = 5.0,
        sweep_timeout: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._client = client
        self.operation_timeout = operation_timeout
        self.retry_after = retry_after
        self.sweep_timeout = sweep_timeout
        self._clock = clock
        self._state = ConnectionState.CONNECTING if client is not None else ConnectionState.CLOSED
        self._retry_at = 0.0

    @classmethod
    def from_url(cls, url: str | None, **kwargs: Any) -> "CacheStore":
        """Create a store for ``url``; ``None`` gives a permanently unavailable store."""
        if not url:
            return cls(None, **kwargs)
        timeout = kwargs.get("operation_timeout", 0.5)
        client = redis.from_url(  # type: ignore[no-untyped-call]
            url,
            decode_responses=False,
            socket_connect_timeout=timeout,
            socket_timeout=timeout,
        )
        return cls(client, **kwargs)

    @property
    def client(self) -> Redis | None:
        return self._client

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def available(self) -> bool:
        if self._client is None:
            return False
        if self._state is ConnectionState.READY:
            return True
        if self._state is ConnectionState.ERROR:
            return self._clock() >= self._retry_at
        return False

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def _on_connect(self) -> None:
        self._state = ConnectionState.CONNECTING
        logger.info("Redis connecting")

    def _on_ready(self) -> None:
        if self._state is not ConnectionState.READY:
            logger.info("Redis ready")
        self._state = ConnectionState.READY

    def _on_error(self, error: BaseException) -> None:
        if self._state is not ConnectionState.ERROR:
            logger.warning(f"Redis unavailable, caching disabled for {self.retry_after}s: {error!r}")
        self._state = ConnectionState.ERROR
        self._retry_at = self._clock() + self.retry_after

    def report_error(self, error: BaseException) -> None:
        """Record a failure seen by another user of ``client``."""
        self._on_error(error)

    def _on_close(self) -> None:
        self._state = ConnectionState.CLOSED
        logger.info("Redis connection closed")

    async def open(self) -> None:
        """Connect and verify the store with a PING."""
        if self._client is None:
            logger.info("Redis not configured, caching disabled")
            return
        self._on_connect()
        try:
            await asyncio.wait_for(self._client.ping(), timeout=self.operation_timeout)
        except Exception as e:
            self._on_error(e)
            return
        self._on_ready()

    async def close(self) -> None:
        if self._client is None:
            return
        client, self._client = self._client, None
        self._on_close()
        await client.aclose()

    async def ping(self) -> bool:
        if self._client is None:
            return False
        result = await self._call("ping", "", self._client.ping, self.operation_timeout)
        return not isinstance(result, CacheError)

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def _call(
        self,
        operation: str,
        key: str,
        fn: Callable[[], Awaitable[T]],
        timeout: float,
    ) -> T | CacheError:
        if self._client is None:
            return CacheError(operation, key, "not connected")
        start = time.perf_counter()
        try:
            result = await asyncio.wait_for(fn(), timeout=timeout)
        except asyncio.TimeoutError as e:
            self._on_error(e)
            record_cache_operation(operation, "error", time.perf_counter() - start)
            return CacheError(operation, key, "timeout")
        except (redis.RedisError, OSError) as e:
            self._on_error(e)
            record_cache_operation(operation, "error", time.perf_counter() - start)
            return CacheError(operation, key, str(e) or e.__class__.__name__)
        self._on_ready()
        duration = time.perf_counter() - start
        if operation == "get":
            record_cache_operation(operation, "miss" if result is None else "hit", duration)
        else:
            record_cache_operation(operation, "success", duration)
        return result

    async def get(self, key: str) -> CacheRead:
        client = self._client
        if client is None:
            return CacheRead(error=CacheError("get", key, "not connected"))
        result = await self._call("get", key, lambda: client.get(key), self.operation_timeout)
        if isinstance(result, CacheError):
            return CacheRead(error=result)
        return CacheRead(value=result)

    async def set(self, key: str, value: bytes, ttl: int) -> CacheWrite:
        client = self._client
        if client is None:
            return CacheWrite(error=CacheError("set", key, "not connected"))
        result = await self._call(
            "set", key, lambda: client.set(key, value, ex=ttl), self.operation_timeout
        )
        if isinstance(result, CacheError):
            return CacheWrite(error=result)
        return CacheWrite(count=1)

    async def delete(self, *keys: str) -> CacheWrite:
        client = self._client
        label = ",".join(keys)
        if client is None:
            return CacheWrite(error=CacheError("delete", label, "not connected"))
        if not keys:
            return CacheWrite()
        result = await self._call(
            "delete", label, lambda: client.delete(*keys), self.operation_timeout
        )
        if isinstance(result, CacheError):
            return CacheWrite(error=result)
        return CacheWrite(count=int(result))

    async def sweep(self, pattern: str) -> CacheWrite:
        """Delete every key matching ``pattern``.

        Uses incremental SCAN so the server is never blocked the way KEYS
        would block it. Keys created during the sweep may survive it.
        """
        client = self._client
        if client is None:
            return CacheWrite(error=CacheError("sweep", pattern, "not connected"))

        async def run() -> int:
            deleted = 0
            batch: list[bytes] = []
            async for key in client.scan_iter(match=pattern, count=SWEEP_BATCH):
                batch.append(key)
                if len(batch) >= SWEEP_BATCH:
                    deleted += await client.delete(*batch)
                    batch = []
            if batch:
                deleted += await client.delete(*batch)
            return deleted

        result = await self._call("sweep", pattern, run, self.sweep_timeout)
        if isinstance(result, CacheError):
            return CacheWrite(error=result)
        return CacheWrite(count=result)
