"""Cache-aside read-through.

``CacheAside.get_or_compute`` checks the store for a key, returns the decoded
value on a hit, and otherwise computes the value, stores it with a TTL and
returns it. The cache is an optimization only: every store failure
degrades to calling ``compute`` directly.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Generic, Protocol, TypeVar

import orjson
from pydantic import BaseModel

from storefront.cache.store import CacheStore
from storefront.observability.metrics import record_cache_operation

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

DEFAULT_TTL = 300


class Codec(Protocol[T]):
    def encode(self, value: T) -> bytes: ...

    def decode(self, data: bytes) -> T: ...


class JsonCodec:
    """orjson codec for plain JSON-native values (dicts, lists, scalars)."""

    def encode(self, value: Any) -> bytes:
        return orjson.dumps(value)

    def decode(self, data: bytes) -> Any:
        return orjson.loads(data)


class ModelCodec(Generic[M]):
    """Codec for a pydantic model type."""

    def __init__(self, model: type[M]):
        self.model = model

    def encode(self, value: M) -> bytes:
        return value.model_dump_json().encode("utf-8")

    def decode(self, data: bytes) -> M:
        return self.model.model_validate_json(data)


JSON = JsonCodec()


class CacheAside:
    """Get-or-compute-and-store against a ``CacheStore``."""

    def __init__(self, store: CacheStore, default_ttl: int = DEFAULT_TTL):
        self.store = store
        self.default_ttl = default_ttl

    async def get_or_compute(
        self,
        key: str,
        compute: Callable[[], Awaitable[T]],
        ttl: int | None = None,
        codec: Codec[T] = JSON,
    ) -> T:
        """Return the cached value for ``key`` or compute and cache it.

        Never raises for cache failures; exceptions from ``compute`` propagate
        unchanged. ``None`` results are returned but not stored.
        """
        if not self.store.available:
            record_cache_operation("get", "bypass")
            return await compute()

        read = await self.store.get(key)
        if read.error is not None:
            logger.warning(f"Cache read failed for {key}: {read.error.reason}")
            return await compute()

        if read.value is not None:
            try:
                value = codec.decode(read.value)
            except ValueError as e:
                logger.warning(f"Discarding undecodable cache entry {key}: {e}")
            else:
                logger.debug(f"Cache hit: {key}")
                return value
        else:
            logger.debug(f"Cache miss: {key}")

        result = await compute()
        if result is None:
            return result

        try:
            data = codec.encode(result)
        except (TypeError, ValueError) as e:
            logger.error(f"Cannot encode value for cache key {key}: {e}")
            return result

        write = await self.store.set(key, data, ttl if ttl is not None else self.default_ttl)
        if write.error is not None:
            logger.warning(f"Cache write failed for {key}: {write.error.reason}")
        return result

    # Name used by request handlers
    cached = get_or_compute
