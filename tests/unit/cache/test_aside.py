"""Tests for cache-aside reads."""

from __future__ import annotations

from typing import Any

import orjson
import pytest

from storefront.cache.aside import CacheAside, ModelCodec
from storefront.cache.store import CacheStore
from storefront.core.pagination import Page
from tests.unit.fakes import FakeRedis, ready_store


class Counter:
    """Compute function that counts its calls."""

    def __init__(self, value: Any):
        self.value = value
        self.calls = 0

    async def __call__(self) -> Any:
        self.calls += 1
        return self.value


class TestGetOrCompute:
    """Test the read-through path."""

    @pytest.mark.asyncio
    async def test_miss_then_hit(self) -> None:
        """The second call is served from the cache with an identical value."""
        client = FakeRedis()
        cache = CacheAside(ready_store(client))
        compute = Counter({"id": 1, "price": 9.99, "name": "Yoga Mat"})

        first = await cache.get_or_compute("product:1", compute, ttl=900)
        second = await cache.get_or_compute("product:1", compute, ttl=900)

        assert first == second == {"id": 1, "price": 9.99, "name": "Yoga Mat"}
        assert compute.calls == 1
        assert client.ttls["product:1"] == 900

    @pytest.mark.asyncio
    async def test_default_ttl(self) -> None:
        """Entries without an explicit TTL use the default."""
        client = FakeRedis()
        cache = CacheAside(ready_store(client), default_ttl=120)
        await cache.get_or_compute("k", Counter([1, 2]))
        assert client.ttls["k"] == 120

    @pytest.mark.asyncio
    async def test_model_codec_round_trip(self) -> None:
        """Pages survive the cache unchanged."""
        cache = CacheAside(ready_store())
        page = Page(items=[{"id": 3}, {"id": 2}], next_cursor=2, has_more=True, limit=2)
        compute = Counter(page)
        codec = ModelCodec(Page)

        await cache.get_or_compute("products:list:all:start:2", compute, codec=codec)
        cached = await cache.get_or_compute("products:list:all:start:2", compute, codec=codec)

        assert cached == page
        assert compute.calls == 1

    @pytest.mark.asyncio
    async def test_bypass_when_unavailable(self) -> None:
        """An unavailable store is never touched."""
        cache = CacheAside(CacheStore(None))
        compute = Counter({"id": 1})

        assert await cache.get_or_compute("product:1", compute) == {"id": 1}
        assert await cache.get_or_compute("product:1", compute) == {"id": 1}
        assert compute.calls == 2

    @pytest.mark.asyncio
    async def test_read_error_computes(self) -> None:
        """A failing read falls back to ``compute`` without raising."""
        client = FakeRedis()
        cache = CacheAside(ready_store(client))
        client.fail = True
        compute = Counter({"id": 1})

        assert await cache.get_or_compute("product:1", compute) == {"id": 1}
        assert compute.calls == 1

    @pytest.mark.asyncio
    async def test_write_error_still_returns(self) -> None:
        """A failed write is logged and the computed value returned."""

        class WriteFails(FakeRedis):
            async def set(self, key: str, value: bytes, ex: int | None = None) -> bool:
                raise ConnectionError("write refused")

        cache = CacheAside(ready_store(WriteFails()))
        assert await cache.get_or_compute("product:1", Counter({"id": 1})) == {"id": 1}

    @pytest.mark.asyncio
    async def test_undecodable_entry_is_a_miss(self) -> None:
        """Corrupt entries are recomputed and overwritten."""
        client = FakeRedis()
        client.data["product:1"] = b"{not json"
        cache = CacheAside(ready_store(client))
        compute = Counter({"id": 1})

        assert await cache.get_or_compute("product:1", compute) == {"id": 1}
        assert compute.calls == 1
        assert orjson.loads(client.data["product:1"]) == {"id": 1}

    @pytest.mark.asyncio
    async def test_none_not_stored(self) -> None:
        """Missing rows are not cached."""
        client = FakeRedis()
        cache = CacheAside(ready_store(client))
        compute = Counter(None)

        assert await cache.get_or_compute("product:404", compute) is None
        assert await cache.get_or_compute("product:404", compute) is None
        assert compute.calls == 2
        assert "product:404" not in client.data

    @pytest.mark.asyncio
    async def test_compute_errors_propagate(self) -> None:
        """Errors from ``compute`` are not swallowed."""
        cache = CacheAside(ready_store())

        async def broken() -> Any:
            raise RuntimeError("database down")

        with pytest.raises(RuntimeError, match="database down"):
            await cache.get_or_compute("product:1", broken)

    @pytest.mark.asyncio
    async def test_unencodable_value_returned(self) -> None:
        """Values the codec cannot encode are returned uncached."""
        client = FakeRedis()
        cache = CacheAside(ready_store(client))
        value = {"when": object()}

        assert await cache.get_or_compute("k", Counter(value)) is value
        assert "k" not in client.data
