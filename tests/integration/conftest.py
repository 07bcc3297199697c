"""Integration test fixtures using Docker.

Runs PostgreSQL and Redis containers for the session and builds the real
service stack (Database, CacheStore, ServiceContainer) against them.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Iterator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from storefront.api.app import create_app
from storefront.api.deps import ServiceContainer
from storefront.cache.store import CacheStore
from storefront.config import Settings
from storefront.persistence.db import Database
from tests.integration.docker_utils import (
    DockerService,
    get_docker_client,
    remove_stale_containers,
    run_container,
)


@pytest.fixture(scope="session")
def docker_client():
    """Create a Docker client or skip if Docker is unavailable."""
    try:
        client = get_docker_client()
        client.ping()
    except Exception as exc:
        pytest.skip(f"Docker not available: {exc}")
    remove_stale_containers(client)
    yield client
    client.close()


@pytest.fixture(scope="session")
def postgres_container(docker_client) -> Iterator[DockerService]:
    """Start PostgreSQL container for the test session."""
    env = {
        "POSTGRES_USER": "storefront",
        "POSTGRES_PASSWORD": "storefront",
        "POSTGRES_DB": "storefront",
    }
    with run_container(
        docker_client, "postgres:16-alpine", env=env, ports={"5432/tcp": None}
    ) as postgres:
        yield postgres


@pytest.fixture(scope="session")
def redis_container(docker_client) -> Iterator[DockerService]:
    """Start Redis container for the test session."""
    with run_container(docker_client, "redis:7-alpine", ports={"6379/tcp": None}) as redis:
        yield redis


@pytest.fixture(scope="session")
def database_url(postgres_container: DockerService) -> str:
    return postgres_container.url(
        "postgresql+asyncpg", 5432, "/storefront", userinfo="storefront:storefront"
    )


@pytest.fixture(scope="session")
def redis_url(redis_container: DockerService) -> str:
    return redis_container.url("redis", 6379, "/0")


@pytest.fixture
def settings(database_url: str, redis_url: str) -> Settings:
    return Settings(
        database_url=database_url,
        redis_url=redis_url,
        enable_rate_limiting=False,
        enable_hsts=False,
    )


@pytest_asyncio.fixture
async def database(settings: Settings) -> AsyncIterator[Database]:
    """An open Database with a fresh schema."""
    from storefront.persistence.tables import Base

    db = Database.from_settings(settings)
    await db.open()
    await _wait_for_database(db)
    async with db.primary.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await db.create_schema()

    yield db

    await db.close()


@pytest_asyncio.fixture
async def cache_store(settings: Settings) -> AsyncIterator[CacheStore]:
    """A connected CacheStore over an empty Redis database."""
    store = CacheStore.from_url(settings.redis_url, operation_timeout=2.0)
    assert store.client is not None
    await _wait_for_redis(store.client)
    await store.open()
    await store.client.flushdb()

    yield store

    await store.close()


@pytest_asyncio.fixture
async def container(
    database: Database, cache_store: CacheStore, settings: Settings
) -> ServiceContainer:
    return ServiceContainer.build(database, cache_store, settings)


@pytest_asyncio.fixture
async def test_client(
    container: ServiceContainer, settings: Settings
) -> AsyncIterator[AsyncClient]:
    """HTTP client for an app wired to the real database and Redis."""
    app = create_app(container, config=settings)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client


async def _wait_for_database(db: Database, timeout: float = 30.0) -> None:
    """Wait for PostgreSQL to accept connections."""
    deadline = time.monotonic() + timeout
    while not await db.health_check():
        if time.monotonic() >= deadline:
            raise TimeoutError("PostgreSQL did not become ready")
        await asyncio.sleep(0.5)


async def _wait_for_redis(client, timeout: float = 30.0) -> None:
    """Wait for Redis to accept connections."""
    deadline = time.monotonic() + timeout
    while True:
        try:
            await client.ping()
            return
        except Exception:
            if time.monotonic() >= deadline:
                raise
            await asyncio.sleep(0.5)
