"""Integration tests for repositories and query routing."""

from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from storefront.core.pagination import KeysetQuery
from storefront.errors import NoUpdateFields
from storefront.persistence.db import Database
from storefront.persistence.repositories import (
    CategoryNotFound,
    CategoryRepository,
    ProductFilter,
    ProductRepository,
)

pytestmark = pytest.mark.integration


class TestCategoryRepository:
    """Category rows in PostgreSQL."""

    @pytest.mark.asyncio
    async def test_create_and_update(self, database: Database) -> None:
        """Updates touch only the given fields and bump ``updated_at``."""
        repo = CategoryRepository(database)
        created = await repo.create("Books", "Paper")

        updated = await repo.update(created["id"], {"description": "Paper and ebooks"})

        assert updated is not None
        assert updated["name"] == "Books"
        assert updated["description"] == "Paper and ebooks"
        assert updated["updated_at"] >= created["updated_at"]
        assert await repo.update(9999, {"name": "Nope"}) is None

    @pytest.mark.asyncio
    async def test_update_without_fields(self, database: Database) -> None:
        """Nothing updatable means no statement."""
        with pytest.raises(NoUpdateFields):
            await CategoryRepository(database).update(1, {"id": 5})


class TestProductRepository:
    """Product rows in PostgreSQL."""

    @pytest.mark.asyncio
    async def test_create_checks_category(self, database: Database) -> None:
        """Creating in a missing category raises CategoryNotFound."""
        with pytest.raises(CategoryNotFound):
            await ProductRepository(database).create("Ghost", Decimal("1.00"), 42)

    @pytest.mark.asyncio
    async def test_price_is_json_native(self, database: Database) -> None:
        """NUMERIC prices come back as floats."""
        category = await CategoryRepository(database).create("Sports")
        product = await ProductRepository(database).create(
            "Yoga Mat", Decimal("24.99"), category["id"], stock=3
        )

        fetched = await ProductRepository(database).get(product["id"])

        assert fetched is not None
        assert fetched["price"] == 24.99
        assert fetched["category_name"] == "Sports"
        assert isinstance(fetched["created_at"], str)

    @pytest.mark.asyncio
    async def test_check_constraint(self, database: Database) -> None:
        """Negative stock is rejected by the database."""
        category = await CategoryRepository(database).create("Sports")
        product = await ProductRepository(database).create("Ball", Decimal("5"), category["id"], stock=1)

        with pytest.raises(IntegrityError):
            await ProductRepository(database).update(product["id"], {"stock": -1})

    @pytest.mark.asyncio
    async def test_keyset_page(self, database: Database) -> None:
        """Pages come newest first with one extra row."""
        category = await CategoryRepository(database).create("Sports")
        repo = ProductRepository(database)
        ids = [
            (await repo.create(f"Ball {i}", Decimal("5"), category["id"], stock=1))["id"]
            for i in range(5)
        ]

        rows = await repo.fetch_page(
            KeysetQuery(filter=ProductFilter(category_id=category["id"]), before_id=ids[3], limit=2)
        )

        assert [row["id"] for row in rows] == [ids[2], ids[1], ids[0]]


class TestQueryRouting:
    """Read/write routing with a replica URL."""

    @pytest.mark.asyncio
    async def test_replica_serves_reads(self, database: Database) -> None:
        """Reads work through the replica pool; writes through the primary."""
        db = Database(database.primary_url, replica_url=database.primary_url)
        await db.open()
        try:
            assert db.router.has_replica
            category = await CategoryRepository(db).create("Routed")
            assert db.router.route("SELECT 1").name == "replica"
            assert (await CategoryRepository(db).get(category["id"]))["name"] == "Routed"
            stats = db.pool_stats()
            assert stats["replica"] is not None
        finally:
            await db.close()
