"""Repositories for categories and products.

Statements are SQLAlchemy Core constructs executed through ``Database``, so
each one is routed by ``QueryRouter``: selects go to the replica when one is
configured, inserts/updates/deletes go to the primary.

Rows are returned as JSON-native dicts (``Decimal`` -> ``float``,
``datetime`` -> ISO string). A value read back from the cache is then
indistinguishable from one read from the database.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from ipaddress import IPv4Address, IPv4Interface, IPv6Address, IPv6Interface
from typing import Any, Generic, Mapping, TypeVar

from sqlalchemy import delete, func, insert, select, update

from storefront.core.pagination import KeysetQuery, keyset_select
from storefront.errors import NoUpdateFields
from storefront.persistence.db import Database
from storefront.persistence.tables import Base, CategoryTable, ProductTable

TableT = TypeVar("TableT", bound=Base)

# Columns a partial update may touch
CATEGORY_UPDATE_FIELDS = frozenset({"name", "description"})
PRODUCT_UPDATE_FIELDS = frozenset({"name", "description", "price", "stock"})


class CategoryNotFound(LookupError):
    """Referenced category does not exist."""

    def __init__(self, category_id: int):
        self.category_id = category_id
        super().__init__(f"Category {category_id} does not exist")


def _json_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (IPv4Address, IPv6Address, IPv4Interface, IPv6Interface)):
        return str(value)
    return value


def row_to_dict(row: Mapping[str, Any]) -> dict[str, Any]:
    """Convert a result row into a JSON-native dict."""
    return {key: _json_value(value) for key, value in row.items()}


def _whitelisted(fields: Mapping[str, Any], allowed: frozenset[str]) -> dict[str, Any]:
    return {name: value for name, value in fields.items() if name in allowed}


@dataclass(frozen=True)
class ProductFilter:
    """Product listing filter."""

    category_id: int | None = None

    def descriptor(self) -> dict[str, object]:
        """Cache key descriptor; ``{}`` for the unfiltered listing."""
        if self.category_id is None:
            return {}
        return {"category": self.category_id}


class BaseRepository(Generic[TableT]):
    """Base repository with common CRUD operations."""

    table: type[TableT]

    def __init__(self, db: Database):
        self.db = db

    async def exists(self, entity_id: int) -> bool:
        stmt = select(self.table.id).where(self.table.id == entity_id)  # type: ignore[attr-defined]
        return await self.db.fetch_one(stmt) is not None

    async def delete(self, entity_id: int) -> dict[str, Any] | None:
        """Delete a row, returning it, or ``None`` if it did not exist."""
        stmt = (
            delete(self.table)
            .where(self.table.id == entity_id)  # type: ignore[attr-defined]
            .returning(*self.table.__table__.columns)
        )
        row = await self.db.fetch_one(stmt)
        return row_to_dict(row) if row is not None else None


class CategoryRepository(BaseRepository[CategoryTable]):
    """Repository for category rows."""

    table = CategoryTable

    async def fetch_page(self, query: KeysetQuery[Any]) -> list[dict[str, Any]]:
        stmt = keyset_select(select(*CategoryTable.__table__.columns), CategoryTable.id, query)
        return [row_to_dict(row) for row in await self.db.fetch_all(stmt)]

    async def get(self, category_id: int, *, force_primary: bool = False) -> dict[str, Any] | None:
        stmt = select(*CategoryTable.__table__.columns).where(CategoryTable.id == category_id)
        row = await self.db.fetch_one(stmt, force_primary=force_primary)
        return row_to_dict(row) if row is not None else None

    async def create(self, name: str, description: str | None = None) -> dict[str, Any]:
        stmt = (
            insert(CategoryTable)
            .values(name=name, description=description)
            .returning(*CategoryTable.__table__.columns)
        )
        row = await self.db.fetch_one(stmt)
        assert row is not None
        return row_to_dict(row)

    async def update(self, category_id: int, fields: Mapping[str, Any]) -> dict[str, Any] | None:
        """Apply a partial update.

        Only ``name`` and ``description`` are written; other keys are ignored.
        Returns the updated row, or ``None`` if the category does not exist.
        """
        values = _whitelisted(fields, CATEGORY_UPDATE_FIELDS)
        if not values:
            raise NoUpdateFields()
        stmt = (
            update(CategoryTable)
            .where(CategoryTable.id == category_id)
            .values(**values, updated_at=func.now())
            .returning(*CategoryTable.__table__.columns)
        )
        row = await self.db.fetch_one(stmt)
        return row_to_dict(row) if row is not None else None


class ProductRepository(BaseRepository[ProductTable]):
    """Repository for product rows.

    Product reads join the category to include ``category_name``.
    """

    table = ProductTable

    @staticmethod
    def _select() -> Any:
        return select(
            *ProductTable.__table__.columns,
            CategoryTable.name.label("category_name"),
        ).outerjoin(CategoryTable, ProductTable.category_id == CategoryTable.id)

    async def fetch_page(self, query: KeysetQuery[ProductFilter]) -> list[dict[str, Any]]:
        stmt = self._select()
        if query.filter.category_id is not None:
            stmt = stmt.where(ProductTable.category_id == query.filter.category_id)
        stmt = keyset_select(stmt, ProductTable.id, query)
        return [row_to_dict(row) for row in await self.db.fetch_all(stmt)]

    async def get(self, product_id: int, *, force_primary: bool = False) -> dict[str, Any] | None:
        stmt = self._select().where(ProductTable.id == product_id)
        row = await self.db.fetch_one(stmt, force_primary=force_primary)
        return row_to_dict(row) if row is not None else None

    async def create(
        self,
        name: str,
        price: Decimal | float,
        category_id: int,
        description: str | None = None,
        stock: int = 0,
    ) -> dict[str, Any]:
        """Insert a product after checking its category in the same transaction.

        Raises:
            CategoryNotFound: ``category_id`` does not reference a category.
        """
        async with self.db.transaction() as tx:
            category = await tx.fetch_one(
                select(CategoryTable.id, CategoryTable.name).where(CategoryTable.id == category_id)
            )
            if category is None:
                raise CategoryNotFound(category_id)
            row = await tx.fetch_one(
                insert(ProductTable)
                .values(
                    name=name,
                    description=description,
                    price=price,
                    category_id=category_id,
                    stock=stock,
                )
                .returning(*ProductTable.__table__.columns)
            )
        assert row is not None
        product = row_to_dict(row)
        product["category_name"] = category["name"]
        return product

    async def update(
        self,
        product_id: int,
        fields: Mapping[str, Any],
        category_name: str | None = None,
    ) -> dict[str, Any] | None:
        """Apply a partial update.

        Only ``name``, ``description``, ``price`` and ``stock`` are written;
        the category of a product cannot be changed. Returns the updated row,
        or ``None`` if the product does not exist.
        """
        values = _whitelisted(fields, PRODUCT_UPDATE_FIELDS)
        if not values:
            raise NoUpdateFields()
        stmt = (
            update(ProductTable)
            .where(ProductTable.id == product_id)
            .values(**values, updated_at=func.now())
            .returning(*ProductTable.__table__.columns)
        )
        row = await self.db.fetch_one(stmt)
        if row is None:
            return None
        product = row_to_dict(row)
        product["category_name"] = category_name
        return product
