"""Cache key schema for the storefront API.

List pages: {collection}:{operation}:{filter}:{cursor|start}:{limit}
Entities:   {entity}:{id}

Where:
- collection: plural entity name ("products", "categories")
- entity: singular entity name ("product", "category")
- filter: "all" or a sorted, comma-joined list of name=value pairs

Every list key of a collection starts with "{collection}:" so a single
"{collection}:*" sweep removes the whole family.
"""

from __future__ import annotations

from enum import Enum
from typing import Mapping


class EntityType(str, Enum):
    """Cached entity families."""

    PRODUCT = "product"
    CATEGORY = "category"

    @property
    def collection(self) -> str:
        return _COLLECTIONS[self]


_COLLECTIONS = {EntityType.PRODUCT: "products", EntityType.CATEGORY: "categories"}


class CacheKeys:
    """Cache key generator following a consistent naming convention."""

    ALL = "all"
    START = "start"

    @classmethod
    def filter_descriptor(cls, filters: Mapping[str, object] | None) -> str:
        """Deterministic descriptor for a filter.

        ``None`` values are dropped and names are sorted, so equal filters
        always give equal descriptors.

        Examples:
            {} -> "all"
            {"category_id": 3} -> "category_id=3"
        """
        if not filters:
            return cls.ALL
        parts = [f"{name}={value}" for name, value in sorted(filters.items()) if value is not None]
        return ",".join(parts) if parts else cls.ALL

    @classmethod
    def list_page(
        cls,
        entity_type: EntityType,
        filters: Mapping[str, object] | None,
        cursor: int | None,
        limit: int,
        operation: str = "list",
    ) -> str:
        """Key for one page of a collection listing."""
        position = str(cursor) if cursor is not None else cls.START
        return (
            f"{entity_type.collection}:{operation}:{cls.filter_descriptor(filters)}:"
            f"{position}:{limit}"
        )

    @classmethod
    def entity(cls, entity_type: EntityType, entity_id: int) -> str:
        """Key for a single entity."""
        return f"{entity_type.value}:{entity_id}"

    @classmethod
    def collection_pattern(cls, entity_type: EntityType) -> str:
        """Pattern matching every list page of a collection.

        Use with SCAN + DEL for cache invalidation.
        """
        return f"{entity_type.collection}:*"

    @classmethod
    def entity_pattern(cls, entity_type: EntityType) -> str:
        """Pattern matching every single-entity key of a type."""
        return f"{entity_type.value}:*"

    @classmethod
    def parse_key(cls, key: str) -> dict[str, str] | None:
        """Parse a list-page key into its components.

        Returns None if the key doesn't match the list-page format.
        """
        parts = key.split(":")
        if len(parts) != 5:
            return None
        return {
            "collection": parts[0],
            "operation": parts[1],
            "filter": parts[2],
            "cursor": parts[3],
            "limit": parts[4],
        }
