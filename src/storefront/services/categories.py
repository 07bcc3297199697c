"""Category catalog operations.

A category detail view is the category row (cached under
``category:{id}``) plus one page of its products (cached in the products
list family, so product writes invalidate it). Category updates and deletes
also invalidate product entries, since product rows carry
``category_name`` and deleting a category cascades to its products.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from storefront.audit import AuditAction, AuditLog, AuditResource, RequestContext
from storefront.cache.aside import CacheAside
from storefront.cache.invalidation import InvalidationRouter
from storefront.cache.keys import CacheKeys, EntityType
from storefront.core.pagination import KeysetPager, Page
from storefront.errors import NoUpdateFields
from storefront.observability.metrics import record_category_operation
from storefront.persistence.repositories import (
    CATEGORY_UPDATE_FIELDS,
    CategoryRepository,
    ProductFilter,
    ProductRepository,
)
from storefront.services.products import ENTITY_TTL, LIST_TTL, PAGE_CODEC

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY_LIMIT = 10


class CategoryService:
    """Cached reads and audited writes for categories."""

    def __init__(
        self,
        repository: CategoryRepository,
        products: ProductRepository,
        cache: CacheAside,
        invalidation: InvalidationRouter,
        audit: AuditLog,
        *,
        list_ttl: int = LIST_TTL,
        entity_ttl: int = ENTITY_TTL,
    ):
        self.repository = repository
        self.cache = cache
        self.invalidation = invalidation
        self.audit = audit
        self.list_ttl = list_ttl
        self.entity_ttl = entity_ttl
        self.pager: KeysetPager[None] = KeysetPager(
            repository.fetch_page, default_limit=DEFAULT_CATEGORY_LIMIT
        )
        self.product_pager: KeysetPager[ProductFilter] = KeysetPager(
            products.fetch_page, default_limit=DEFAULT_CATEGORY_LIMIT
        )

    async def list_page(self, cursor: str | None, limit: str | None) -> Page:
        query = self.pager.query(None, cursor, limit)
        key = CacheKeys.list_page(EntityType.CATEGORY, None, query.before_id, query.limit)
        page = await self.cache.cached(key, lambda: self.pager.fetch(query), self.list_ttl, PAGE_CODEC)
        record_category_operation("list")
        return page

    async def get(self, category_id: int) -> dict[str, Any] | None:
        return await self.cache.cached(
            CacheKeys.entity(EntityType.CATEGORY, category_id),
            lambda: self.repository.get(category_id),
            self.entity_ttl,
        )

    async def get_with_products(
        self,
        category_id: int,
        cursor: str | None,
        limit: str | None,
    ) -> tuple[dict[str, Any], Page] | None:
        """A category plus one page of its products.

        The cursor is validated before the category is looked up.

        Raises:
            InvalidCursor: ``cursor`` is not a positive integer.
        """
        query = self.product_pager.query(ProductFilter(category_id=category_id), cursor, limit)

        category = await self.get(category_id)
        if category is None:
            return None

        key = CacheKeys.list_page(
            EntityType.PRODUCT, query.filter.descriptor(), query.before_id, query.limit
        )
        products = await self.cache.cached(
            key, lambda: self.product_pager.fetch(query), self.list_ttl, PAGE_CODEC
        )
        record_category_operation("read")
        return category, products

    async def create(
        self,
        name: str,
        description: str | None = None,
        context: RequestContext | None = None,
    ) -> dict[str, Any]:
        category = await self.repository.create(name=name, description=description)
        await self.invalidation.invalidate(EntityType.CATEGORY, category["id"], created=True)
        await self.audit.log(
            AuditAction.CREATE,
            AuditResource.CATEGORY,
            category["id"],
            new_values=category,
            context=context,
        )
        record_category_operation("create")
        logger.info(f"Category created: {category['id']}")
        return category

    async def update(
        self,
        category_id: int,
        fields: Mapping[str, Any],
        context: RequestContext | None = None,
    ) -> dict[str, Any] | None:
        """Apply a partial update; returns ``None`` if the category does not exist.

        Raises:
            NoUpdateFields: ``fields`` names no updatable column.
        """
        if not any(name in CATEGORY_UPDATE_FIELDS for name in fields):
            raise NoUpdateFields()

        old = await self.repository.get(category_id, force_primary=True)
        if old is None:
            return None

        updated = await self.repository.update(category_id, fields)
        if updated is None:
            return None

        await self.invalidation.invalidate(EntityType.CATEGORY, category_id)
        await self.audit.log(
            AuditAction.UPDATE,
            AuditResource.CATEGORY,
            category_id,
            old_values=old,
            new_values=updated,
            context=context,
        )
        record_category_operation("update")
        logger.info(f"Category updated: {category_id}")
        return updated

    async def delete(
        self, category_id: int, context: RequestContext | None = None
    ) -> dict[str, Any] | None:
        """Delete a category and, by cascade, its products."""
        deleted = await self.repository.delete(category_id)
        if deleted is None:
            return None

        await self.invalidation.invalidate(EntityType.CATEGORY, category_id)
        await self.audit.log(
            AuditAction.DELETE,
            AuditResource.CATEGORY,
            category_id,
            old_values=deleted,
            context=context,
        )
        record_category_operation("delete")
        logger.info(f"Category deleted: {category_id}")
        return deleted
