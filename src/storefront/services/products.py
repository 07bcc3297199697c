"""Product catalog operations.

Reads go through the cache: list pages under
``products:list:{filter}:{cursor|start}:{limit}`` and single products under
``product:{id}``. Writes commit on the primary, then invalidate the product
families and the parent category, then record an audit event.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Mapping

from storefront.audit import AuditAction, AuditLog, AuditResource, RequestContext
from storefront.cache.aside import CacheAside, ModelCodec
from storefront.cache.invalidation import InvalidationRouter, ParentRef
from storefront.cache.keys import CacheKeys, EntityType
from storefront.core.pagination import KeysetPager, Page
from storefront.errors import NoUpdateFields
from storefront.observability.metrics import record_product_operation
from storefront.persistence.repositories import PRODUCT_UPDATE_FIELDS, ProductFilter, ProductRepository

logger = logging.getLogger(__name__)

PAGE_CODEC = ModelCodec(Page)

DEFAULT_PRODUCT_LIMIT = 20
LIST_TTL = 300
ENTITY_TTL = 900


class ProductService:
    """Cached reads and audited writes for products."""

    def __init__(
        self,
        repository: ProductRepository,
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
        self.pager: KeysetPager[ProductFilter] = KeysetPager(
            repository.fetch_page, default_limit=DEFAULT_PRODUCT_LIMIT
        )

    async def list_page(
        self,
        category_id: int | None,
        cursor: str | None,
        limit: str | None,
    ) -> Page:
        """One page of products, newest first, optionally within a category.

        Raises:
            InvalidCursor: ``cursor`` is not a positive integer.
        """
        query = self.pager.query(ProductFilter(category_id=category_id), cursor, limit)
        key = CacheKeys.list_page(
            EntityType.PRODUCT, query.filter.descriptor(), query.before_id, query.limit
        )
        page = await self.cache.cached(key, lambda: self.pager.fetch(query), self.list_ttl, PAGE_CODEC)
        record_product_operation("list")
        logger.debug(
            f"Fetched products page key={key} count={len(page.items)} has_more={page.has_more}"
        )
        return page

    async def get(self, product_id: int) -> dict[str, Any] | None:
        product = await self.cache.cached(
            CacheKeys.entity(EntityType.PRODUCT, product_id),
            lambda: self.repository.get(product_id),
            self.entity_ttl,
        )
        if product is not None:
            record_product_operation("read")
        return product

    async def create(
        self,
        name: str,
        price: Decimal | float,
        category_id: int,
        description: str | None = None,
        stock: int = 0,
        context: RequestContext | None = None,
    ) -> dict[str, Any]:
        """Create a product.

        Raises:
            CategoryNotFound: ``category_id`` does not reference a category.
        """
        product = await self.repository.create(
            name=name,
            price=price,
            category_id=category_id,
            description=description,
            stock=stock,
        )
        await self.invalidation.invalidate(
            EntityType.PRODUCT,
            product["id"],
            [ParentRef(EntityType.CATEGORY, category_id)],
            created=True,
        )
        await self.audit.log(
            AuditAction.CREATE,
            AuditResource.PRODUCT,
            product["id"],
            new_values=product,
            context=context,
        )
        record_product_operation("create")
        logger.info(f"Product created: {product['id']}")
        return product

    async def update(
        self,
        product_id: int,
        fields: Mapping[str, Any],
        context: RequestContext | None = None,
    ) -> dict[str, Any] | None:
        """Apply a partial update; returns ``None`` if the product does not exist.

        Raises:
            NoUpdateFields: ``fields`` names no updatable column.
        """
        if not any(name in PRODUCT_UPDATE_FIELDS for name in fields):
            raise NoUpdateFields()

        old = await self.repository.get(product_id, force_primary=True)
        if old is None:
            return None

        updated = await self.repository.update(product_id, fields, category_name=old.get("category_name"))
        if updated is None:
            return None

        await self.invalidation.invalidate(
            EntityType.PRODUCT,
            product_id,
            [ParentRef(EntityType.CATEGORY, updated["category_id"])],
        )
        await self.audit.log(
            AuditAction.UPDATE,
            AuditResource.PRODUCT,
            product_id,
            old_values=old,
            new_values=updated,
            context=context,
        )
        record_product_operation("update")
        logger.info(f"Product updated: {product_id}")
        return updated

    async def delete(
        self, product_id: int, context: RequestContext | None = None
    ) -> dict[str, Any] | None:
        """Delete a product; returns the deleted row or ``None`` if it did not exist."""
        deleted = await self.repository.delete(product_id)
        if deleted is None:
            return None

        await self.invalidation.invalidate(
            EntityType.PRODUCT,
            product_id,
            [ParentRef(EntityType.CATEGORY, deleted["category_id"])],
        )
        await self.audit.log(
            AuditAction.DELETE,
            AuditResource.PRODUCT,
            product_id,
            old_values=deleted,
            context=context,
        )
        record_product_operation("delete")
        logger.info(f"Product deleted: {product_id}")
        return deleted
