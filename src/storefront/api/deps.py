"""Shared FastAPI dependencies for storefront routers.

Provides:
- The service container owned by the application lifespan
- Typed dependencies for the catalog services and the audit log
- Request metadata for audit events
- Positive integer path ids
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Path, Request

from storefront.audit import AuditLog, RequestContext
from storefront.cache.aside import CacheAside
from storefront.cache.invalidation import InvalidationRouter
from storefront.cache.store import CacheStore
from storefront.config import Settings
from storefront.core.pagination import MAX_CURSOR
from storefront.persistence.db import Database
from storefront.persistence.repositories import CategoryRepository, ProductRepository
from storefront.services.categories import CategoryService
from storefront.services.products import ProductService


@dataclass
class ServiceContainer:
    """Process-wide handles and the services built on them."""

    db: Database
    cache_store: CacheStore
    audit: AuditLog
    products: ProductService
    categories: CategoryService

    @classmethod
    def build(cls, db: Database, cache_store: CacheStore, settings: Settings) -> "ServiceContainer":
        cache = CacheAside(cache_store, default_ttl=settings.cache_list_ttl)
        invalidation = InvalidationRouter(cache_store)
        audit = AuditLog(db)
        product_repository = ProductRepository(db)
        return cls(
            db=db,
            cache_store=cache_store,
            audit=audit,
            products=ProductService(
                product_repository,
                cache,
                invalidation,
                audit,
                list_ttl=settings.cache_list_ttl,
                entity_ttl=settings.cache_entity_ttl,
            ),
            categories=CategoryService(
                CategoryRepository(db),
                product_repository,
                cache,
                invalidation,
                audit,
                list_ttl=settings.cache_list_ttl,
                entity_ttl=settings.cache_entity_ttl,
            ),
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "ServiceContainer":
        cache_store = CacheStore.from_url(
            settings.redis_url,
            operation_timeout=settings.cache_operation_timeout,
            retry_after=settings.cache_retry_after,
        )
        return cls.build(Database.from_settings(settings), cache_store, settings)

    async def open(self) -> None:
        await self.db.open()
        await self.cache_store.open()

    async def close(self) -> None:
        await self.cache_store.close()
        await self.db.close()


def get_container(request: Request) -> ServiceContainer:
    """FastAPI dependency returning the lifespan-owned container."""
    return request.app.state.container  # type: ignore[no-any-return]


def get_product_service(
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> ProductService:
    return container.products


def get_category_service(
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> CategoryService:
    return container.categories


def get_audit_log(
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> AuditLog:
    return container.audit


def request_context(request: Request) -> RequestContext:
    """Request metadata recorded with audit events."""
    return RequestContext(
        client_ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
        request_id=getattr(request.state, "request_id", None),
    )


def request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


ContainerDep = Annotated[ServiceContainer, Depends(get_container)]
ProductServiceDep = Annotated[ProductService, Depends(get_product_service)]
CategoryServiceDep = Annotated[CategoryService, Depends(get_category_service)]
AuditLogDep = Annotated[AuditLog, Depends(get_audit_log)]
RequestContextDep = Annotated[RequestContext, Depends(request_context)]
RequestIdDep = Annotated[str | None, Depends(request_id)]

EntityId = Annotated[int, Path(ge=1, le=MAX_CURSOR, description="Positive integer id")]
