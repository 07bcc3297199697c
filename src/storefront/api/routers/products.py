"""Product API router.

- GET    /api/products          - List products (cursor paginated, optional category filter)
- POST   /api/products          - Create product
- GET    /api/products/{id}     - Get product
- PUT    /api/products/{id}     - Partially update product
- DELETE /api/products/{id}     - Delete product
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query

from storefront.api.deps import EntityId, ProductServiceDep, RequestContextDep, RequestIdDep
from storefront.core.pagination import MAX_CURSOR
from storefront.api.errors import NotFoundError
from storefront.api.responses import message, paged, success
from storefront.api.schemas import ProductCreate, ProductUpdate

router = APIRouter(prefix="/api/products", tags=["Products"])


@router.get("")
async def list_products(
    service: ProductServiceDep,
    request_id: RequestIdDep,
    category_id: int | None = Query(None, ge=1, le=MAX_CURSOR, description="Only products of this category"),
    cursor: str | None = Query(None, description="Id of the last product seen"),
    limit: str | None = Query(None, description="Page size, clamped to 1-100 (default 20)"),
) -> dict[str, Any]:
    """List products, newest first.

    Pass the returned ``pagination.cursor`` as ``cursor`` to fetch the next
    page; ``hasMore`` is false on the last page.
    """
    page = await service.list_page(category_id, cursor, limit)
    return paged(page, request_id)


@router.get("/{id}")
async def get_product(
    id: EntityId,
    service: ProductServiceDep,
    request_id: RequestIdDep,
) -> dict[str, Any]:
    product = await service.get(id)
    if product is None:
        raise NotFoundError("Product")
    return success(product, request_id)


@router.post("", status_code=201)
async def create_product(
    body: ProductCreate,
    service: ProductServiceDep,
    context: RequestContextDep,
    request_id: RequestIdDep,
) -> dict[str, Any]:
    product = await service.create(
        name=body.name,
        description=body.description,
        price=body.price,
        category_id=body.category_id,
        stock=body.stock,
        context=context,
    )
    return success(product, request_id)


@router.put("/{id}")
async def update_product(
    id: EntityId,
    body: ProductUpdate,
    service: ProductServiceDep,
    context: RequestContextDep,
    request_id: RequestIdDep,
) -> dict[str, Any]:
    product = await service.update(id, body.changes(), context=context)
    if product is None:
        raise NotFoundError("Product")
    return success(product, request_id)


@router.delete("/{id}")
async def delete_product(
    id: EntityId,
    service: ProductServiceDep,
    context: RequestContextDep,
    request_id: RequestIdDep,
) -> dict[str, Any]:
    deleted = await service.delete(id, context=context)
    if deleted is None:
        raise NotFoundError("Product")
    return message("Product deleted successfully", request_id)
