"""Category API router.

- GET    /api/categories        - List categories (cursor paginated)
- POST   /api/categories        - Create category
- GET    /api/categories/{id}   - Get category with a page of its products
- PUT    /api/categories/{id}   - Partially update category
- DELETE /api/categories/{id}   - Delete category and its products
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query

from storefront.api.deps import CategoryServiceDep, EntityId, RequestContextDep, RequestIdDep
from storefront.api.errors import NotFoundError
from storefront.api.responses import message, paged, pagination_meta, success
from storefront.api.schemas import CategoryCreate, CategoryUpdate

router = APIRouter(prefix="/api/categories", tags=["Categories"])


@router.get("")
async def list_categories(
    service: CategoryServiceDep,
    request_id: RequestIdDep,
    cursor: str | None = Query(None, description="Id of the last category seen"),
    limit: str | None = Query(None, description="Page size, clamped to 1-100 (default 10)"),
) -> dict[str, Any]:
    page = await service.list_page(cursor, limit)
    return paged(page, request_id)


@router.get("/{id}")
async def get_category(
    id: EntityId,
    service: CategoryServiceDep,
    request_id: RequestIdDep,
    cursor: str | None = Query(None, description="Id of the last product seen"),
    limit: str | None = Query(None, description="Products page size, clamped to 1-100 (default 10)"),
) -> dict[str, Any]:
    """Get a category and one page of its products, newest first."""
    result = await service.get_with_products(id, cursor, limit)
    if result is None:
        raise NotFoundError("Category")
    category, products = result
    data = {
        **category,
        "products": products.items,
        "productsPagination": pagination_meta(products),
    }
    return success(data, request_id)


@router.post("", status_code=201)
async def create_category(
    body: CategoryCreate,
    service: CategoryServiceDep,
    context: RequestContextDep,
    request_id: RequestIdDep,
) -> dict[str, Any]:
    category = await service.create(body.name, body.description, context=context)
    return success(category, request_id)


@router.put("/{id}")
async def update_category(
    id: EntityId,
    body: CategoryUpdate,
    service: CategoryServiceDep,
    context: RequestContextDep,
    request_id: RequestIdDep,
) -> dict[str, Any]:
    category = await service.update(id, body.changes(), context=context)
    if category is None:
        raise NotFoundError("Category")
    return success(category, request_id)


@router.delete("/{id}")
async def delete_category(
    id: EntityId,
    service: CategoryServiceDep,
    context: RequestContextDep,
    request_id: RequestIdDep,
) -> dict[str, Any]:
    deleted = await service.delete(id, context=context)
    if deleted is None:
        raise NotFoundError("Category")
    return message("Category deleted successfully", request_id)
