"""Success envelopes for the storefront API.

    {"success": true, "data": ..., "requestId": "..."}

List endpoints add ``pagination: {cursor, hasMore, limit}``.
"""

from __future__ import annotations

from typing import Any

from storefront.core.pagination import Page


def pagination_meta(page: Page) -> dict[str, Any]:
    return {"cursor": page.next_cursor, "hasMore": page.has_more, "limit": page.limit}


def success(data: Any, request_id: str | None, **extra: Any) -> dict[str, Any]:
    body: dict[str, Any] = {"success": True, "data": data}
    body.update(extra)
    body["requestId"] = request_id
    return body


def paged(page: Page, request_id: str | None) -> dict[str, Any]:
    return success(page.items, request_id, pagination=pagination_meta(page))


def message(text: str, request_id: str | None) -> dict[str, Any]:
    return {"success": True, "message": text, "requestId": request_id}
