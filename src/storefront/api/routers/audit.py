"""Audit log API router.

- GET /api/audit-logs - List audit events, newest first (offset paginated)
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Query

from storefront.api.deps import AuditLogDep, RequestIdDep
from storefront.api.responses import success
from storefront.audit import AuditLogFilter
from storefront.core.pagination import MAX_CURSOR

router = APIRouter(prefix="/api/audit-logs", tags=["Audit"])


@router.get("")
async def list_audit_logs(
    audit: AuditLogDep,
    request_id: RequestIdDep,
    action: str | None = Query(None, description="CREATE, UPDATE or DELETE"),
    resource_type: str | None = Query(None, description="product or category"),
    resource_id: int | None = Query(None, ge=1, le=MAX_CURSOR),
    status: str | None = Query(None, description="success or failure"),
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> dict[str, Any]:
    filters = AuditLogFilter(
        action=action.upper() if action else None,
        resource_type=resource_type,
        resource_id=resource_id,
        status=status,
        start_date=start_date,
        end_date=end_date,
    )
    logs = await audit.list_logs(filters, limit=limit, offset=offset)
    return success(logs, request_id, pagination={"limit": limit, "offset": offset})
