"""Audit logging for catalog changes.

Every create, update and delete of a product or category is recorded:
- In the ``audit_logs`` table (queryable through ``/api/audit-logs``)
- On the dedicated ``storefront.audit`` logger as one JSON line

Audit logs are append-only. Recording is best effort: a failed audit insert
is logged and never fails the request that triggered it.

Example:
    from storefront.audit import AuditAction, AuditLog, AuditResource

    await audit_log.log(
        action=AuditAction.UPDATE,
        resource=AuditResource.PRODUCT,
        resource_id=42,
        old_values={"price": 10.0},
        new_values={"price": 12.5},
        context=RequestContext(client_ip="10.0.0.1", request_id="abc"),
    )
"""

from __future__ import annotations

import ipaddress
import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, insert, select

from storefront.persistence.repositories import row_to_dict
from storefront.persistence.tables import AuditLogTable

if TYPE_CHECKING:
    from storefront.persistence.db import Database

# Dedicated audit logger - separate from application logs
audit_logger = logging.getLogger("storefront.audit")
logger = logging.getLogger(__name__)


class AuditAction(str, Enum):
    """Type of auditable action."""

    CREATE = "CREATE"
    READ = "READ"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class AuditResource(str, Enum):
    """Type of resource being changed."""

    PRODUCT = "product"
    CATEGORY = "category"


class AuditStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class RequestContext:
    """Who made the request, as far as the HTTP layer knows."""

    client_ip: str | None = None
    user_agent: str | None = None
    request_id: str | None = None


@dataclass
class AuditEvent:
    """Structured audit event."""

    action: AuditAction
    resource: AuditResource
    resource_id: int | None = None
    old_values: dict[str, Any] | None = None
    new_values: dict[str, Any] | None = None
    context: RequestContext = field(default_factory=RequestContext)
    status: AuditStatus = AuditStatus.SUCCESS
    error_message: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_json(self) -> str:
        """Convert to JSON string for logging."""
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        data["action"] = self.action.value
        data["resource"] = self.resource.value
        data["status"] = self.status.value
        return json.dumps(data, default=str)


@dataclass(frozen=True)
class AuditLogFilter:
    """Filters for listing audit logs; ``None`` fields are not applied."""

    action: str | None = None
    resource_type: str | None = None
    resource_id: int | None = None
    status: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None


def _valid_ip(value: str | None) -> str | None:
    """Return ``value`` if it is an IP address literal, else ``None``."""
    if not value:
        return None
    try:
        return str(ipaddress.ip_address(value))
    except ValueError:
        return None


class AuditLog:
    """Audit logging service backed by the ``audit_logs`` table."""

    def __init__(self, db: Database, logger: logging.Logger | None = None):
        self.db = db
        self.logger = logger or audit_logger

    async def log(
        self,
        action: AuditAction,
        resource: AuditResource,
        resource_id: int | None = None,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
        context: RequestContext | None = None,
        status: AuditStatus = AuditStatus.SUCCESS,
        error_message: str | None = None,
    ) -> AuditEvent:
        """Record an audit event.

        Args:
            action: The action performed
            resource: The type of resource changed
            resource_id: Id of the changed row
            old_values: Row before the change (update, delete)
            new_values: Row after the change (create, update)
            context: Request metadata
            status: Whether the action succeeded
            error_message: Error message if the action failed

        Returns:
            The recorded AuditEvent
        """
        event = AuditEvent(
            action=action,
            resource=resource,
            resource_id=resource_id,
            old_values=old_values,
            new_values=new_values,
            context=context or RequestContext(),
            status=status,
            error_message=error_message,
        )
        self.logger.log(self._get_log_level(event), event.to_json())

        stmt = insert(AuditLogTable).values(
            action=event.action.value,
            resource_type=event.resource.value,
            resource_id=event.resource_id,
            old_values=event.old_values,
            new_values=event.new_values,
            ip_address=_valid_ip(event.context.client_ip),
            user_agent=event.context.user_agent,
            request_id=event.context.request_id,
            status=event.status.value,
            error_message=event.error_message,
        )
        try:
            await self.db.fetch_all(stmt)
        except Exception as e:
            logger.error(
                f"Failed to create audit log for {event.action.value} "
                f"{event.resource.value}:{event.resource_id}: {e}"
            )
        else:
            logger.debug(
                f"Audit log created: {event.action.value} {event.resource.value}:{event.resource_id}"
            )
        return event

    def _get_log_level(self, event: AuditEvent) -> int:
        if event.status is AuditStatus.FAILURE:
            return logging.ERROR
        if event.action is AuditAction.DELETE:
            return logging.WARNING
        return logging.INFO

    async def list_logs(
        self,
        filters: AuditLogFilter | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """List audit logs, newest first."""
        filters = filters or AuditLogFilter()
        stmt = select(*AuditLogTable.__table__.columns)
        if filters.action:
            stmt = stmt.where(AuditLogTable.action == filters.action)
        if filters.resource_type:
            stmt = stmt.where(AuditLogTable.resource_type == filters.resource_type)
        if filters.resource_id is not None:
            stmt = stmt.where(AuditLogTable.resource_id == filters.resource_id)
        if filters.status:
            stmt = stmt.where(AuditLogTable.status == filters.status)
        if filters.start_date is not None:
            stmt = stmt.where(AuditLogTable.timestamp >= filters.start_date)
        if filters.end_date is not None:
            stmt = stmt.where(AuditLogTable.timestamp <= filters.end_date)
        stmt = stmt.order_by(AuditLogTable.timestamp.desc()).limit(limit).offset(offset)
        return [row_to_dict(row) for row in await self.db.fetch_all(stmt)]

    async def cleanup(self, days_to_keep: int = 90) -> int:
        """Delete audit logs older than ``days_to_keep`` days.

        Returns the number of deleted rows.
        """
        cutoff = datetime.now(UTC) - timedelta(days=days_to_keep)
        stmt = (
            delete(AuditLogTable)
            .where(AuditLogTable.timestamp < cutoff)
            .returning(AuditLogTable.id)
        )
        deleted = len(await self.db.fetch_all(stmt))
        logger.info(f"Cleaned up {deleted} audit logs older than {days_to_keep} days")
        return deleted


def configure_audit_logging(
    log_file: str | None = None,
    log_format: str = "%(message)s",
    level: int = logging.INFO,
) -> None:
    """Configure the audit logger.

    Args:
        log_file: Path to audit log file (None keeps the root handlers)
        log_format: Log format string
        level: Logging level
    """
    audit_logger.setLevel(level)
    if not log_file:
        return

    from logging.handlers import RotatingFileHandler

    audit_logger.propagate = False
    handler = RotatingFileHandler(
        log_file,
        maxBytes=100 * 1024 * 1024,  # 100MB
        backupCount=10,
    )
    handler.setFormatter(logging.Formatter(log_format))
    audit_logger.addHandler(handler)
