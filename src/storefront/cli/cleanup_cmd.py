"""CLI command for pruning the audit log.

Usage:
    storefront cleanup-audit
    storefront cleanup-audit --days 30
"""

from __future__ import annotations

import asyncio

import typer

from storefront.audit import AuditLog
from storefront.config import settings
from storefront.errors import StoreError
from storefront.persistence.db import Database

app = typer.Typer(help="Delete audit log entries past the retention period")


@app.callback(invoke_without_command=True)
def cleanup_audit(
    days: int = typer.Option(
        settings.audit_retention_days,
        "--days",
        "-d",
        min=1,
        help="Keep entries from the last N days",
    ),
) -> None:
    """Delete audit log entries older than ``--days`` days."""
    deleted = asyncio.run(_cleanup(days))
    typer.echo(f"Deleted {deleted} audit log entries older than {days} days")


async def _cleanup(days: int) -> int:
    db = Database.from_settings(settings)
    await db.open()
    try:
        return await AuditLog(db).cleanup(days_to_keep=days)
    except StoreError as e:
        typer.secho(f"Database unavailable: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from e
    finally:
        await db.close()
