"""CLI command for creating the database schema.

Usage:
    storefront init-db
"""

from __future__ import annotations

import asyncio

import typer

from storefront.config import settings
from storefront.errors import StoreError
from storefront.persistence.db import Database

app = typer.Typer(help="Create the catalog and audit log tables")


@app.callback(invoke_without_command=True)
def init_db() -> None:
    """Create missing tables and indexes. Existing tables are left alone."""
    asyncio.run(_init_db())


async def _init_db() -> None:
    db = Database.from_settings(settings)
    await db.open()
    try:
        await db.create_schema()
    except StoreError as e:
        typer.secho(f"Database unavailable: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from e
    finally:
        await db.close()
    typer.secho("Database schema ready", fg=typer.colors.GREEN)
