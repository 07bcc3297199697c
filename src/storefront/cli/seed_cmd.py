"""CLI command for resetting the catalog to the sample data.

Usage:
    storefront seed
    storefront seed --yes
"""

from __future__ import annotations

import asyncio
from decimal import Decimal

import typer
from rich.console import Console
from rich.table import Table
from sqlalchemy import insert

from storefront.cache.keys import CacheKeys, EntityType
from storefront.cache.store import CacheStore
from storefront.config import settings
from storefront.errors import StoreError
from storefront.persistence.db import Database
from storefront.persistence.tables import CategoryTable, ProductTable

app = typer.Typer(help="Reset the catalog to the sample categories and products")

SAMPLE_CATEGORIES: list[tuple[str, str]] = [
    ("Electronics", "Computers, phones, and gadgets"),
    ("Clothing", "Apparel and fashion items"),
    ("Books", "Physical and digital books"),
    ("Home & Garden", "Furniture and home decor"),
    ("Sports", "Sports equipment and outdoor gear"),
]

# (name, description, price, category index, stock)
SAMPLE_PRODUCTS: list[tuple[str, str, str, int, int]] = [
    ("Laptop 15-inch", "High-performance laptop with 16GB RAM", "899.99", 0, 50),
    ("Smartphone X", "5G smartphone with advanced camera", "599.99", 0, 100),
    ("Wireless Headphones", "Noise-canceling Bluetooth headphones", "149.99", 0, 200),
    ("USB-C Cable 2m", "Fast charging USB-C cable", "12.99", 0, 500),
    ("Cotton T-Shirt", "100% cotton comfortable t-shirt", "19.99", 1, 300),
    ("Blue Jeans", "Classic fit denim jeans", "59.99", 1, 150),
    ("Winter Jacket", "Warm waterproof winter jacket", "129.99", 1, 80),
    ("Sports Shoes", "Comfortable running shoes", "89.99", 1, 120),
    ("JavaScript Guide", "Complete guide to modern JavaScript", "39.99", 2, 50),
    ("Python Programming", "Learn Python from scratch", "44.99", 2, 45),
    ("Web Design Basics", "Introduction to web design principles", "34.99", 2, 60),
    ("Node.js Handbook", "Master backend development with Node.js", "49.99", 2, 40),
    ("Coffee Maker", "Automatic drip coffee maker", "79.99", 3, 70),
    ("Wall Clock", "Modern minimalist wall clock", "24.99", 3, 200),
    ("Plant Pot Set", "Set of 3 ceramic plant pots", "34.99", 3, 150),
    ("Desk Lamp LED", "Adjustable LED desk lamp", "44.99", 3, 100),
    ("Basketball", "Official size basketball", "29.99", 4, 80),
    ("Yoga Mat", "Non-slip exercise yoga mat", "24.99", 4, 120),
    ("Dumbbells Set 20kg", "Adjustable dumbbell set", "99.99", 4, 60),
    ("Running Shoes", "Lightweight running shoes", "119.99", 4, 90),
]


@app.callback(invoke_without_command=True)
def seed(
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Skip the confirmation prompt",
    ),
) -> None:
    """Delete every category and product, then insert the sample catalog.

    Cached catalog pages are flushed afterwards so readers see the new data.
    """
    if not yes:
        typer.confirm("This deletes all categories and products. Continue?", abort=True)
    counts = asyncio.run(_seed())

    console = Console()
    table = Table(title="Sample catalog")
    table.add_column("Category")
    table.add_column("Products", justify="right")
    for (name, _), count in zip(SAMPLE_CATEGORIES, counts):
        table.add_row(name, str(count))
    console.print(table)


async def _seed() -> list[int]:
    db = Database.from_settings(settings)
    await db.open()
    try:
        counts = await _reset_catalog(db)
    except StoreError as e:
        typer.secho(f"Database unavailable: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from e
    finally:
        await db.close()

    await _flush_catalog_cache()
    return counts


async def _reset_catalog(db: Database) -> list[int]:
    counts = [0] * len(SAMPLE_CATEGORIES)
    async with db.transaction() as tx:
        await tx.fetch_all("TRUNCATE TABLE categories RESTART IDENTITY CASCADE")

        category_ids: list[int] = []
        for name, description in SAMPLE_CATEGORIES:
            row = await tx.fetch_one(
                insert(CategoryTable)
                .values(name=name, description=description)
                .returning(CategoryTable.id)
            )
            assert row is not None
            category_ids.append(row["id"])

        for name, description, price, index, stock in SAMPLE_PRODUCTS:
            await tx.fetch_all(
                insert(ProductTable).values(
                    name=name,
                    description=description,
                    price=Decimal(price),
                    category_id=category_ids[index],
                    stock=stock,
                )
            )
            counts[index] += 1
    return counts


async def _flush_catalog_cache() -> None:
    store = CacheStore.from_url(
        settings.redis_url,
        operation_timeout=settings.cache_operation_timeout,
        retry_after=settings.cache_retry_after,
    )
    await store.open()
    try:
        if not store.available:
            return
        for entity_type in EntityType:
            await store.sweep(CacheKeys.collection_pattern(entity_type))
            await store.sweep(CacheKeys.entity_pattern(entity_type))
    finally:
        await store.close()
