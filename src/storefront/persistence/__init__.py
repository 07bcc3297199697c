"""Persistence layer - PostgreSQL access through SQLAlchemy async.

Provides:
- Table definitions (categories, products, audit_logs)
- Database handle with primary/replica query routing
- Repositories returning JSON-native rows
"""

from storefront.persistence.db import Database, QueryRouter, is_write_statement
from storefront.persistence.repositories import (
    CategoryNotFound,
    CategoryRepository,
    ProductFilter,
    ProductRepository,
)
from storefront.persistence.tables import AuditLogTable, Base, CategoryTable, ProductTable

__all__ = [
    "AuditLogTable",
    "Base",
    "CategoryNotFound",
    "CategoryRepository",
    "CategoryTable",
    "Database",
    "ProductFilter",
    "ProductRepository",
    "ProductTable",
    "QueryRouter",
    "is_write_statement",
]
