"""Catalog services combining pagination, caching, invalidation and audit."""

from storefront.services.categories import CategoryService
from storefront.services.products import ProductService

__all__ = ["CategoryService", "ProductService"]
