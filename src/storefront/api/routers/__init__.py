"""API routers for the storefront API."""

from storefront.api.routers import audit, categories, health, metrics, products

__all__ = ["audit", "categories", "health", "metrics", "products"]
