"""Core pagination primitives."""

from storefront.core.pagination import (
    DEFAULT_LIMIT,
    MAX_LIMIT,
    MIN_LIMIT,
    KeysetPager,
    KeysetQuery,
    Page,
    build_page,
    clamp_limit,
    keyset_select,
    parse_cursor,
)

__all__ = [
    "DEFAULT_LIMIT",
    "MAX_LIMIT",
    "MIN_LIMIT",
    "KeysetPager",
    "KeysetQuery",
    "Page",
    "build_page",
    "clamp_limit",
    "keyset_select",
    "parse_cursor",
]
