"""Domain errors shared by the persistence, pagination and service layers.

These are transport-agnostic; ``storefront.api.errors`` maps them onto
HTTP responses.
"""

from __future__ import annotations


class StorefrontError(Exception):
    """Base class for storefront domain errors."""


class InvalidCursor(StorefrontError):
    """Pagination cursor is not a positive integer.

    Raised before any statement is executed, so a malformed cursor is always
    a client error rather than a database type error.
    """

    def __init__(self, cursor: object):
        self.cursor = cursor
        super().__init__("Invalid cursor format: must be a positive integer")


class StoreError(StorefrontError):
    """Base class for relational store failures."""


class StoreUnavailable(StoreError):
    """The relational store could not be reached."""


class StoreTimeout(StoreError):
    """A relational statement exceeded its timeout."""


class NoUpdateFields(StorefrontError):
    """A partial update named none of the updatable fields."""

    def __init__(self) -> None:
        super().__init__("No fields to update")
