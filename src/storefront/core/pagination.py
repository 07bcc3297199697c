"""Keyset (cursor) pagination over monotonic integer ids.

A cursor is the ``id`` of the last row the caller has seen. Pages are
ordered by ``id`` descending and the next page is everything with
``id < cursor``, so inserts of newer rows and deletions of older rows never
cause a page to repeat or skip a row.

One extra row is fetched per page to answer "is there more" without a
``COUNT(*)``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

from pydantic import BaseModel
from sqlalchemy import ColumnElement, Select

from storefront.errors import InvalidCursor

F = TypeVar("F")

MIN_LIMIT = 1
MAX_LIMIT = 100
DEFAULT_LIMIT = 20

# ids are SERIAL (int4); larger cursors cannot be bound to the column type
MAX_CURSOR = 2_147_483_647

_DIGITS = re.compile(r"^\d+$")


class Page(BaseModel):
    """A page of rows plus the cursor for the following page."""

    items: list[dict[str, Any]]
    next_cursor: int | None = None
    has_more: bool = False
    # Effective page size after clamping
    limit: int | None = None


@dataclass(frozen=True)
class KeysetQuery(Generic[F]):
    """Inputs for fetching one page worth of rows.

    ``fetch_size`` is one more than ``limit``; the extra row only signals
    that another page exists.
    """

    filter: F
    before_id: int | None
    limit: int

    @property
    def fetch_size(self) -> int:
        return self.limit + 1


RowSource = Callable[[KeysetQuery[Any]], Awaitable[list[dict[str, Any]]]]


def parse_cursor(raw: str | int | None) -> int | None:
    """Validate a raw cursor.

    ``None`` and the empty string mean "start from the newest row".

    Raises:
        InvalidCursor: The cursor is not a positive integer.
    """
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise InvalidCursor(raw)
    if isinstance(raw, int):
        value = raw
    else:
        text = raw.strip()
        if text == "":
            return None
        if not _DIGITS.match(text):
            raise InvalidCursor(raw)
        value = int(text)
    if value < 1 or value > MAX_CURSOR:
        raise InvalidCursor(raw)
    return value


def clamp_limit(raw: str | int | None, default: int = DEFAULT_LIMIT) -> int:
    """Clamp a requested page size to ``[MIN_LIMIT, MAX_LIMIT]``.

    Missing or non-numeric values use ``default``. Out-of-range values are
    corrected, never rejected.
    """
    if raw is None:
        value = default
    elif isinstance(raw, int):
        value = raw
    else:
        try:
            value = int(raw.strip())
        except ValueError:
            value = default
    return max(MIN_LIMIT, min(MAX_LIMIT, value))


def build_page(rows: list[dict[str, Any]], limit: int, id_field: str = "id") -> Page:
    """Trim a ``limit + 1`` fetch into a page."""
    if len(rows) > limit:
        items = rows[:limit]
        return Page(items=items, next_cursor=items[-1][id_field], has_more=True, limit=limit)
    return Page(items=rows, next_cursor=None, has_more=False, limit=limit)


def keyset_select(stmt: Select[Any], id_column: ColumnElement[Any], query: KeysetQuery[Any]) -> Select[Any]:
    """Apply the keyset bound, ordering and ``LIMIT limit+1`` to a select."""
    if query.before_id is not None:
        stmt = stmt.where(id_column < query.before_id)
    return stmt.order_by(id_column.desc()).limit(query.fetch_size)


class KeysetPager(Generic[F]):
    """Computes pages of rows ordered by ``id`` descending.

    The pager owns cursor validation and limit clamping; fetching rows is
    delegated to ``source``, which receives a ``KeysetQuery`` and must
    return at most ``fetch_size`` rows ordered by id descending, each with
    an ``id`` key.

    Example:
        pager = KeysetPager(products.fetch_page, default_limit=20)
        page = await pager.paginate(ProductFilter(category_id=3), "57", "10")
    """

    def __init__(self, source: RowSource, *, default_limit: int = DEFAULT_LIMIT, id_field: str = "id"):
        self.source = source
        self.default_limit = default_limit
        self.id_field = id_field

    def query(self, filter: F, cursor: str | int | None, limit: str | int | None) -> KeysetQuery[F]:
        """Validate raw inputs into a ``KeysetQuery`` without touching the store."""
        before_id = parse_cursor(cursor)
        return KeysetQuery(filter=filter, before_id=before_id, limit=clamp_limit(limit, self.default_limit))

    async def fetch(self, query: KeysetQuery[F]) -> Page:
        rows = await self.source(query)
        return build_page(rows, query.limit, self.id_field)

    async def page(self, filter: F, cursor: int | None, limit: int) -> Page:
        """Fetch one page.

        Raises:
            InvalidCursor: ``cursor`` is not a positive integer.
            StoreUnavailable: The relational store could not be reached.
            StoreTimeout: The page query timed out.
        """
        return await self.fetch(self.query(filter, cursor, limit))

    async def paginate(self, filter: F, cursor_param: str | None, limit_param: str | None) -> Page:
        """Fetch one page from raw, untrusted query-string values."""
        return await self.fetch(self.query(filter, cursor_param, limit_param))
