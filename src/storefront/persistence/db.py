"""Async database handle with read/write query routing.

Provides PostgreSQL async connectivity using the SQLAlchemy 2.0 asyncio
extension with the asyncpg driver. A ``Database`` owns a primary engine and,
optionally, a read-replica engine; ``QueryRouter`` decides which one a
statement runs on.

The handle is created and closed by the process entry point (the FastAPI
lifespan or a CLI command) and passed to repositories explicitly.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

from sqlalchemy import Executable, text
from sqlalchemy import exc as sa_exc
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from storefront.config import Settings
from storefront.errors import StoreTimeout, StoreUnavailable
from storefront.observability.metrics import record_db_query

logger = logging.getLogger(__name__)

# Statement prefixes that must run on the primary
WRITE_STATEMENT = re.compile(r"^\s*(INSERT|UPDATE|DELETE|CREATE|DROP|ALTER|TRUNCATE)", re.IGNORECASE)

# SQLSTATE codes
QUERY_CANCELED = "57014"
CONNECTION_FAILURE_CLASS = "08"
SERVER_SHUTTING_DOWN = ("57P01", "57P02", "57P03")

Statement = Executable | str


def is_write_statement(sql: str) -> bool:
    """Classify SQL text as a write.

    This is a prefix heuristic, not a parser: a CTE that ends in an INSERT is
    classified as a read. Callers needing read-your-writes must force the
    primary explicitly.
    """
    return WRITE_STATEMENT.match(sql) is not None


@dataclass(frozen=True)
class Pool:
    """A named engine a statement can be routed to."""

    name: str
    engine: AsyncEngine


class QueryRouter:
    """Routes writes to the primary pool and reads to the replica pool."""

    def __init__(self, primary: AsyncEngine, replica: AsyncEngine | None = None):
        self.primary = Pool("primary", primary)
        self.replica = Pool("replica", replica) if replica is not None else None

    @property
    def has_replica(self) -> bool:
        return self.replica is not None

    def route(self, sql: str, force_primary: bool = False) -> Pool:
        """Pick the pool for a statement.

        Writes and forced-primary reads go to the primary; other reads go to
        the replica when one is configured, otherwise to the primary.
        """
        if force_primary or is_write_statement(sql) or self.replica is None:
            return self.primary
        return self.replica


def statement_text(statement: Statement) -> str:
    """Render a statement to SQL text for classification and logging."""
    if isinstance(statement, str):
        return statement
    return str(statement)


def _rejected_input(orig: BaseException | None) -> bool:
    """The driver refused a parameter value (e.g. an int out of the column range)."""
    return isinstance(orig, ValueError) or isinstance(getattr(orig, "__cause__", None), ValueError)


def translate_store_error(error: BaseException) -> BaseException:
    """Map driver and pool failures onto ``StoreTimeout`` / ``StoreUnavailable``.

    Errors that are not store availability problems (constraint violations,
    programming errors) are returned unchanged.
    """
    if isinstance(error, (asyncio.TimeoutError, sa_exc.TimeoutError)):
        return StoreTimeout(str(error) or "Database operation timed out")

    if isinstance(error, sa_exc.DBAPIError):
        sqlstate = getattr(error.orig, "sqlstate", None) or getattr(error.orig, "pgcode", None)
        if sqlstate == QUERY_CANCELED:
            return StoreTimeout("Database statement timed out")
        if error.connection_invalidated or (
            sqlstate is not None
            and (sqlstate.startswith(CONNECTION_FAILURE_CLASS) or sqlstate in SERVER_SHUTTING_DOWN)
        ):
            return StoreUnavailable("Database connection error")
        if _rejected_input(error.orig):
            return error
        if isinstance(error, (sa_exc.OperationalError, sa_exc.InterfaceError)):
            return StoreUnavailable("Database connection error")
        return error

    if isinstance(error, (ConnectionError, OSError)):
        return StoreUnavailable("Database connection error")

    return error


class Transaction:
    """Statements executed inside one primary-store transaction."""

    def __init__(self, connection: AsyncConnection, timeout: float):
        self._connection = connection
        self._timeout = timeout

    async def fetch_all(self, statement: Statement) -> list[dict[str, Any]]:
        executable = text(statement) if isinstance(statement, str) else statement
        start = time.perf_counter()
        try:
            result = await asyncio.wait_for(
                self._connection.execute(executable), timeout=self._timeout
            )
        except Exception as e:
            mapped = translate_store_error(e)
            if mapped is e:
                raise
            raise mapped from e
        operation = "write" if is_write_statement(statement_text(statement)) else "read"
        record_db_query(operation, "primary", time.perf_counter() - start)
        if not result.returns_rows:
            return []
        return [dict(row) for row in result.mappings()]

    async def fetch_one(self, statement: Statement) -> dict[str, Any] | None:
        rows = await self.fetch_all(statement)
        return rows[0] if rows else None


class Database:
    """Primary (and optional replica) engines plus the query router."""

    def __init__(
        self,
        primary_url: str,
        replica_url: str | None = None,
        *,
        pool_size: int = 20,
        max_overflow: int = 10,
        read_pool_size: int = 30,
        pool_timeout: int = 5,
        pool_recycle: int = 1800,
        statement_timeout: float = 30.0,
        echo: bool = False,
    ):
        self.primary_url = primary_url
        self.replica_url = replica_url
        self.pool_size = pool_size
        self.max_overflow = max_overflow
        self.read_pool_size = read_pool_size
        self.pool_timeout = pool_timeout
        self.pool_recycle = pool_recycle
        self.statement_timeout = statement_timeout
        self.echo = echo
        self._router: QueryRouter | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(
            settings.database_url,
            settings.database_read_replica_url,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            read_pool_size=settings.db_read_pool_size,
            pool_timeout=settings.db_pool_timeout,
            pool_recycle=settings.db_pool_recycle,
            statement_timeout=settings.db_statement_timeout,
            echo=settings.db_echo,
        )

    def _create_engine(self, url: str, pool_size: int) -> AsyncEngine:
        connect_args: dict[str, Any] = {}
        if url.startswith("postgresql+asyncpg"):
            connect_args["server_settings"] = {
                "statement_timeout": str(int(self.statement_timeout * 1000)),
                "application_name": "storefront-api",
            }
        return create_async_engine(
            url,
            pool_size=pool_size,
            max_overflow=self.max_overflow,
            pool_timeout=self.pool_timeout,
            pool_recycle=self.pool_recycle,
            pool_pre_ping=True,
            echo=self.echo,
            connect_args=connect_args,
        )

    async def open(self) -> None:
        """Create the connection pools."""
        if self._router is not None:
            return
        primary = self._create_engine(self.primary_url, self.pool_size)
        replica = None
        if self.replica_url:
            replica = self._create_engine(self.replica_url, self.read_pool_size)
            logger.info("Read replica pool configured")
        else:
            logger.info("No read replica configured, using primary for all queries")
        self._router = QueryRouter(primary, replica)

    async def close(self) -> None:
        """Dispose of all pools."""
        if self._router is None:
            return
        router, self._router = self._router, None
        logger.info("Closing database connection pools")
        await router.primary.engine.dispose()
        if router.replica is not None:
            await router.replica.engine.dispose()

    @property
    def router(self) -> QueryRouter:
        if self._router is None:
            raise RuntimeError("Database is not open")
        return self._router

    @property
    def primary(self) -> AsyncEngine:
        return self.router.primary.engine

    async def fetch_all(
        self, statement: Statement, *, force_primary: bool = False
    ) -> list[dict[str, Any]]:
        """Execute a statement on the routed pool and return rows as dicts.

        Writes run in their own transaction and are committed before
        returning.

        Raises:
            StoreTimeout: The statement or the pool checkout timed out.
            StoreUnavailable: The store could not be reached.
        """
        sql = statement_text(statement)
        is_write = is_write_statement(sql)
        pool = self.router.route(sql, force_primary=force_primary)
        executable = text(statement) if isinstance(statement, str) else statement

        async def run() -> list[dict[str, Any]]:
            context = pool.engine.begin() if is_write else pool.engine.connect()
            async with context as conn:
                result = await conn.execute(executable)
                if not result.returns_rows:
                    return []
                return [dict(row) for row in result.mappings()]

        start = time.perf_counter()
        operation = "write" if is_write else "read"
        try:
            rows = await asyncio.wait_for(run(), timeout=self.statement_timeout)
        except Exception as e:
            duration = time.perf_counter() - start
            logger.error(
                "Query failed",
                extra={"type": operation, "pool": pool.name, "duration": round(duration, 3)},
            )
            mapped = translate_store_error(e)
            if mapped is e:
                raise
            raise mapped from e

        duration = time.perf_counter() - start
        record_db_query(operation, pool.name, duration)
        logger.debug(
            "Query executed",
            extra={
                "type": operation,
                "pool": pool.name,
                "duration": round(duration, 3),
                "rows": len(rows),
            },
        )
        return rows

    async def fetch_one(
        self, statement: Statement, *, force_primary: bool = False
    ) -> dict[str, Any] | None:
        rows = await self.fetch_all(statement, force_primary=force_primary)
        return rows[0] if rows else None

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Transaction]:
        """Run several statements in one transaction on the primary.

        Usage:
            async with db.transaction() as tx:
                await tx.fetch_one(select(...))
                await tx.fetch_one(insert(...).returning(...))

        The transaction commits when the block exits normally and rolls back
        on any exception.
        """
        try:
            async with self.primary.begin() as conn:
                yield Transaction(conn, self.statement_timeout)
        except (sa_exc.DBAPIError, sa_exc.TimeoutError, OSError) as e:
            mapped = translate_store_error(e)
            if mapped is e:
                raise
            raise mapped from e

    def pool_stats(self) -> dict[str, dict[str, int] | None]:
        """Connection pool statistics for monitoring."""
        router = self.router

        def stats(engine: AsyncEngine) -> dict[str, int]:
            pool = engine.pool
            return {
                "size": getattr(pool, "size", lambda: 0)(),
                "checked_out": getattr(pool, "checkedout", lambda: 0)(),
                "idle": getattr(pool, "checkedin", lambda: 0)(),
                "overflow": getattr(pool, "overflow", lambda: 0)(),
            }

        return {
            "primary": stats(router.primary.engine),
            "replica": stats(router.replica.engine) if router.replica is not None else None,
        }

    async def create_schema(self) -> None:
        """Create tables if they do not exist.

        Schema migrations are out of scope; this mirrors ``CREATE TABLE IF NOT
        EXISTS`` bootstrap.
        """
        from storefront.persistence.tables import Base

        async with self.primary.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def health_check(self) -> bool:
        """Check primary connectivity."""
        try:
            await self.fetch_all("SELECT 1", force_primary=True)
            return True
        except Exception:
            return False
