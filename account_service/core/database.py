"""Async database pool and scoped connections.

Wraps a SQLAlchemy async engine (connection pool) that is created on first
use and can be disposed and re-created. Three ways to talk to storage:

- Database.execute(): one statement on a pooled autocommit connection
- Database.connection(): one autocommit connection for dependent statements
- Database.transaction(): one connection inside BEGIN/COMMIT, rolled back on
  any error; reuses an already-open scope when one is passed in

Every scope yields a Connection, the only thing repositories and services see.
Storage errors are translated at the statement boundary: declared
ErrorMatchers produce domain errors, anything else becomes an
UnexpectedStorageError. No raw driver error escapes this module.
"""

from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from typing import Any, Protocol

import structlog
from sqlalchemy import MetaData, event
from sqlalchemy.engine import CursorResult, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.sql import Executable

from account_service.core.config import settings
from account_service.core.error_matchers import (
    ErrorMatcher,
    find_matching_error,
    message_of,
    sqlstate_of,
)
from account_service.core.errors import AccountError, UnexpectedStorageError
from account_service.models.base import Base

logger = structlog.get_logger()


def translate_error(
    exc: SQLAlchemyError,
    error_matchers: Sequence[ErrorMatcher] = (),
    *,
    statement: Executable | None = None,
) -> AccountError:
    """Turn a raw storage error into a domain error.

    Args:
        exc: Error raised by SQLAlchemy or the driver underneath.
        error_matchers: Ordered matchers declared by the call site.
        statement: Statement that failed, for logging only.

    Returns:
        The first matching domain error, or UnexpectedStorageError.
    """
    matched = find_matching_error(exc, error_matchers)
    if matched is not None:
        return matched

    orig = getattr(exc, "orig", None)
    error_type = type(orig if orig is not None else exc).__name__
    sqlstate = sqlstate_of(exc)
    raw_message = message_of(exc)
    logger.error(
        "storage_error_unexpected",
        sqlstate=sqlstate,
        error_type=error_type,
        error=raw_message,
        statement=str(statement) if statement is not None else None,
    )
    return UnexpectedStorageError(
        sqlstate=sqlstate,
        error_type=error_type,
        raw_message=raw_message,
    )


class Scope(Protocol):
    """Something that can run a statement.

    Satisfied by Connection; accepted by every repository method so that
    both a top-level transaction and a nested call site can be passed in.
    """

    async def execute(
        self,
        statement: Executable,
        *,
        error_matchers: Sequence[ErrorMatcher] = (),
    ) -> CursorResult[Any]: ...


class Connection:
    """A checked-out connection that only exposes execute().

    Returned by Database.connection() and Database.transaction(). Results
    are fully buffered, so they stay readable after the scope closes.
    """

    __slots__ = ("_conn",)

    def __init__(self, conn: AsyncConnection) -> None:
        self._conn = conn

    async def execute(
        self,
        statement: Executable,
        *,
        error_matchers: Sequence[ErrorMatcher] = (),
    ) -> CursorResult[Any]:
        """Run one statement, translating storage errors.

        Args:
            statement: SQLAlchemy Core statement.
            error_matchers: Ordered expected-error declarations.

        Returns:
            Buffered result.

        Raises:
            AccountError: The first matching declared error, or
                UnexpectedStorageError.
        """
        try:
            return await self._conn.execute(statement)
        except SQLAlchemyError as exc:
            raise translate_error(exc, error_matchers, statement=statement) from exc


class Database:
    """Owner of the connection pool.

    The engine is created lazily on first use. dispose() drains the pool;
    the next use creates a fresh one.
    """

    def __init__(
        self,
        url: str,
        *,
        pool_size: int = 10,
        max_overflow: int = 0,
        echo: bool = False,
    ) -> None:
        """Initialize without connecting.

        Args:
            url: Async SQLAlchemy URL (postgresql+asyncpg, sqlite+aiosqlite).
            pool_size: Connections kept open in the pool.
            max_overflow: Extra connections allowed beyond pool_size.
            echo: Log every statement (development only).
        """
        self._url = url
        self._pool_size = pool_size
        self._max_overflow = max_overflow
        self._echo = echo
        self._engine: AsyncEngine | None = None

    @property
    def is_initialized(self) -> bool:
        """Whether the pool currently exists."""
        return self._engine is not None

    def _create_engine(self) -> AsyncEngine:
        url = make_url(self._url)

        if url.get_backend_name() == "sqlite":
            # SQLite picks its own pool class; foreign keys are off by default
            engine = create_async_engine(url, echo=self._echo)
            event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        else:
            engine = create_async_engine(
                url,
                echo=self._echo,
                pool_size=self._pool_size,
                max_overflow=self._max_overflow,
                pool_pre_ping=True,
            )

        logger.info(
            "database_pool_created",
            url=url.render_as_string(hide_password=True),
        )
        return engine

    def _get_engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = self._create_engine()
        return self._engine

    async def dispose(self) -> None:
        """Close every pooled connection and forget the pool."""
        if self._engine is None:
            return
        engine, self._engine = self._engine, None
        await engine.dispose()
        logger.info("database_pool_disposed")

    async def execute(
        self,
        statement: Executable,
        *,
        error_matchers: Sequence[ErrorMatcher] = (),
    ) -> CursorResult[Any]:
        """Run a single statement on its own pooled connection.

        The connection is released whether the statement succeeds or not.

        Args:
            statement: SQLAlchemy Core statement.
            error_matchers: Ordered expected-error declarations.

        Returns:
            Buffered result.
        """
        async with self.connection() as conn:
            return await conn.execute(statement, error_matchers=error_matchers)

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[Connection]:
        """Check out one connection for several statements.

        No transaction is opened: every statement commits on its own.

        Yields:
            Connection released when the block exits.
        """
        try:
            async with self._get_engine().connect() as raw:
                await raw.execution_options(isolation_level="AUTOCOMMIT")
                yield Connection(raw)
        except SQLAlchemyError as exc:
            raise translate_error(exc) from exc

    @asynccontextmanager
    async def transaction(
        self, conn: Connection | None = None
    ) -> AsyncIterator[Connection]:
        """Run a block all-or-nothing.

        Commits when the block exits normally, rolls back when it raises, and
        always releases the connection. Domain errors raised inside the block
        propagate unchanged after the rollback.

        Args:
            conn: Already-open scope. When given it is yielded as-is and the
                caller that opened it keeps ownership of commit/rollback.

        Yields:
            Connection bound to the transaction.
        """
        if conn is not None:
            yield conn
            return

        try:
            async with self._get_engine().begin() as raw:
                yield Connection(raw)
        except SQLAlchemyError as exc:
            raise translate_error(exc) from exc

    async def create_all(self, metadata: MetaData = Base.metadata) -> None:
        """Create all tables (tests and local tooling; production uses Alembic)."""
        try:
            async with self._get_engine().begin() as raw:
                await raw.run_sync(metadata.create_all)
        except SQLAlchemyError as exc:
            raise translate_error(exc) from exc

    async def drop_all(self, metadata: MetaData = Base.metadata) -> None:
        """Drop all tables."""
        try:
            async with self._get_engine().begin() as raw:
                await raw.run_sync(metadata.drop_all)
        except SQLAlchemyError as exc:
            raise translate_error(exc) from exc


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


_database: Database | None = None


def get_database() -> Database:
    """Get or create the process-wide Database built from settings.

    Services accept a Database in their constructor; this is only the
    default used when none is injected.
    """
    global _database

    if _database is None:
        _database = Database(
            settings.database_url,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            echo=settings.database_echo,
        )
    return _database


async def reset_database() -> None:
    """Dispose the process-wide Database and forget it."""
    global _database

    if _database is not None:
        await _database.dispose()
        _database = None
