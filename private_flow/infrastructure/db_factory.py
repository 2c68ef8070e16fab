"""
Database connection factory utilities for the private flow lookup.

Provides centralized management of sync and async PostgreSQL connections and
the shared psycopg pool. The PoolManager singleton ensures the pool is closed
on interpreter exit.

Connection acquisition retries transient failures using tenacity. Errors raised
while a query runs are never retried here; they propagate to the caller as the
engine reported them.
"""

from __future__ import annotations

import atexit
import threading
from contextlib import contextmanager
from typing import Any, Generator, Optional

import asyncpg
import psycopg
from psycopg import Connection, sql
from psycopg_pool import ConnectionPool
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from private_flow.config import get_settings
from private_flow.utils.logging import get_logger

log = get_logger(__name__)


def build_dsn() -> str:
    """Compose a libpq URL from settings."""
    settings = get_settings()
    return (
        f"postgresql://{settings.db_user}:{settings.db_password}"
        f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    )


def resolve_timeout_ms(statement_timeout_ms: Optional[int]) -> int:
    """Per-call timeout if given, otherwise the configured default. 0 disables."""
    if statement_timeout_ms is None:
        return get_settings().db_statement_timeout_ms
    if statement_timeout_ms < 0:
        raise ValueError(f"statement_timeout_ms must be >= 0, got {statement_timeout_ms}")
    return statement_timeout_ms


def apply_statement_timeout(cursor: psycopg.Cursor[Any], timeout_ms: int, local: bool = False) -> None:
    """
    Set the statement timeout on a psycopg cursor.

    With `local=True` the setting only lasts until the end of the current
    transaction (`SET LOCAL`). A value of 0 leaves the server default in
    place. The server cancels the running statement once the timeout elapses
    and psycopg raises `psycopg.errors.QueryCanceled`.
    """
    if timeout_ms <= 0:
        return
    statement = "SET LOCAL statement_timeout = {}" if local else "SET statement_timeout = {}"
    cursor.execute(sql.SQL(statement).format(sql.Literal(int(timeout_ms))))


class PoolManager:
    """
    Thread-safe singleton owning the shared psycopg connection pool.
    """

    _instance: Optional["PoolManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "PoolManager":
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._sync_pool: Optional[ConnectionPool] = None
                atexit.register(cls._instance.close_all)
            return cls._instance

    def get_sync_pool(self, min_size: Optional[int] = None, max_size: Optional[int] = None) -> ConnectionPool:
        """
        Get or create the synchronous connection pool.

        Parameters
        ----------
        min_size : int, optional
            Minimum number of idle connections. Defaults to DB_POOL_MIN_SIZE.
        max_size : int, optional
            Maximum total connections. Defaults to DB_POOL_MAX_SIZE.
        """
        with self._lock:
            if self._sync_pool is None:
                settings = get_settings()
                self._sync_pool = ConnectionPool(
                    conninfo=build_dsn(),
                    min_size=settings.db_pool_min_size if min_size is None else min_size,
                    max_size=settings.db_pool_max_size if max_size is None else max_size,
                    open=True,
                )
            return self._sync_pool

    @contextmanager
    def sync_connection(self) -> Generator[Connection, None, None]:
        """
        Borrow a connection from the shared pool.

        Example
        -------
            with PoolManager().sync_connection() as conn:
                conn.execute("SELECT 1")
        """
        pool = self.get_sync_pool()
        with pool.connection() as conn:
            yield conn

    def close_all(self) -> None:
        """Close the shared pool. Registered with atexit."""
        with self._lock:
            if self._sync_pool is not None:
                try:
                    self._sync_pool.close()
                except psycopg.Error:
                    log.warning("Failed to close connection pool", exc_info=True)
                finally:
                    self._sync_pool = None


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((psycopg.OperationalError, psycopg.InterfaceError)),
    reraise=True,
)
def get_sync_connection(dsn: Optional[str] = None) -> Connection:
    """
    Open a dedicated synchronous connection with automatic retry.

    Parameters
    ----------
    dsn : str, optional
        Connection string override. Defaults to the configured database.

    Raises
    ------
    psycopg.OperationalError
        If connection fails after all retry attempts.
    """
    return psycopg.connect(dsn or build_dsn())


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((OSError, asyncpg.CannotConnectNowError)),
    reraise=True,
)
async def get_async_connection(dsn: Optional[str] = None) -> asyncpg.Connection:
    """
    Open an asyncpg connection with automatic retry.

    Raises
    ------
    OSError
        If the server stays unreachable after all retry attempts.
    """
    return await asyncpg.connect(dsn or build_dsn())


__all__ = [
    "PoolManager",
    "apply_statement_timeout",
    "build_dsn",
    "get_async_connection",
    "get_sync_connection",
    "resolve_timeout_ms",
]
