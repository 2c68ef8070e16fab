"""
Pytest configuration for the private flow lookup.

Provides fixtures for:
- Database connection management
- Schema initialization from db/init.sql
- Per-test table cleanup and row insertion helpers
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, Generator, Optional, Sequence

import psycopg
import pytest

from private_flow.config import Settings, get_settings

SCHEMA = "ethereum"


@pytest.fixture(autouse=True)
def _fresh_settings_cache() -> Generator[None, None, None]:
    """Keep the lru_cache'd settings from leaking env changes between tests."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "ethereum"),
        db_schema=SCHEMA,
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return (
        f"postgresql://{test_settings.db_user}:{test_settings.db_password}"
        f"@{test_settings.db_host}:{test_settings.db_port}/{test_settings.db_name}"
    )


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to skip integration tests when the DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            conn.execute("SELECT 1;").fetchone()
        return True
    except psycopg.OperationalError:
        return False


@pytest.fixture(scope="session")
def db_connection(
    test_dsn: str, db_connection_available: bool
) -> Generator[psycopg.Connection, None, None]:
    """
    Session-scoped database connection for integration tests.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    conn = psycopg.connect(test_dsn)
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture(scope="session")
def db_schema_initialized(db_connection: psycopg.Connection) -> bool:
    """
    Ensure the `blocks` and `unique_mempool` relations exist.
    """
    init_sql_path = Path(__file__).parent.parent / "db" / "init.sql"
    with db_connection.cursor() as cur:
        cur.execute(init_sql_path.read_text(encoding="utf-8"))
    db_connection.commit()
    return True


@pytest.fixture(scope="function")
def clean_tables(db_connection: psycopg.Connection, db_schema_initialized: bool):
    """
    Empty both relations before and after each test function.
    """

    def _truncate() -> None:
        with db_connection.cursor() as cur:
            cur.execute(f"TRUNCATE TABLE {SCHEMA}.blocks, {SCHEMA}.unique_mempool;")
        db_connection.commit()

    _truncate()
    yield
    _truncate()


@pytest.fixture(scope="function")
def insert_block(
    db_connection: psycopg.Connection, clean_tables
) -> Callable[..., None]:
    """
    Insert one `blocks` row.
    """

    def _insert(
        block_number: int,
        block_hash: str,
        transaction_hashes: Sequence[Optional[str]],
        valid: bool = True,
    ) -> None:
        with db_connection.cursor() as cur:
            cur.execute(
                f"INSERT INTO {SCHEMA}.blocks (block_number, block_hash, valid, transaction_hashes) "
                "VALUES (%s, %s, %s, %s::text[])",
                (block_number, block_hash, valid, list(transaction_hashes)),
            )
        db_connection.commit()

    return _insert


@pytest.fixture(scope="function")
def insert_mempool(
    db_connection: psycopg.Connection, clean_tables
) -> Callable[[Sequence[Optional[str]]], None]:
    """
    Insert `unique_mempool` rows.
    """

    def _insert(tx_hashes: Sequence[Optional[str]]) -> None:
        with db_connection.cursor() as cur:
            cur.executemany(
                f"INSERT INTO {SCHEMA}.unique_mempool (tx_hash) VALUES (%s)",
                [(tx_hash,) for tx_hash in tx_hashes],
            )
        db_connection.commit()

    return _insert
