from __future__ import annotations

import time
from typing import Optional

from psycopg_pool import ConnectionPool

from private_flow.config import get_settings
from private_flow.domain.models import BlockRef
from private_flow.infrastructure.db_factory import (
    apply_statement_timeout,
    build_dsn,
    resolve_timeout_ms,
)
from private_flow.lookups.abstract import AbstractLookupStrategy, LookupResult
from private_flow.queries import private_flow_sql


class PooledLookup(AbstractLookupStrategy):
    """
    Server-side query over connections borrowed from a psycopg ConnectionPool.

    The pool is created lazily on the first lookup and released by `close()`.
    Every lookup made through one instance borrows from the same warm pool; the
    orchestrator keeps one instance per lookup name for a whole run.
    """

    name: str = "pooled"
    description: str = "Same NOT IN query on a psycopg_pool ConnectionPool."

    def __init__(
        self,
        pool_min_size: Optional[int] = None,
        pool_max_size: Optional[int] = None,
        dsn_override: Optional[str] = None,
        schema: Optional[str] = None,
    ) -> None:
        settings = get_settings()
        self.pool_min_size = settings.db_pool_min_size if pool_min_size is None else pool_min_size
        self.pool_max_size = settings.db_pool_max_size if pool_max_size is None else pool_max_size
        self.schema = schema or settings.db_schema
        self._dsn_override = dsn_override
        self._pool_instance: ConnectionPool | None = None

    def _get_pool(self) -> ConnectionPool:
        if self._pool_instance is None:
            self._pool_instance = ConnectionPool(
                conninfo=self._dsn_override or build_dsn(),
                min_size=self.pool_min_size,
                max_size=self.pool_max_size,
                open=True,
            )
        return self._pool_instance

    def execute(self, block: BlockRef, statement_timeout_ms: Optional[int] = None) -> LookupResult:
        query = private_flow_sql(self.schema)
        timeout_ms = resolve_timeout_ms(statement_timeout_ms)

        start = time.perf_counter()
        with self._get_pool().connection() as conn:
            # SET LOCAL keeps the timeout from leaking into the next borrower.
            with conn.transaction():
                with conn.cursor() as cur:
                    apply_statement_timeout(cur, timeout_ms, local=True)
                    cur.execute(query, (block.block_number, block.block_hash))
                    tx_hashes = [row[0] for row in cur.fetchall()]
        duration = time.perf_counter() - start

        return self._result(
            block,
            tx_hashes,
            duration,
            notes=f"pool=({self.pool_min_size},{self.pool_max_size}) timeout_ms={timeout_ms}",
        )

    def close(self) -> None:
        if self._pool_instance is not None:
            try:
                self._pool_instance.close()
            finally:
                self._pool_instance = None


__all__ = ["PooledLookup"]
