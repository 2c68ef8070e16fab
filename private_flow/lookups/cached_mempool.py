"""
In-process lookup: fetch the block rows, subtract a cached mempool hash set.

Suited to deployments where `unique_mempool` is small enough to hold in
memory. The cache is refreshed once it is older than
`MEMPOOL_CACHE_TTL_SECONDS` (0 refreshes on every lookup). The subtraction
itself lives in `private_flow.domain.exclusion` and keeps `NOT IN` semantics,
so results match the server-side query.
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import AbstractSet, Callable, Dict, Generator, Optional, Tuple

from psycopg import Connection

from private_flow.config import get_settings
from private_flow.domain.exclusion import exclude_mempool_hashes, expand_transaction_hashes
from private_flow.domain.models import BlockRecord, BlockRef, HashValue
from private_flow.infrastructure.db_factory import (
    PoolManager,
    apply_statement_timeout,
    build_dsn,
    get_sync_connection,
    resolve_timeout_ms,
)
from private_flow.lookups.abstract import AbstractLookupStrategy, LookupResult
from private_flow.queries import matching_blocks_sql, mempool_hashes_sql
from private_flow.utils.logging import get_logger

log = get_logger(__name__)


class MempoolCache:
    """
    Time-bounded snapshot of `unique_mempool.tx_hash`.

    Parameters
    ----------
    ttl_seconds : float
        Maximum age of the snapshot before it is reloaded.
    clock : callable, optional
        Monotonic clock, injectable for tests.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._hashes: Optional[frozenset[Optional[HashValue]]] = None
        self._loaded_at = 0.0
        self._lock = threading.Lock()

    def is_stale(self) -> bool:
        if self._hashes is None:
            return True
        return self._clock() - self._loaded_at >= self.ttl_seconds

    def get(
        self, loader: Callable[[], AbstractSet[Optional[HashValue]]]
    ) -> frozenset[Optional[HashValue]]:
        with self._lock:
            if self.is_stale():
                self._hashes = frozenset(loader())
                self._loaded_at = self._clock()
                log.debug("Mempool snapshot reloaded", extra={"mempool_size": len(self._hashes)})
            assert self._hashes is not None
            return self._hashes

    def invalidate(self) -> None:
        with self._lock:
            self._hashes = None


_shared_caches: Dict[Tuple[str, str, float], MempoolCache] = {}
_shared_caches_lock = threading.Lock()


def shared_mempool_cache(schema: Optional[str] = None, ttl_seconds: Optional[float] = None) -> MempoolCache:
    """Process-wide snapshot for the configured database, created on first use."""
    settings = get_settings()
    key = (
        build_dsn(),
        schema or settings.db_schema,
        settings.mempool_cache_ttl_seconds if ttl_seconds is None else ttl_seconds,
    )
    with _shared_caches_lock:
        if key not in _shared_caches:
            _shared_caches[key] = MempoolCache(ttl_seconds=key[2])
        return _shared_caches[key]


class CachedMempoolLookup(AbstractLookupStrategy):
    """
    Expand the block's hash array and subtract the mempool set in Python.
    """

    name: str = "cached_mempool"
    description: str = "Block rows from the DB, mempool set cached in-process, hash-set subtraction."

    def __init__(
        self,
        cache_ttl_seconds: Optional[float] = None,
        dsn_override: Optional[str] = None,
        schema: Optional[str] = None,
        cache: Optional[MempoolCache] = None,
    ) -> None:
        settings = get_settings()
        ttl = settings.mempool_cache_ttl_seconds if cache_ttl_seconds is None else cache_ttl_seconds
        # A cache handed in is shared with other lookups and outlives this one.
        self._owns_cache = cache is None
        self.cache = cache or MempoolCache(ttl_seconds=ttl)
        self.schema = schema or settings.db_schema
        self._dsn_override = dsn_override

    @contextmanager
    def _connection(self) -> Generator[Connection, None, None]:
        if self._dsn_override:
            conn = get_sync_connection(self._dsn_override)
            try:
                yield conn
            finally:
                conn.close()
        else:
            with PoolManager().sync_connection() as conn:
                yield conn

    def execute(self, block: BlockRef, statement_timeout_ms: Optional[int] = None) -> LookupResult:
        timeout_ms = resolve_timeout_ms(statement_timeout_ms)

        start = time.perf_counter()
        with self._connection() as conn:
            with conn.transaction():
                with conn.cursor() as cur:
                    apply_statement_timeout(cur, timeout_ms, local=True)
                    cur.execute(
                        matching_blocks_sql(self.schema), (block.block_number, block.block_hash)
                    )
                    blocks = [
                        BlockRecord(
                            block_number=number,
                            block_hash=block_hash,
                            valid=valid,
                            transaction_hashes=hashes,
                        )
                        for number, block_hash, valid, hashes in cur.fetchall()
                    ]

                    def _load_mempool() -> set[Optional[HashValue]]:
                        cur.execute(mempool_hashes_sql(self.schema))
                        return {row[0] for row in cur.fetchall()}

                    # An empty block never needs the mempool snapshot.
                    expanded = expand_transaction_hashes(blocks)
                    mempool = self.cache.get(_load_mempool) if expanded else frozenset()
        tx_hashes = exclude_mempool_hashes(expanded, mempool)
        duration = time.perf_counter() - start

        return self._result(
            block,
            tx_hashes,
            duration,
            notes=f"blocks={len(blocks)} mempool_size={len(mempool)} ttl={self.cache.ttl_seconds}s",
        )

    def close(self) -> None:
        if self._owns_cache:
            self.cache.invalidate()


__all__ = ["CachedMempoolLookup", "MempoolCache", "shared_mempool_cache"]
