"""
Server-side lookup: the whole expand + exclude runs as one query.

Opens a dedicated psycopg connection per call, applies the statement timeout
and fetches every resulting hash. Errors raised by the engine propagate as-is.
"""

from __future__ import annotations

import time
from typing import Optional

from private_flow.config import get_settings
from private_flow.domain.models import BlockRef
from private_flow.infrastructure.db_factory import (
    apply_statement_timeout,
    get_sync_connection,
    resolve_timeout_ms,
)
from private_flow.lookups.abstract import AbstractLookupStrategy, LookupResult
from private_flow.queries import private_flow_sql
from private_flow.utils.logging import get_logger

log = get_logger(__name__)


class ServerSideLookup(AbstractLookupStrategy):
    """
    Run the NOT IN query on a plain psycopg connection.
    """

    name: str = "server_side"
    description: str = "Single query with unnest + NOT IN on a dedicated connection."

    def __init__(self, dsn_override: Optional[str] = None, schema: Optional[str] = None) -> None:
        self._dsn_override = dsn_override
        self.schema = schema or get_settings().db_schema

    def execute(self, block: BlockRef, statement_timeout_ms: Optional[int] = None) -> LookupResult:
        query = private_flow_sql(self.schema)
        timeout_ms = resolve_timeout_ms(statement_timeout_ms)

        start = time.perf_counter()
        conn = get_sync_connection(self._dsn_override)
        try:
            with conn.cursor() as cur:
                apply_statement_timeout(cur, timeout_ms)
                cur.execute(query, (block.block_number, block.block_hash))
                tx_hashes = [row[0] for row in cur.fetchall()]
        finally:
            conn.close()
        duration = time.perf_counter() - start

        log.debug(
            "server_side lookup finished",
            extra={"block_number": block.block_number, "rows": len(tx_hashes)},
        )
        return self._result(block, tx_hashes, duration, notes=f"timeout_ms={timeout_ms}")


__all__ = ["ServerSideLookup"]
