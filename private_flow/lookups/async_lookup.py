"""
Async lookup using asyncpg.

Runs the same server-side query as `server_side`, with `$1/$2` placeholders.
The statement timeout is forwarded through asyncpg's per-call `timeout`, which
cancels the query on the server and raises `asyncio.TimeoutError`.

Call `execute_async` from code that already runs an event loop; `execute`
drives its own loop and refuses to run inside one.
"""

from __future__ import annotations

import asyncio
import time
from typing import Optional

from private_flow.config import get_settings
from private_flow.domain.models import BlockRef
from private_flow.infrastructure.db_factory import get_async_connection, resolve_timeout_ms
from private_flow.lookups.abstract import AbstractLookupStrategy, LookupResult
from private_flow.queries import private_flow_sql


class AsyncLookup(AbstractLookupStrategy):
    """
    Server-side NOT IN query over an asyncpg connection.
    """

    name: str = "async"
    description: str = "asyncpg connection, same unnest + NOT IN query."

    def __init__(self, dsn_override: Optional[str] = None, schema: Optional[str] = None) -> None:
        self._dsn_override = dsn_override
        self.schema = schema or get_settings().db_schema

    async def execute_async(
        self, block: BlockRef, statement_timeout_ms: Optional[int] = None
    ) -> LookupResult:
        timeout_ms = resolve_timeout_ms(statement_timeout_ms)
        timeout = timeout_ms / 1000.0 if timeout_ms > 0 else None

        start = time.perf_counter()
        conn = await get_async_connection(self._dsn_override)
        try:
            records = await conn.fetch(
                private_flow_sql(self.schema, paramstyle="numeric"),
                block.block_number,
                block.block_hash,
                timeout=timeout,
            )
        finally:
            await conn.close()
        tx_hashes = [record["tx_hash"] for record in records]
        duration = time.perf_counter() - start

        return self._result(block, tx_hashes, duration, notes=f"asyncpg timeout_ms={timeout_ms}")

    def execute(self, block: BlockRef, statement_timeout_ms: Optional[int] = None) -> LookupResult:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return asyncio.run(self.execute_async(block, statement_timeout_ms))
        raise RuntimeError(
            "AsyncLookup.execute() cannot be called from an async context; "
            "await execute_async() instead."
        )


__all__ = ["AsyncLookup"]
