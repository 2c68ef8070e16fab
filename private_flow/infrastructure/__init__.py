"""
Infrastructure package for the private flow lookup.

Centralizes database connectivity (sync/async factories, pooling, timeouts).
Keep this layer focused on I/O and resource management, decoupled from lookup
and orchestrator logic.
"""

from private_flow.infrastructure.db_factory import (
    PoolManager,
    apply_statement_timeout,
    build_dsn,
    get_async_connection,
    get_sync_connection,
    resolve_timeout_ms,
)

__all__ = [
    "PoolManager",
    "apply_statement_timeout",
    "build_dsn",
    "get_async_connection",
    "get_sync_connection",
    "resolve_timeout_ms",
]
