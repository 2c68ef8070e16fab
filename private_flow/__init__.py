"""
Private Flow - find block transactions that never appeared in the public mempool.

Given a block (number + hash), the lookup expands the block's transaction hash
array and drops every hash recorded in `unique_mempool`. Four interchangeable
lookups are provided:

- A single server-side query on a dedicated connection
- The same query over a psycopg connection pool
- An in-process subtraction against a cached mempool snapshot
- An asyncpg-based async query
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from private_flow.config import Settings, get_settings
from private_flow.domain import (
    BlockRecord,
    BlockRef,
    MempoolHashRecord,
    exclude_mempool_hashes,
    expand_transaction_hashes,
)
from private_flow.lookups.abstract import (
    AbstractLookupStrategy,
    LookupResult,
    LookupStrategy,
)
from private_flow.orchestrator import (
    RunConfig,
    available_lookups,
    lookup_private_flow,
    run_lookups,
)
from private_flow.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Domain
    "BlockRecord",
    "BlockRef",
    "MempoolHashRecord",
    "exclude_mempool_hashes",
    "expand_transaction_hashes",
    # Lookups
    "AbstractLookupStrategy",
    "LookupResult",
    "LookupStrategy",
    # Orchestration
    "RunConfig",
    "available_lookups",
    "lookup_private_flow",
    "run_lookups",
    # Logging
    "configure_logging",
    "get_logger",
]
