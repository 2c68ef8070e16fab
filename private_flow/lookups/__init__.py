"""
Lookup strategies for the private flow query.

Re-exports the abstract interfaces and the concrete strategies so downstream
code can import from `private_flow.lookups` directly.
"""

from private_flow.lookups.abstract import (
    AbstractLookupStrategy,
    LookupResult,
    LookupStrategy,
)
from private_flow.lookups.async_lookup import AsyncLookup
from private_flow.lookups.cached_mempool import (
    CachedMempoolLookup,
    MempoolCache,
    shared_mempool_cache,
)
from private_flow.lookups.pooled import PooledLookup
from private_flow.lookups.server_side import ServerSideLookup

__all__ = [
    # Abstracts
    "AbstractLookupStrategy",
    "LookupResult",
    "LookupStrategy",
    # Concrete lookups
    "AsyncLookup",
    "CachedMempoolLookup",
    "MempoolCache",
    "PooledLookup",
    "ServerSideLookup",
    "shared_mempool_cache",
]
