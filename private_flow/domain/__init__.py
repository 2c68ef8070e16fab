"""
Domain package for the private flow lookup.

Exports the record models and the pure expansion/exclusion functions. Keep
this package free of I/O.
"""

from private_flow.domain.exclusion import (
    exclude_mempool_hashes,
    expand_transaction_hashes,
    private_flow,
)
from private_flow.domain.models import BlockRecord, BlockRef, HashValue, MempoolHashRecord

__all__ = [
    "BlockRecord",
    "BlockRef",
    "HashValue",
    "MempoolHashRecord",
    "exclude_mempool_hashes",
    "expand_transaction_hashes",
    "private_flow",
]
