"""
In-process array expansion and mempool exclusion.

These functions reproduce what the server-side query computes, row for row,
including SQL `NOT IN` three-valued logic:

- any NULL in the mempool set makes every comparison unknown, so nothing
  survives;
- a NULL block element survives only against an empty mempool set.
"""
from __future__ import annotations

from typing import AbstractSet, Iterable, List, Optional

from private_flow.domain.models import BlockRecord, BlockRef, HashValue


def expand_transaction_hashes(
    blocks: Iterable[BlockRecord], ref: Optional[BlockRef] = None
) -> List[Optional[HashValue]]:
    """
    Flatten the `transaction_hashes` of matching blocks into one list.

    Parameters
    ----------
    blocks : iterable of BlockRecord
        Candidate block rows.
    ref : BlockRef, optional
        When given, only valid rows with this exact number and hash are
        expanded. When omitted, the rows are assumed to be pre-filtered.

    Returns
    -------
    list
        Hashes in array order; several matching rows are concatenated.
    """
    expanded: List[Optional[HashValue]] = []
    for block in blocks:
        if ref is not None and not block.matches(ref):
            continue
        expanded.extend(block.transaction_hashes or ())
    return expanded


def exclude_mempool_hashes(
    tx_hashes: Iterable[Optional[HashValue]],
    mempool_hashes: AbstractSet[Optional[HashValue]],
) -> List[Optional[HashValue]]:
    """
    Keep the hashes that are `NOT IN` the mempool set.
    """
    if not mempool_hashes:
        return list(tx_hashes)
    if None in mempool_hashes:
        return []
    return [tx_hash for tx_hash in tx_hashes if tx_hash is not None and tx_hash not in mempool_hashes]


def private_flow(
    blocks: Iterable[BlockRecord],
    mempool_hashes: AbstractSet[Optional[HashValue]],
    ref: BlockRef,
) -> List[Optional[HashValue]]:
    """Transactions of `ref` never observed in the mempool: expand, then filter."""
    return exclude_mempool_hashes(expand_transaction_hashes(blocks, ref), mempool_hashes)


__all__ = ["exclude_mempool_hashes", "expand_transaction_hashes", "private_flow"]
