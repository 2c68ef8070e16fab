"""
Lookup strategy interfaces and result contracts.

Concrete lookups (server-side query, pooled, cached mempool, async) implement
the LookupStrategy protocol and return a LookupResult TypedDict so the
orchestrator and reporter can treat them uniformly.
"""

from __future__ import annotations

import abc
from typing import Any, Dict, List, Optional, Protocol, TypedDict, runtime_checkable

from private_flow.domain.models import BlockRef, HashValue


class LookupResult(TypedDict, total=False):
    """
    Result contract returned by lookups.

    `tx_hashes` holds the private flow hashes in the order the engine produced
    them. Metric fields are optional; the orchestrator fills gaps from its
    profiler.
    """

    block_number: int
    block_hash: HashValue
    tx_hashes: List[Optional[HashValue]]
    rows: int
    duration_seconds: float
    error: Optional[str]
    notes: Optional[str]
    extra: Dict[str, Any]


@runtime_checkable
class LookupStrategy(Protocol):
    """
    Common interface all lookup strategies implement.

    Attributes
    ----------
    name : str
        A short machine-friendly identifier.
    description : str
        A human-friendly summary of the approach.
    """

    name: str
    description: str

    def execute(self, block: BlockRef, statement_timeout_ms: Optional[int] = None) -> LookupResult:
        """
        Return the block's transaction hashes that are absent from the mempool.

        Parameters
        ----------
        block : BlockRef
            Block number and hash to look up.
        statement_timeout_ms : int, optional
            Per-call timeout forwarded to the engine. None uses the configured
            default; 0 disables.
        """
        ...

    def close(self) -> None:
        """Release connections or pools held by the strategy."""
        ...


class AbstractLookupStrategy(abc.ABC):
    """
    ABC helper for class-based implementations.

    Subclasses set `name` and `description` and implement `execute`. `close` is
    a no-op unless the subclass holds resources.
    """

    name: str
    description: str

    @abc.abstractmethod
    def execute(
        self, block: BlockRef, statement_timeout_ms: Optional[int] = None
    ) -> LookupResult:  # pragma: no cover - interface only
        raise NotImplementedError

    def close(self) -> None:
        return None

    def _result(
        self,
        block: BlockRef,
        tx_hashes: List[Optional[HashValue]],
        duration_seconds: float,
        notes: Optional[str] = None,
    ) -> LookupResult:
        return LookupResult(
            block_number=block.block_number,
            block_hash=block.block_hash,
            tx_hashes=tx_hashes,
            rows=len(tx_hashes),
            duration_seconds=duration_seconds,
            notes=notes,
        )


__all__ = [
    "AbstractLookupStrategy",
    "LookupResult",
    "LookupStrategy",
]
