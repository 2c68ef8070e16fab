"""
Domain models for the private flow lookup.

Mirrors the two externally owned relations the lookup reads (`blocks` and
`unique_mempool`) and the block identifier callers supply. Hash values are kept
in whatever representation the database returns (hex text or raw bytes).
"""
from __future__ import annotations

from typing import List, Optional, Union

from pydantic import BaseModel, Field

HashValue = Union[str, bytes]


class BlockRef(BaseModel):
    """
    Identifier of the block to look up: exact number and exact hash.
    """

    block_number: int = Field(..., description="Block height.")
    block_hash: HashValue = Field(..., description="Block hash as stored in `blocks.block_hash`.")

    model_config = {"frozen": True}


class BlockRecord(BaseModel):
    """
    Representation of a single row in the `blocks` relation.
    """

    block_number: int = Field(..., description="Block height.")
    block_hash: HashValue = Field(..., description="Block hash.")
    valid: bool = Field(..., description="Whether the block row is canonical.")
    transaction_hashes: Optional[List[Optional[HashValue]]] = Field(
        default_factory=list, description="Transaction hashes in block order."
    )

    model_config = {"frozen": True}

    def matches(self, ref: BlockRef) -> bool:
        return self.valid and self.block_number == ref.block_number and self.block_hash == ref.block_hash


class MempoolHashRecord(BaseModel):
    """
    Representation of a single row in the `unique_mempool` relation.
    """

    tx_hash: Optional[HashValue] = Field(..., description="Hash seen in the public mempool.")

    model_config = {"frozen": True}


__all__ = ["BlockRecord", "BlockRef", "HashValue", "MempoolHashRecord"]
