"""
SQL text for the private flow lookup.

`private_flow_sql` is the server-side form: expand the block's hash array with
`unnest` and drop every hash listed in `unique_mempool` using `NOT IN`. The
helper queries feed the in-process strategy.

Placeholders come in two styles: "format" (`%s`, psycopg) and "numeric"
(`$1`, asyncpg). The schema is interpolated as an identifier, so it is checked
against a strict pattern first.
"""

from __future__ import annotations

import re

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_PRIVATE_FLOW = """SELECT tx_hash
FROM
(
    SELECT unnest(transaction_hashes) AS tx_hash
    FROM {schema}.blocks
    WHERE (block_number = {p1}) AND (block_hash = {p2}) AND (valid = TRUE)
) AS subquery
WHERE tx_hash NOT IN (
    SELECT tx_hash
    FROM {schema}.unique_mempool
)"""

_MATCHING_BLOCKS = """SELECT block_number, block_hash, valid, transaction_hashes
FROM {schema}.blocks
WHERE (block_number = {p1}) AND (block_hash = {p2}) AND (valid = TRUE)"""

_MEMPOOL_HASHES = """SELECT tx_hash
FROM {schema}.unique_mempool"""


def _placeholders(paramstyle: str) -> dict[str, str]:
    if paramstyle == "format":
        return {"p1": "%s", "p2": "%s"}
    if paramstyle == "numeric":
        return {"p1": "$1", "p2": "$2"}
    raise ValueError(f"Unsupported paramstyle '{paramstyle}'. Use 'format' or 'numeric'.")


def is_identifier(name: str) -> bool:
    """True for a plain, unquoted SQL identifier."""
    return bool(_IDENTIFIER_RE.match(name))


def _checked_schema(schema: str) -> str:
    if not is_identifier(schema):
        raise ValueError(f"Invalid schema identifier {schema!r}")
    return schema


def private_flow_sql(schema: str, paramstyle: str = "format") -> str:
    """Server-side expand + NOT IN query taking (block_number, block_hash)."""
    return _PRIVATE_FLOW.format(schema=_checked_schema(schema), **_placeholders(paramstyle))


def matching_blocks_sql(schema: str, paramstyle: str = "format") -> str:
    """Valid block rows with the given (block_number, block_hash)."""
    return _MATCHING_BLOCKS.format(schema=_checked_schema(schema), **_placeholders(paramstyle))


def mempool_hashes_sql(schema: str) -> str:
    """Every hash in `unique_mempool`, NULLs included."""
    return _MEMPOOL_HASHES.format(schema=_checked_schema(schema))


__all__ = ["is_identifier", "matching_blocks_sql", "mempool_hashes_sql", "private_flow_sql"]
