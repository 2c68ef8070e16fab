"""
Fixture generation and loading script for the private flow lookup.

Generates deterministic pseudo-random blocks and a mempool snapshot that covers
a configurable share of each block's transactions, writes both as CSV, and
loads them into Postgres with COPY.
"""

from __future__ import annotations

import csv
import random
import sys
import tempfile
import time
from pathlib import Path

import psycopg
import typer
from psycopg import sql

from private_flow.config import get_settings
from private_flow.infrastructure.db_factory import build_dsn

app = typer.Typer(help="Generate synthetic blocks/mempool data and load into Postgres (CSV + COPY).")

BLOCKS_HEADER = ["block_number", "block_hash", "valid", "transaction_hashes"]
MEMPOOL_HEADER = ["tx_hash"]


def _random_hash(rng: random.Random) -> str:
    return "0x" + rng.getrandbits(256).to_bytes(32, "big").hex()


def _pg_array(values: list[str]) -> str:
    """Postgres array literal; hex hashes need no quoting."""
    return "{" + ",".join(values) + "}"


def _generate_csvs(
    blocks_path: Path,
    mempool_path: Path,
    blocks: int,
    txs_per_block: int,
    public_ratio: float,
    start_block: int,
    seed: int,
) -> tuple[int, int]:
    """
    Write blocks and mempool CSVs.

    Returns
    -------
    tuple[int, int]
        Number of transactions written, number of them placed in the mempool.
    """
    rng = random.Random(seed)
    total_txs = 0
    public_txs = 0

    with blocks_path.open("w", newline="", encoding="utf-8") as bf, mempool_path.open(
        "w", newline="", encoding="utf-8"
    ) as mf:
        blocks_writer = csv.writer(bf)
        mempool_writer = csv.writer(mf)
        blocks_writer.writerow(BLOCKS_HEADER)
        mempool_writer.writerow(MEMPOOL_HEADER)

        for block_number in range(start_block, start_block + blocks):
            tx_hashes = [_random_hash(rng) for _ in range(txs_per_block)]
            blocks_writer.writerow(
                [block_number, _random_hash(rng), "t", _pg_array(tx_hashes)]
            )
            for tx_hash in tx_hashes:
                if rng.random() < public_ratio:
                    mempool_writer.writerow([tx_hash])
                    public_txs += 1
            total_txs += len(tx_hashes)

    return total_txs, public_txs


def _copy_into_db(dsn: str, schema: str, blocks_path: Path, mempool_path: Path) -> None:
    targets = [
        (blocks_path, "blocks", BLOCKS_HEADER),
        (mempool_path, "unique_mempool", MEMPOOL_HEADER),
    ]
    with psycopg.connect(dsn) as conn:
        with conn.cursor() as cur:
            for path, table, columns in targets:
                statement = sql.SQL("COPY {} ({}) FROM STDIN WITH (FORMAT csv, HEADER TRUE)").format(
                    sql.Identifier(schema, table),
                    sql.SQL(", ").join(map(sql.Identifier, columns)),
                )
                with cur.copy(statement) as copy:
                    with path.open("r", encoding="utf-8") as f:
                        for line in f:
                            copy.write(line)
        conn.commit()


@app.command()
def main(
    blocks: int = typer.Option(100, "--blocks", "-b", help="Number of blocks to generate."),
    txs_per_block: int = typer.Option(150, "--txs", help="Transactions per block."),
    public_ratio: float = typer.Option(
        0.9, "--public-ratio", min=0.0, max=1.0, help="Share of txs also placed in the mempool."
    ),
    start_block: int = typer.Option(18_000_000, "--start-block", help="First block number."),
    seed: int = typer.Option(42, "--seed", help="Deterministic RNG seed."),
    output_dir: Path | None = typer.Option(
        None, "--output-dir", "-o", help="Directory for CSVs (temp dir if omitted)."
    ),
    dsn: str | None = typer.Option(None, "--dsn", help="Optional DSN override for Postgres."),
    no_load: bool = typer.Option(False, "--no-load", help="Only generate CSVs; skip loading."),
) -> None:
    """
    Generate synthetic blocks and mempool hashes, optionally loading them with COPY.
    """
    start = time.perf_counter()
    out = output_dir or Path(tempfile.mkdtemp(prefix="private_flow_csv_"))
    out.mkdir(parents=True, exist_ok=True)
    blocks_path = out / "blocks.csv"
    mempool_path = out / "unique_mempool.csv"

    typer.echo(f"Generating {blocks:,} blocks x {txs_per_block} txs -> {out} (seed={seed})")
    total, public = _generate_csvs(
        blocks_path, mempool_path, blocks, txs_per_block, public_ratio, start_block, seed
    )
    typer.echo(
        f"Generated {total:,} txs, {public:,} in mempool, {total - public:,} private "
        f"in {time.perf_counter() - start:.2f}s"
    )

    if no_load:
        typer.echo("Skipping load (no-load flag set).")
        return

    load_start = time.perf_counter()
    typer.echo("Loading CSVs into Postgres via COPY...")
    _copy_into_db(dsn or build_dsn(), get_settings().db_schema, blocks_path, mempool_path)
    typer.echo(f"Load completed in {time.perf_counter() - load_start:.2f}s.")


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
