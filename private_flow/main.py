from __future__ import annotations

import json
import sys
from typing import Optional

import typer

from private_flow.config import get_settings
from private_flow.domain.models import BlockRef
from private_flow.orchestrator import RunConfig, available_lookups, json_default, run_lookups
from private_flow.reporter import print_results
from private_flow.utils.logging import configure_logging

app = typer.Typer(help="Private flow lookup: block transactions never seen in the mempool.")


def _parse_block_hash(value: str, as_bytes: bool) -> str | bytes:
    if not as_bytes:
        return value
    try:
        return bytes.fromhex(value.lower().removeprefix("0x"))
    except ValueError as exc:
        raise typer.BadParameter(
            f"{value!r} is not a hex string", param_hint="--block-hash"
        ) from exc


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} "
        f"schema={settings.db_schema} | timeout_ms={settings.db_statement_timeout_ms} "
        f"pool=({settings.db_pool_min_size},{settings.db_pool_max_size}) "
        f"default_lookup={settings.default_lookup} "
        f"mempool_cache_ttl={settings.mempool_cache_ttl_seconds}s"
    )


@app.command()
def lookups() -> None:
    """
    List the available lookup strategies.
    """
    typer.echo("Available lookups: " + ", ".join(available_lookups()))


@app.command()
def run(
    block_number: int = typer.Option(..., "--block-number", "-n", help="Block height."),
    block_hash: str = typer.Option(..., "--block-hash", "-H", help="Block hash as stored."),
    lookup: Optional[str] = typer.Option(
        None,
        "--lookup",
        "-l",
        help="Lookup to use (server_side, pooled, cached_mempool, async, all). Default from settings.",
    ),
    timeout_ms: Optional[int] = typer.Option(
        None, "--timeout-ms", "-t", min=0, help="Statement timeout in ms (0 disables)."
    ),
    runs: int = typer.Option(1, "--runs", min=1, help="Repetitions per lookup."),
    bytes_hash: bool = typer.Option(
        False, "--bytes-hash", help="Send the block hash as bytes (bytea columns)."
    ),
    persist: bool = typer.Option(False, "--persist/--no-persist", help="Write results/ JSON."),
    tolerant: bool = typer.Option(
        False, "--tolerant", help="Record lookup errors instead of aborting."
    ),
    as_json: bool = typer.Option(False, "--json", help="Print raw JSON instead of a table."),
    show_hashes: bool = typer.Option(True, "--hashes/--no-hashes", help="List private hashes."),
) -> None:
    """
    Look up the private flow of one block.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)

    block = BlockRef(block_number=block_number, block_hash=_parse_block_hash(block_hash, bytes_hash))
    results = run_lookups(
        RunConfig(
            blocks=[block],
            lookup_names=[lookup or settings.default_lookup],
            statement_timeout_ms=timeout_ms,
            runs=runs,
            persist=persist,
            failure_policy="tolerant" if tolerant else "strict",
        )
    )
    if as_json:
        typer.echo(json.dumps(results, indent=2, default=json_default))
    else:
        print_results(results, show_hashes=show_hashes)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
