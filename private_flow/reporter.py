from __future__ import annotations

from typing import Any, Dict, List, Optional

from rich import box
from rich.console import Console
from rich.table import Table


def format_hash(value: Any) -> str:
    """Render a hash for display; bytes become 0x-prefixed hex, NULL becomes 'NULL'."""
    if value is None:
        return "NULL"
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "0x" + bytes(value).hex()
    return str(value)


def print_results(
    results: List[Dict[str, Any]],
    show_hashes: bool = False,
    console: Optional[Console] = None,
) -> None:
    """
    Render lookup results as a rich table.

    Handles single-run results and aggregated multi-run results. With
    `show_hashes`, the private flow hashes of each result are listed below the
    summary table.
    """
    console = console or Console()

    if not results:
        console.print("[yellow]No results to display.[/yellow]")
        return

    is_aggregated = isinstance(results[0].get("runs"), int) and results[0]["runs"] > 1

    table = Table(title="Private Flow Lookups", box=box.ROUNDED)
    table.add_column("Block", justify="right", style="cyan", no_wrap=True)
    table.add_column("Block Hash", style="dim")
    table.add_column("Lookup", style="magenta")
    table.add_column("Private Txs", justify="right", style="bold green")

    if is_aggregated:
        table.add_column("Runs", justify="right", style="blue")
        table.add_column("Failed", justify="right", style="red")
        table.add_column("Duration (s)\n[dim](Median ± StdDev)[/dim]", justify="right", style="green")
        table.add_column("Consistent", justify="center")
    else:
        table.add_column("Duration (s)", justify="right", style="green")
    table.add_column("Error", style="red")

    for res in results:
        block_number = str(res.get("block_number", "?"))
        block_hash = format_hash(res.get("block_hash"))
        lookup = res.get("lookup", "unknown")
        # Failed lookups have no row count.
        rows = "[red]n/a[/red]" if res.get("error") else f"{res.get('rows', 0):,}"
        error = res.get("error") or ""

        if is_aggregated:
            duration = res["duration_seconds"]
            duration_str = f"{duration['median']:.4f} ± {duration['stddev']:.4f}"
            if res.get("consistent") is None:
                consistent = "[yellow]n/a[/yellow]"
            elif res["consistent"]:
                consistent = "[green]yes[/green]"
            else:
                consistent = "[red]no[/red]"
            table.add_row(
                block_number,
                block_hash,
                lookup,
                rows,
                str(res["runs"]),
                str(res.get("failed_runs", 0)),
                duration_str,
                consistent,
                error,
            )
        else:
            duration_str = f"{res.get('duration_seconds', 0.0):.4f}"
            table.add_row(block_number, block_hash, lookup, rows, duration_str, error)

    console.print(table)

    if show_hashes:
        for res in results:
            console.print(
                f"[cyan]{res.get('block_number')}[/cyan] [magenta]{res.get('lookup')}[/magenta]"
            )
            for tx_hash in res.get("tx_hashes", []):
                console.print(f"  {format_hash(tx_hash)}")


__all__ = ["format_hash", "print_results"]
