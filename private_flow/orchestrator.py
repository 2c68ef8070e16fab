"""
Orchestrator for running private flow lookups, profiling them, and persisting results.

Usage (example from CLI):
    from private_flow.domain import BlockRef
    from private_flow.orchestrator import RunConfig, run_lookups

    results = run_lookups(
        RunConfig(blocks=[BlockRef(block_number=100, block_hash="0xabc")], lookup_names=["all"])
    )

Outputs are saved to `results/` when persisting:
- `results/latest.json` (last run)
- `results/run-<timestamp>.json` (timestamped archive)
"""

from __future__ import annotations

import json
import statistics
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Literal, Optional, Sequence

from private_flow.config import get_settings
from private_flow.domain.models import BlockRef, HashValue
from private_flow.lookups.abstract import LookupResult, LookupStrategy
from private_flow.lookups.async_lookup import AsyncLookup
from private_flow.lookups.cached_mempool import CachedMempoolLookup, shared_mempool_cache
from private_flow.lookups.pooled import PooledLookup
from private_flow.lookups.server_side import ServerSideLookup
from private_flow.utils.logging import get_logger
from private_flow.utils.profiler import ProfileStats, profile_block

log = get_logger(__name__)

FailurePolicy = Literal["strict", "tolerant"]


@dataclass
class RunConfig:
    """
    Parameters for one orchestrated run.

    Attributes
    ----------
    blocks : sequence of BlockRef
        Blocks to look up.
    lookup_names : sequence of str
        Lookup strategies to use. ["all"] runs every registered lookup.
    statement_timeout_ms : int, optional
        Forwarded to every lookup. None uses DB_STATEMENT_TIMEOUT_MS.
    runs : int
        Repetitions per (block, lookup). More than one adds duration statistics
        and an idempotence check.
    persist : bool
        Whether to write results to `results_dir`.
    results_dir : Path | str
        Directory for JSON artifacts.
    failure_policy : "strict" | "tolerant"
        strict re-raises the engine error; tolerant records it and continues.
    """

    blocks: Sequence[BlockRef]
    lookup_names: Sequence[str] = field(default_factory=lambda: ["all"])
    statement_timeout_ms: Optional[int] = None
    runs: int = 1
    persist: bool = False
    results_dir: Path | str = "results"
    failure_policy: FailurePolicy = "strict"

    def __post_init__(self) -> None:
        if self.runs < 1:
            raise ValueError(f"runs must be >= 1, got {self.runs}")
        if self.failure_policy not in ("strict", "tolerant"):
            raise ValueError(f"Unknown failure policy '{self.failure_policy}'")


def _round_float(value: float, decimals: int = 4) -> float:
    return round(value, decimals)


def _lookup_factories() -> Dict[str, Callable[[], LookupStrategy]]:
    """Registry of available lookups."""
    return {
        "server_side": lambda: ServerSideLookup(),
        "pooled": lambda: PooledLookup(),
        "cached_mempool": lambda: CachedMempoolLookup(cache=shared_mempool_cache()),
        "async": lambda: AsyncLookup(),
    }


def available_lookups() -> List[str]:
    """List available lookup names."""
    return sorted(_lookup_factories().keys())


def _resolve_lookup(name: str) -> LookupStrategy:
    factories = _lookup_factories()
    if name not in factories:
        raise ValueError(f"Unknown lookup '{name}'. Available: {', '.join(sorted(factories))}")
    return factories[name]()


def _expand_names(names: Sequence[str]) -> List[str]:
    names = list(names)
    if len(names) == 1 and names[0] == "all":
        return available_lookups()
    for name in names:
        if name not in _lookup_factories():
            raise ValueError(f"Unknown lookup '{name}'. Available: {', '.join(available_lookups())}")
    return names


def json_default(value: Any) -> Any:
    """JSON fallback: bytes hashes become 0x-prefixed hex."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "0x" + bytes(value).hex()
    return str(value)


def _persist_results(payload: dict, results_dir: Path) -> None:
    results_dir.mkdir(parents=True, exist_ok=True)
    latest_path = results_dir / "latest.json"
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    archive_path = results_dir / f"run-{timestamp}.json"

    for path in (latest_path, archive_path):
        with path.open("w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, sort_keys=True, default=json_default)

    log.info("Results persisted", extra={"latest": str(latest_path), "archive": str(archive_path)})


def _merge_result(result: LookupResult, stats: ProfileStats) -> dict:
    """Merge a lookup result with profiler stats; profiler timing wins."""
    merged: Dict[str, Any] = dict(result)
    merged.setdefault("tx_hashes", [])
    merged["rows"] = len(merged["tx_hashes"])
    merged["duration_seconds"] = _round_float(stats.duration_seconds)
    merged["peak_rss_bytes"] = stats.peak_rss_bytes
    merged["cpu_percent"] = _round_float(stats.cpu_percent, 1) if stats.cpu_percent else None
    merged["profile"] = {
        "label": stats.label,
        "start_ts": _round_float(stats.start_ts, 3),
        "end_ts": _round_float(stats.end_ts, 3),
        "duration_seconds": _round_float(stats.duration_seconds),
    }
    return merged


def _profiled_execute(
    strategy: LookupStrategy,
    block: BlockRef,
    statement_timeout_ms: Optional[int],
    failure_policy: FailurePolicy,
) -> dict:
    context = {"lookup": strategy.name, "block_number": block.block_number}
    log.info(f"[LOOKUP START] {strategy.name}", extra=context)
    with profile_block(strategy.name) as stats:
        try:
            result = strategy.execute(block, statement_timeout_ms)
        except Exception as exc:
            if failure_policy == "strict":
                log.exception(f"[LOOKUP FAILED] {strategy.name}", extra=context)
                raise
            log.warning(
                f"[LOOKUP FAILED] {strategy.name}",
                extra={**context, "error": str(exc)},
                exc_info=True,
            )
            result = LookupResult(
                block_number=block.block_number,
                block_hash=block.block_hash,
                tx_hashes=[],
                error=str(exc),
                notes="Lookup failed in tolerant mode; run continued.",
                extra={
                    "failed": True,
                    "error_type": type(exc).__name__,
                    "failure_policy": failure_policy,
                },
            )
        else:
            log.info(
                f"[LOOKUP SUCCESS] {strategy.name}",
                extra={**context, "rows": len(result.get("tx_hashes", []))},
            )

    return _merge_result(result, stats)


def same_hashes(left: Sequence[Optional[HashValue]], right: Sequence[Optional[HashValue]]) -> bool:
    """Order-insensitive comparison that still counts duplicates."""
    return Counter(left) == Counter(right)


def _aggregate_runs(run_results: List[dict]) -> dict:
    """
    Summarize repeated runs of one lookup on one block.

    `consistent` is True when every successful run returned the same hashes,
    and None when no run succeeded. In that case `error` carries the last
    run's error so the entry cannot pass for an empty private flow.
    """
    durations = [r["duration_seconds"] for r in run_results]
    ok_runs = [r for r in run_results if not r.get("error")]
    reference = ok_runs[0]["tx_hashes"] if ok_runs else []
    consistent: Optional[bool] = (
        all(same_hashes(reference, r["tx_hashes"]) for r in ok_runs) if ok_runs else None
    )

    aggregated: Dict[str, Any] = {
        "block_number": run_results[0]["block_number"],
        "block_hash": run_results[0]["block_hash"],
        "tx_hashes": reference,
        "rows": len(reference),
        "failed_runs": len(run_results) - len(ok_runs),
        "consistent": consistent,
        "duration_seconds": {
            "median": _round_float(statistics.median(durations)),
            "mean": _round_float(statistics.mean(durations)),
            "stddev": _round_float(statistics.stdev(durations)) if len(durations) > 1 else 0.0,
            "min": min(durations),
            "max": max(durations),
        },
    }
    if not ok_runs:
        aggregated["error"] = run_results[-1]["error"]
    return aggregated


def _lookups_agree(block_results: List[dict]) -> bool:
    ok = [r for r in block_results if not r.get("error") and not r.get("failed_runs")]
    return all(same_hashes(ok[0]["tx_hashes"], r["tx_hashes"]) for r in ok[1:])


def run_lookups(config: RunConfig) -> List[dict]:
    """
    Run the configured lookups for every block and optionally persist results.

    Returns
    -------
    List[dict]
        One entry per (block, lookup). With runs > 1 each entry carries
        duration statistics, a `consistent` flag, and `individual_runs`.
    """
    names = _expand_names(config.lookup_names)
    total_global_runs = len(config.blocks) * len(names) * config.runs
    current_run = 0

    results: List[dict] = []
    agreement: List[dict] = []
    # One instance per lookup for the whole run: pools and mempool snapshots
    # are reused across blocks and repetitions, then closed once.
    strategies: Dict[str, LookupStrategy] = {}
    try:
        for block in config.blocks:
            block_results: List[dict] = []
            for name in names:
                if name not in strategies:
                    strategies[name] = _resolve_lookup(name)
                run_results: List[dict] = []
                for run_num in range(1, config.runs + 1):
                    current_run += 1
                    log.info(
                        f"[RUN {current_run}/{total_global_runs}] {name} block={block.block_number}",
                        extra={"lookup": name, "run": run_num, "block_number": block.block_number},
                    )
                    result = _profiled_execute(
                        strategies[name], block, config.statement_timeout_ms, config.failure_policy
                    )
                    result["lookup"] = name
                    result["run"] = run_num
                    run_results.append(result)

                if config.runs > 1:
                    aggregated = _aggregate_runs(run_results)
                    aggregated["lookup"] = name
                    aggregated["runs"] = config.runs
                    aggregated["individual_runs"] = run_results
                    if aggregated.get("error"):
                        log.warning(
                            f"[ALL RUNS FAILED] {name}",
                            extra={"lookup": name, "block_number": block.block_number},
                        )
                    elif aggregated["consistent"] is False:
                        log.warning(
                            f"[IDEMPOTENCE] {name} returned different hashes across runs",
                            extra={"lookup": name, "block_number": block.block_number},
                        )
                    block_results.append(aggregated)
                else:
                    block_results.extend(run_results)

            agree = _lookups_agree(block_results)
            if not agree:
                log.warning(
                    "[AGREEMENT] lookups returned different hashes",
                    extra={"block_number": block.block_number, "lookups": names},
                )
            agreement.append(
                {"block_number": block.block_number, "block_hash": block.block_hash, "agree": agree}
            )
            results.extend(block_results)
    finally:
        for strategy in strategies.values():
            strategy.close()

    if config.persist:
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "schema": get_settings().db_schema,
            "lookups": names,
            "agreement": agreement,
            "results": results,
        }
        _persist_results(payload, Path(config.results_dir))

    log.info(
        f"[ORCHESTRATOR COMPLETE] {len(results)} lookup result(s)",
        extra={"lookups": names, "blocks": len(config.blocks)},
    )
    return results


def lookup_private_flow(
    block_number: int,
    block_hash: HashValue,
    lookup: Optional[str] = None,
    statement_timeout_ms: Optional[int] = None,
    strategy: Optional[LookupStrategy] = None,
) -> List[Optional[HashValue]]:
    """
    Return the block's transaction hashes that never appeared in the mempool.

    Thin wrapper over a single lookup; engine errors propagate unchanged and
    an unknown block yields an empty list. Pass `strategy` to reuse one
    instance (and its pool) across calls; the caller then owns its `close()`.
    Otherwise a registry lookup is built and closed per call, and the
    `cached_mempool` lookup still shares the process-wide mempool snapshot.
    """
    block = BlockRef(block_number=block_number, block_hash=block_hash)
    if strategy is not None:
        return strategy.execute(block, statement_timeout_ms)["tx_hashes"]

    owned = _resolve_lookup(lookup or get_settings().default_lookup)
    try:
        return owned.execute(block, statement_timeout_ms)["tx_hashes"]
    finally:
        owned.close()


__all__ = [
    "RunConfig",
    "available_lookups",
    "json_default",
    "lookup_private_flow",
    "run_lookups",
    "same_hashes",
]
