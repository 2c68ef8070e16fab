from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any, Optional

import pytest

from private_flow import orchestrator
from private_flow.domain import BlockRef
from private_flow.orchestrator import RunConfig, _merge_result, lookup_private_flow, run_lookups
from private_flow.utils.profiler import ProfileStats

BLOCK = BlockRef(block_number=100, block_hash="0xabc")
OTHER_BLOCK = BlockRef(block_number=101, block_hash="0xdef")
MEASUREMENT_RUN_COUNT = 3
EXPECTED_DURATION = 2.0


class _StubLookup:
    name = "stub"
    description = "test lookup with explicit close lifecycle"

    def __init__(
        self, hashes: Optional[list[Any]] = None, answers: Optional[list[list[Any]]] = None
    ) -> None:
        self.hashes = ["t1", "t3"] if hashes is None else hashes
        self._answers = iter(answers) if answers is not None else None
        self.close_calls = 0
        self.calls: list[tuple[BlockRef, Optional[int]]] = []

    def execute(self, block: BlockRef, statement_timeout_ms: Optional[int] = None) -> dict[str, Any]:
        self.calls.append((block, statement_timeout_ms))
        hashes = next(self._answers) if self._answers is not None else self.hashes
        return {
            "block_number": block.block_number,
            "block_hash": block.block_hash,
            "tx_hashes": list(hashes),
            "rows": len(hashes),
            "duration_seconds": 0.001,
        }

    def close(self) -> None:
        self.close_calls += 1


class _FailingLookup(_StubLookup):
    name = "failing"

    def execute(self, block: BlockRef, statement_timeout_ms: Optional[int] = None) -> dict[str, Any]:
        del block, statement_timeout_ms
        raise RuntimeError("canceling statement due to statement timeout")


def _install(monkeypatch, factories: dict[str, Callable[[], Any]]) -> None:
    monkeypatch.setattr(orchestrator, "_lookup_factories", lambda: factories)


def test_merge_result_overrides_lookup_timing() -> None:
    result = {"tx_hashes": ["a", "b"], "rows": 99, "duration_seconds": 1.0}
    stats = ProfileStats(
        label="test", start_ts=1.0, end_ts=3.0, duration_seconds=2.0, peak_rss_bytes=123, cpu_percent=12.34
    )

    merged = _merge_result(result, stats)

    assert merged["duration_seconds"] == EXPECTED_DURATION
    assert merged["rows"] == 2
    assert merged["peak_rss_bytes"] == 123
    assert merged["cpu_percent"] == 12.3
    assert merged["profile"]["label"] == "test"


def test_run_lookups_reuses_one_instance_and_closes_it_once(monkeypatch) -> None:
    created: list[_StubLookup] = []

    def make() -> _StubLookup:
        created.append(_StubLookup())
        return created[-1]

    _install(monkeypatch, {"stub": make})

    results = run_lookups(
        RunConfig(blocks=[BLOCK, OTHER_BLOCK], lookup_names=["stub"], statement_timeout_ms=750)
    )

    assert len(results) == 2
    assert [r["block_number"] for r in results] == [100, 101]
    assert all(r["lookup"] == "stub" for r in results)
    assert len(created) == 1
    assert created[0].close_calls == 1
    assert created[0].calls == [(BLOCK, 750), (OTHER_BLOCK, 750)]


def test_strict_policy_reraises_engine_error_and_closes(monkeypatch) -> None:
    created: list[_FailingLookup] = []

    def make() -> _FailingLookup:
        created.append(_FailingLookup())
        return created[-1]

    _install(monkeypatch, {"failing": make})

    with pytest.raises(RuntimeError, match="statement timeout"):
        run_lookups(RunConfig(blocks=[BLOCK], lookup_names=["failing"], runs=2))

    assert len(created) == 1
    assert created[0].close_calls == 1


def test_tolerant_policy_records_failures(monkeypatch) -> None:
    created: list[_FailingLookup] = []

    def make() -> _FailingLookup:
        created.append(_FailingLookup())
        return created[-1]

    _install(monkeypatch, {"failing": make})

    results = run_lookups(
        RunConfig(blocks=[BLOCK], lookup_names=["failing"], runs=2, failure_policy="tolerant")
    )

    assert len(results) == 1
    assert results[0]["failed_runs"] == 2
    assert results[0]["error"] == "canceling statement due to statement timeout"
    assert results[0]["consistent"] is None
    assert len(created) == 1
    assert created[0].close_calls == 1
    for run in results[0]["individual_runs"]:
        assert run["error"] == "canceling statement due to statement timeout"
        assert run["tx_hashes"] == []
        assert run["rows"] == 0
        assert run["extra"]["error_type"] == "RuntimeError"
        assert run["extra"]["failure_policy"] == "tolerant"


def test_repeated_runs_are_aggregated_and_checked_for_consistency(monkeypatch) -> None:
    answers = [["t1", "t3"], ["t3", "t1"], ["t1", "t3"]]
    _install(monkeypatch, {"stub": lambda: _StubLookup(answers=answers)})

    results = run_lookups(RunConfig(blocks=[BLOCK], lookup_names=["stub"], runs=MEASUREMENT_RUN_COUNT))

    aggregated = results[0]
    assert aggregated["runs"] == MEASUREMENT_RUN_COUNT
    assert aggregated["consistent"] is True
    assert aggregated["rows"] == 2
    assert len(aggregated["individual_runs"]) == MEASUREMENT_RUN_COUNT
    assert set(aggregated["duration_seconds"]) == {"median", "mean", "stddev", "min", "max"}


def test_inconsistent_runs_are_flagged(monkeypatch) -> None:
    _install(monkeypatch, {"stub": lambda: _StubLookup(answers=[["t1", "t3"], ["t1"]])})

    results = run_lookups(RunConfig(blocks=[BLOCK], lookup_names=["stub"], runs=2))

    assert results[0]["consistent"] is False


def test_all_expands_to_every_registered_lookup(monkeypatch) -> None:
    _install(
        monkeypatch,
        {"b_stub": lambda: _StubLookup(["t1", "t3"]), "a_stub": lambda: _StubLookup(["t3", "t1"])},
    )

    results = run_lookups(RunConfig(blocks=[BLOCK], lookup_names=["all"]))

    assert [r["lookup"] for r in results] == ["a_stub", "b_stub"]


def test_unknown_lookup_name_raises(monkeypatch) -> None:
    _install(monkeypatch, {"stub": _StubLookup})

    with pytest.raises(ValueError, match="Unknown lookup 'nope'"):
        run_lookups(RunConfig(blocks=[BLOCK], lookup_names=["nope"]))


def test_run_config_validates_runs_and_policy() -> None:
    with pytest.raises(ValueError):
        RunConfig(blocks=[BLOCK], runs=0)
    with pytest.raises(ValueError):
        RunConfig(blocks=[BLOCK], failure_policy="lenient")  # type: ignore[arg-type]


def test_persisted_payload_contains_agreement_and_hex_bytes(monkeypatch, tmp_path: Path) -> None:
    _install(
        monkeypatch,
        {
            "left": lambda: _StubLookup([b"\xaa\xbb", b"\xcc"]),
            "right": lambda: _StubLookup([b"\xcc"]),
        },
    )

    run_lookups(
        RunConfig(
            blocks=[BLOCK],
            lookup_names=["left", "right"],
            persist=True,
            results_dir=tmp_path,
        )
    )

    payload = json.loads((tmp_path / "latest.json").read_text(encoding="utf-8"))
    assert payload["lookups"] == ["left", "right"]
    assert payload["agreement"] == [{"block_number": 100, "block_hash": "0xabc", "agree": False}]
    assert payload["results"][0]["tx_hashes"] == ["0xaabb", "0xcc"]
    assert len(list(tmp_path.glob("run-*.json"))) == 1


def test_lookup_private_flow_returns_hashes_and_closes(monkeypatch) -> None:
    created: list[_StubLookup] = []

    def make() -> _StubLookup:
        created.append(_StubLookup())
        return created[-1]

    _install(monkeypatch, {"stub": make})

    assert lookup_private_flow(100, "0xabc", lookup="stub", statement_timeout_ms=0) == ["t1", "t3"]
    assert created[0].close_calls == 1
    assert created[0].calls[0] == (BLOCK, 0)


def test_lookup_private_flow_leaves_injected_strategy_open(monkeypatch) -> None:
    _install(monkeypatch, {})
    shared = _StubLookup()

    for _ in range(3):
        assert lookup_private_flow(100, "0xabc", strategy=shared) == ["t1", "t3"]

    assert len(shared.calls) == 3
    assert shared.close_calls == 0


class _FlakyLookup(_StubLookup):
    name = "flaky"

    def execute(self, block: BlockRef, statement_timeout_ms: Optional[int] = None) -> dict[str, Any]:
        if not self.calls:
            self.calls.append((block, statement_timeout_ms))
            raise RuntimeError("connection reset")
        return super().execute(block, statement_timeout_ms)


def test_partially_failed_runs_keep_successful_hashes(monkeypatch) -> None:
    _install(monkeypatch, {"flaky": _FlakyLookup})

    results = run_lookups(
        RunConfig(blocks=[BLOCK], lookup_names=["flaky"], runs=3, failure_policy="tolerant")
    )

    aggregated = results[0]
    assert aggregated["failed_runs"] == 1
    assert aggregated["consistent"] is True
    assert aggregated["tx_hashes"] == ["t1", "t3"]
    assert "error" not in aggregated
