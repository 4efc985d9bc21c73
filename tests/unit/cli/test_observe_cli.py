"""Tests for the observation CLI."""

from __future__ import annotations

import json
from pathlib import Path

import numpy as np

from pumpwatch.cli import observe

FIXTURES_DIR = Path(__file__).resolve().parents[2] / "fixtures" / "pumps"


def test_main_writes_decisions_and_report(tmp_path: Path) -> None:
    decisions_path = tmp_path / "decisions.jsonl"
    report_path = tmp_path / "report.json"

    exit_code = observe.main(
        [
            "--events",
            str(FIXTURES_DIR / "events.jsonl"),
            "--decisions",
            str(decisions_path),
            "--report",
            str(report_path),
        ]
    )

    assert exit_code == 0
    rows = [json.loads(line) for line in decisions_path.read_text(encoding="utf-8").splitlines()]
    assert len(rows) == 8
    assert all(row["changed"] for row in rows)

    p01 = [row["new_state"] for row in rows if row["pump_id"] == "P-01"]
    assert p01 == ["running", "throttled", "fault", "idle"]
    fault_row = next(row for row in rows if row["new_state"] == "fault" and row["pump_id"] == "P-01")
    assert fault_row["fault_bit"] == 2

    p02 = [row["reason"] for row in rows if row["pump_id"] == "P-02"]
    assert p02[-1] == "malformed-input"

    report = json.loads(report_path.read_text(encoding="utf-8"))
    assert report["totals"]["events_seen"] == 10
    assert report["totals"]["transitions"] == 8
    assert report["final_states"] == {"P-01": "idle", "P-02": "fault"}
    assert report["batches"][0]["anomalies"]["invalid_event"] == 1


def test_main_audit_mode_emits_every_decision(tmp_path: Path) -> None:
    decisions_path = tmp_path / "decisions.jsonl"

    exit_code = observe.main(
        [
            "--events",
            str(FIXTURES_DIR / "events.jsonl"),
            "--decisions",
            str(decisions_path),
            "--audit",
            "--workers",
            "2",
        ]
    )

    assert exit_code == 0
    assert len(decisions_path.read_text(encoding="utf-8").splitlines()) == 10


def test_main_reads_npz_with_policy_override(tmp_path: Path) -> None:
    events_path = tmp_path / "events.npz"
    np.savez(
        events_path,
        pump_id=np.array(["P-07"] * 3),
        timestamp_ms=np.array([1_000, 2_000, 3_000], dtype=np.int64),
        flow_rate=np.array([5.0, 5.0, 5.0]),
        pressure=np.array([2.0, 9.0, 9.0]),
        fault_bits=np.zeros(3, dtype=np.int64),
        sequence=np.array([1, 2, 3], dtype=np.int64),
    )
    policy_path = tmp_path / "policy.json"
    policy_path.write_text(json.dumps({"hysteresis_samples": 2}), encoding="utf-8")
    report_path = tmp_path / "report.json"

    exit_code = observe.main(
        ["--events", str(events_path), "--policy", str(policy_path), "--report", str(report_path)]
    )

    assert exit_code == 0
    report = json.loads(report_path.read_text(encoding="utf-8"))
    assert report["final_states"] == {"P-07": "throttled"}


def test_main_missing_input_returns_error(tmp_path: Path) -> None:
    exit_code = observe.main(["--events", str(tmp_path / "missing.jsonl")])

    assert exit_code == 2
