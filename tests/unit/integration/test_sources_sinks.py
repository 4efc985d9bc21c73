"""Unit tests for event sources and decision sinks."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from pumpwatch.domain import Decision, PumpEvent, PumpState, ReasonCode, SourceUnavailableError
from pumpwatch.integration import (
    CollectingDecisionSink,
    JsonLinesDecisionSink,
    JsonLinesEventSource,
    LoggingDecisionSink,
    NpzEventSource,
    StaticEventSource,
    decision_to_jsonable,
)

FIXTURES_DIR = Path(__file__).resolve().parents[2] / "fixtures" / "pumps"


def _decision(seq: int = 1) -> Decision:
    event = PumpEvent(
        pump_id="P-01",
        timestamp_ms=1_735_801_000_000,
        flow_rate=5.0,
        pressure=2.0,
        fault_bits=0,
        sequence=seq,
    )
    return Decision(
        pump_id="P-01",
        prior_state=PumpState.UNKNOWN,
        new_state=PumpState.RUNNING,
        event=event,
        reason=ReasonCode.INITIAL_CLASSIFICATION,
        timestamp_ms=event.timestamp_ms,
        detail="first sample classified as running",
    )


def test_jsonl_source_reads_fixture_and_skips_unattributable_lines() -> None:
    source = JsonLinesEventSource(FIXTURES_DIR / "events.jsonl")

    events = source.fetch_batch()

    assert len(events) == 10
    assert {event.pump_id for event in events} == {"P-01", "P-02"}
    assert source.rejected_lines == 1
    assert source.fetch_batch() == ()


def test_jsonl_source_tails_appended_lines(tmp_path: Path) -> None:
    path = tmp_path / "events.jsonl"
    path.write_text(json.dumps({"pumpId": "P-01", "ts": 1_735_801_000, "flow": 5, "pressure": 2, "seq": 1}) + "\n")
    source = JsonLinesEventSource(path)

    assert len(source.fetch_batch()) == 1

    with path.open("a", encoding="utf-8") as handle:
        handle.write(json.dumps({"pumpId": "P-01", "ts": 1_735_801_001, "flow": 5, "pressure": 2, "seq": 2}) + "\n")
        handle.write('{"pumpId": "P-01", "seq": 3')

    second = source.fetch_batch()
    assert [event.sequence for event in second] == [2]


def test_jsonl_source_honours_batch_size(tmp_path: Path) -> None:
    path = tmp_path / "events.jsonl"
    lines = [
        json.dumps({"pumpId": "P-01", "ts": 1_735_801_000 + seq, "flow": 5, "pressure": 2, "seq": seq})
        for seq in range(1, 6)
    ]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    source = JsonLinesEventSource(path, batch_size=2)

    sizes = [len(source.fetch_batch()) for _ in range(4)]

    assert sizes == [2, 2, 1, 0]


def test_jsonl_source_skips_line_with_invalid_utf8(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    path = tmp_path / "events.jsonl"
    first = json.dumps({"pumpId": "P-01", "ts": 1_735_801_000, "flow": 5, "pressure": 2, "seq": 1})
    second = json.dumps({"pumpId": "P-01", "ts": 1_735_801_001, "flow": 5, "pressure": 2, "seq": 2})
    path.write_bytes(first.encode("utf-8") + b"\n" + b"\xff\xfe\n" + second.encode("utf-8") + b"\n")
    source = JsonLinesEventSource(path)

    with caplog.at_level(logging.WARNING, logger="pumpwatch.integration.sources"):
        events = source.fetch_batch()

    assert [event.sequence for event in events] == [1, 2]
    assert source.rejected_lines == 1
    assert "not valid UTF-8" in caplog.text


def test_jsonl_source_keeps_unknown_kind_as_invalid_event(tmp_path: Path) -> None:
    path = tmp_path / "events.jsonl"
    payload = {"pumpId": "P-01", "ts": 1_735_801_000, "flow": 5, "pressure": 2, "seq": 1, "kind": "reboot"}
    path.write_text(json.dumps(payload) + "\n", encoding="utf-8")
    source = JsonLinesEventSource(path)

    events = source.fetch_batch()

    assert source.rejected_lines == 0
    assert len(events) == 1
    assert not events[0].is_valid
    assert any("unsupported event kind" in issue for issue in events[0].issues)


def test_jsonl_source_missing_file_is_fatal(tmp_path: Path) -> None:
    source = JsonLinesEventSource(tmp_path / "absent.jsonl")

    with pytest.raises(SourceUnavailableError):
        source.fetch_batch()


def test_npz_source_missing_file_is_fatal(tmp_path: Path) -> None:
    with pytest.raises(SourceUnavailableError):
        NpzEventSource(tmp_path / "absent.npz").fetch_batch()


def test_static_source_returns_empty_when_exhausted() -> None:
    event = _decision().event
    source = StaticEventSource([(event,)])

    assert source.fetch_batch() == (event,)
    assert source.fetch_batch() == ()


def test_collecting_sink_is_idempotent() -> None:
    sink = CollectingDecisionSink()
    decision = _decision()

    assert sink.emit(decision)
    assert sink.emit(decision)

    assert sink.decisions == (decision,)


def test_jsonl_sink_writes_each_decision_once(tmp_path: Path) -> None:
    path = tmp_path / "out" / "decisions.jsonl"
    sink = JsonLinesDecisionSink(path)

    sink.emit(_decision(1))
    sink.emit(_decision(1))
    sink.emit(_decision(2))

    rows = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert [row["event"]["sequence"] for row in rows] == [1, 2]
    assert rows[0]["new_state"] == "running"
    assert rows[0]["changed"] is True


def test_logging_sink_logs_decision(caplog: pytest.LogCaptureFixture) -> None:
    sink = LoggingDecisionSink()

    with caplog.at_level(logging.INFO, logger="pumpwatch.decisions"):
        assert sink.emit(_decision())

    assert "unknown -> running" in caplog.text


def test_decision_to_jsonable_round_fields() -> None:
    payload = decision_to_jsonable(_decision())

    assert payload["reason"] == "initial-classification"
    assert payload["fault_bit"] is None
    assert json.dumps(payload)
