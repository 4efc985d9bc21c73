"""Unit tests for pump event validation and decision records."""

from __future__ import annotations

from pumpwatch.domain import Decision, EventKind, PumpEvent, PumpState, ReasonCode


def _event(**overrides: object) -> PumpEvent:
    fields: dict[str, object] = {
        "pump_id": "P-01",
        "timestamp_ms": 1_735_801_000_000,
        "flow_rate": 5.0,
        "pressure": 2.0,
        "fault_bits": 0,
        "sequence": 1,
    }
    fields.update(overrides)
    return PumpEvent(**fields)  # type: ignore[arg-type]


def test_clean_event_has_no_issues() -> None:
    event = _event()

    assert event.is_valid
    assert event.issues == ()
    assert event.kind == EventKind.TELEMETRY


def test_negative_readings_mark_event_invalid_without_raising() -> None:
    event = _event(flow_rate=-1.0, pressure=-0.5)

    assert not event.is_valid
    assert any("flow_rate is negative" in issue for issue in event.issues)
    assert any("pressure is negative" in issue for issue in event.issues)


def test_parse_issues_are_reported_first() -> None:
    event = _event(parse_issues=("unsupported event kind: reboot",), sequence=-1)

    assert not event.is_valid
    assert event.issues == ("unsupported event kind: reboot", "sequence is negative: -1")


def test_non_finite_reading_is_invalid() -> None:
    event = _event(flow_rate=float("nan"))

    assert not event.is_valid
    assert any("finite" in issue for issue in event.issues)


def test_malformed_fault_bitmask_is_invalid() -> None:
    assert not _event(fault_bits=-4).is_valid
    assert not _event(fault_bits=True).is_valid


def test_raised_fault_bits_are_ascending() -> None:
    event = _event(fault_bits=0b10110)

    assert event.has_fault
    assert event.raised_fault_bits() == (1, 2, 4)


def test_decision_changed_flag() -> None:
    event = _event()
    transition = Decision(
        pump_id="P-01",
        prior_state=PumpState.UNKNOWN,
        new_state=PumpState.RUNNING,
        event=event,
        reason=ReasonCode.INITIAL_CLASSIFICATION,
        timestamp_ms=event.timestamp_ms,
    )
    steady = Decision(
        pump_id="P-01",
        prior_state=PumpState.RUNNING,
        new_state=PumpState.RUNNING,
        event=event,
        reason=ReasonCode.STEADY,
        timestamp_ms=event.timestamp_ms,
    )

    assert transition.changed is True
    assert steady.changed is False
