"""Pump telemetry payload normalization.

Upstream collectors disagree on key names and encodings. This module maps
their payloads onto one `PumpEvent` contract. Readings that cannot be parsed
do not raise: they produce an event whose `issues` are non-empty, so the
classifier can route it to the fault path. Only a missing pump id raises,
because such a payload cannot be attributed to any pump.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime, timezone
from math import isfinite, nan

from pumpwatch.domain.models import EventKind, PumpEvent

_CLEAR_KINDS = frozenset({"fault_clear", "fault-clear", "faultclear", "clear"})
_TELEMETRY_KINDS = frozenset({"telemetry", "sample", "reading"})


def normalize_pump_payload(
    payload: Mapping[str, object],
    *,
    fallback_pump_id: str | None = None,
) -> PumpEvent:
    """Normalize one collector payload into a `PumpEvent`."""
    pump_id = _text_or_none(_pick(payload, "pumpId", "pump_id", "pump", "deviceId", "device_id"))
    if pump_id is None:
        pump_id = fallback_pump_id.strip() if fallback_pump_id else None
    if not pump_id:
        raise ValueError("pump_id is required for pump payload normalization")

    kind, kind_issues = _event_kind(payload)

    return PumpEvent(
        pump_id=pump_id,
        timestamp_ms=_timestamp_ms_or_invalid(
            _pick(payload, "timestamp_ms", "timestampMs", "timestamp", "ts", "time")
        ),
        flow_rate=_float_or_nan(_pick(payload, "flow_rate", "flowRate", "flow")),
        pressure=_float_or_nan(_pick(payload, "pressure", "pressure_bar", "pressureBar")),
        fault_bits=_fault_bits_or_invalid(_pick(payload, "fault_bits", "faultBits", "faults", "fault")),
        sequence=_int_or_invalid(_pick(payload, "sequence", "seq", "sequenceNumber", "sequence_number")),
        kind=kind,
        parse_issues=kind_issues,
    )


def normalize_pump_payload_batch(
    payloads: Sequence[Mapping[str, object]],
    *,
    fallback_pump_id: str | None = None,
) -> tuple[PumpEvent, ...]:
    """Normalize a batch of collector payloads, preserving order."""
    return tuple(normalize_pump_payload(payload, fallback_pump_id=fallback_pump_id) for payload in payloads)


def event_to_jsonable(event: PumpEvent) -> dict[str, object]:
    """Serialize an event using the canonical snake_case keys."""
    return {
        "pump_id": event.pump_id,
        "timestamp_ms": event.timestamp_ms,
        "flow_rate": event.flow_rate if isfinite(event.flow_rate) else None,
        "pressure": event.pressure if isfinite(event.pressure) else None,
        "fault_bits": event.fault_bits,
        "sequence": event.sequence,
        "kind": event.kind.value,
    }


def _pick(payload: Mapping[str, object], *keys: str) -> object | None:
    for key in keys:
        if key in payload:
            return payload[key]
    return None


def _text_or_none(raw: object | None) -> str | None:
    if raw is None:
        return None
    if isinstance(raw, str):
        value = raw.strip()
        return value or None
    return str(raw).strip() or None


def _event_kind(payload: Mapping[str, object]) -> tuple[EventKind, tuple[str, ...]]:
    flag = _pick(payload, "faultClear", "fault_clear")
    if flag is True:
        return EventKind.FAULT_CLEAR, ()
    raw = _text_or_none(_pick(payload, "kind", "type", "event"))
    if raw is None:
        return EventKind.TELEMETRY, ()
    lowered = raw.lower()
    if lowered in _CLEAR_KINDS:
        return EventKind.FAULT_CLEAR, ()
    if lowered in _TELEMETRY_KINDS:
        return EventKind.TELEMETRY, ()
    # Attributable but unreadable: kept as telemetry so it reaches the fault path.
    return EventKind.TELEMETRY, (f"unsupported event kind: {raw}",)


def _float_or_nan(raw: object | None) -> float:
    if raw is None or isinstance(raw, bool):
        return nan
    if isinstance(raw, (int, float)):
        return float(raw)
    if isinstance(raw, str):
        try:
            return float(raw.strip())
        except ValueError:
            return nan
    return nan


def _int_or_invalid(raw: object | None) -> int:
    if raw is None or isinstance(raw, bool):
        return -1
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        return int(raw) if raw.is_integer() else -1
    if isinstance(raw, str):
        try:
            return int(raw.strip())
        except ValueError:
            return -1
    return -1


def _fault_bits_or_invalid(raw: object | None) -> int:
    if raw is None:
        return 0
    if isinstance(raw, bool):
        return -1
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        return int(raw) if raw.is_integer() else -1
    if isinstance(raw, str):
        text = raw.strip().lower()
        if not text:
            return 0
        try:
            return int(text, 0)
        except ValueError:
            return -1
    if isinstance(raw, Sequence):
        # List of raised bit indexes.
        mask = 0
        for bit in raw:
            if isinstance(bit, bool) or not isinstance(bit, int) or bit < 0:
                return -1
            mask |= 1 << bit
        return mask
    return -1


def _timestamp_ms_or_invalid(raw: object | None) -> int:
    if raw is None or isinstance(raw, bool):
        return 0

    if isinstance(raw, (int, float)):
        numeric = float(raw)
    elif isinstance(raw, str):
        text = raw.strip()
        if not text:
            return 0
        try:
            numeric = float(text)
        except ValueError:
            try:
                return _parse_iso8601_timestamp_ms(text)
            except ValueError:
                return 0
    else:
        return 0

    if not isfinite(numeric) or numeric <= 0:
        return 0

    # Values below 1e11 are epoch seconds; epoch milliseconds are already above it.
    as_int = int(numeric)
    if as_int < 100_000_000_000:
        as_int = int(numeric * 1000)
    return as_int


def _parse_iso8601_timestamp_ms(value: str) -> int:
    normalized = value
    if normalized.endswith("Z"):
        normalized = normalized[:-1] + "+00:00"

    parsed = datetime.fromisoformat(normalized)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)
