"""JSON policy loading for classifier thresholds and fault ranking."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping, cast

from pumpwatch.classification.contracts import ClassifierPolicy, FaultCode

_INT_FIELDS = ("hysteresis_samples", "reorder_window", "history_size", "priming_timeout_ms", "fault_mask_bits")
_FLOAT_FIELDS = ("idle_flow_max", "idle_pressure_max", "running_flow_min", "throttle_pressure_min")


def policy_from_mapping(payload: Mapping[str, Any]) -> ClassifierPolicy:
    """Build a policy from a mapping of overrides; unknown keys are rejected."""
    known = set(_INT_FIELDS) | set(_FLOAT_FIELDS) | {"fault_severity"}
    unknown = sorted(set(payload) - known)
    if unknown:
        raise ValueError(f"unknown policy keys: {', '.join(unknown)}")

    kwargs: dict[str, Any] = {}
    for name in _INT_FIELDS:
        if name in payload:
            kwargs[name] = _as_int(payload[name], field_name=name)
    for name in _FLOAT_FIELDS:
        if name in payload:
            kwargs[name] = _as_float(payload[name], field_name=name)

    if "fault_severity" in payload:
        raw_codes = payload["fault_severity"]
        if not isinstance(raw_codes, list):
            raise ValueError("fault_severity must be a list of {bit, name, severity} objects")
        codes: dict[int, FaultCode] = {}
        for item in raw_codes:
            if not isinstance(item, dict):
                raise ValueError("fault_severity entries must be objects")
            code = FaultCode(
                bit=_as_int(item.get("bit"), field_name="fault_severity.bit"),
                name=str(item.get("name", "")),
                severity=_as_int(item.get("severity"), field_name="fault_severity.severity"),
            )
            if code.bit in codes:
                raise ValueError(f"duplicate fault bit in fault_severity: {code.bit}")
            codes[code.bit] = code
        kwargs["fault_severity"] = codes

    return ClassifierPolicy(**kwargs)


def load_policy_file(path: Path) -> ClassifierPolicy:
    """Load classifier policy overrides from a JSON object file."""
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError(f"JSON payload must be an object: {path}")
    return policy_from_mapping(cast(dict[str, Any], payload))


def _as_int(raw: object, *, field_name: str) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ValueError(f"{field_name} must be an integer")
    return raw


def _as_float(raw: object, *, field_name: str) -> float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise ValueError(f"{field_name} must be numeric")
    return float(raw)
