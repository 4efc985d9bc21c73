"""Domain models for pump telemetry, operational states and decisions."""

from pumpwatch.domain.errors import (
    Anomaly,
    AnomalyKind,
    PumpwatchError,
    SinkFailureError,
    SourceUnavailableError,
)
from pumpwatch.domain.models import FAULT_MASK_BITS, Decision, EventKind, PumpEvent, PumpState, ReasonCode

__all__ = [
    "FAULT_MASK_BITS",
    "Anomaly",
    "AnomalyKind",
    "Decision",
    "EventKind",
    "PumpEvent",
    "PumpState",
    "PumpwatchError",
    "ReasonCode",
    "SinkFailureError",
    "SourceUnavailableError",
]
