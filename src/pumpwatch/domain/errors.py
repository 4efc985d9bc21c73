"""Error taxonomy for classification anomalies and collaborator failures."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class AnomalyKind(StrEnum):
    """Non-fatal conditions recorded while observing pumps."""

    INVALID_EVENT = "invalid_event"
    STALE_EVENT = "stale_event"
    ILLEGAL_TRANSITION = "illegal_transition"
    SINK_FAILURE = "sink_failure"


@dataclass(frozen=True, slots=True)
class Anomaly:
    """One recorded anomaly with the pump and sequence it concerns."""

    kind: AnomalyKind
    pump_id: str
    sequence: int
    detail: str


class PumpwatchError(Exception):
    """Base class for pumpwatch runtime errors."""


class SourceUnavailableError(PumpwatchError):
    """The event source could not produce a batch; fatal for the loop."""


class SinkFailureError(PumpwatchError):
    """A decision sink rejected or failed to persist a decision."""
