"""Core domain models for pump telemetry classification."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from math import isfinite


FAULT_MASK_BITS = 16


class PumpState(StrEnum):
    """Closed set of operational states for one monitored pump."""

    UNKNOWN = "unknown"
    IDLE = "idle"
    PRIMING = "priming"
    RUNNING = "running"
    THROTTLED = "throttled"
    FAULT = "fault"


class EventKind(StrEnum):
    """Tagged variant of pump events."""

    TELEMETRY = "telemetry"
    FAULT_CLEAR = "fault_clear"


class ReasonCode(StrEnum):
    """Why a decision was produced."""

    INITIAL_CLASSIFICATION = "initial-classification"
    TRANSITION = "transition"
    STEADY = "steady"
    HYSTERESIS_PENDING = "hysteresis-pending"
    FAULT_LATCHED = "fault-latched"
    FAULT_HELD = "fault-held"
    FAULT_CLEARED = "fault-cleared"
    MALFORMED_INPUT = "malformed-input"
    PRIMING_TIMEOUT = "priming-timeout"
    LATE_SAMPLE = "late-sample"
    ILLEGAL_TRANSITION = "illegal-transition"


@dataclass(frozen=True, slots=True)
class PumpEvent:
    """Single telemetry sample (or fault-clear signal) for one pump.

    Construction never fails on bad readings. Callers inspect `issues` so that
    malformed samples can be routed to the fault path instead of being lost.
    """

    pump_id: str
    timestamp_ms: int
    flow_rate: float
    pressure: float
    fault_bits: int
    sequence: int
    kind: EventKind = EventKind.TELEMETRY
    parse_issues: tuple[str, ...] = ()

    @property
    def issues(self) -> tuple[str, ...]:
        """Validation problems found on this event, empty when valid."""
        problems: list[str] = list(self.parse_issues)
        if not self.pump_id.strip():
            problems.append("pump_id is empty")
        if self.timestamp_ms <= 0:
            problems.append("timestamp_ms must be > 0")
        if not isfinite(self.flow_rate):
            problems.append("flow_rate must be finite")
        elif self.flow_rate < 0.0:
            problems.append(f"flow_rate is negative: {self.flow_rate}")
        if not isfinite(self.pressure):
            problems.append("pressure must be finite")
        elif self.pressure < 0.0:
            problems.append(f"pressure is negative: {self.pressure}")
        if isinstance(self.fault_bits, bool) or not isinstance(self.fault_bits, int):
            problems.append("fault_bits must be an integer bitmask")
        elif self.fault_bits < 0:
            problems.append(f"fault_bits is negative: {self.fault_bits}")
        if self.sequence < 0:
            problems.append(f"sequence is negative: {self.sequence}")
        return tuple(problems)

    @property
    def is_valid(self) -> bool:
        """Whether the event passed field-level validation."""
        return not self.issues

    @property
    def has_fault(self) -> bool:
        """Whether any fault bit is raised on a well-formed bitmask."""
        return isinstance(self.fault_bits, int) and self.fault_bits > 0

    def raised_fault_bits(self) -> tuple[int, ...]:
        """Return raised bit indexes in ascending order."""
        if not self.has_fault:
            return ()
        return tuple(bit for bit in range(self.fault_bits.bit_length()) if self.fault_bits >> bit & 1)


@dataclass(frozen=True, slots=True)
class Decision:
    """Classification outcome for one accepted event."""

    pump_id: str
    prior_state: PumpState
    new_state: PumpState
    event: PumpEvent
    reason: ReasonCode
    timestamp_ms: int
    detail: str = ""
    fault_bit: int | None = None

    @property
    def changed(self) -> bool:
        """Whether this decision commits a state transition."""
        return self.prior_state != self.new_state
