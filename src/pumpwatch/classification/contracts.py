"""Policy, context and result contracts used by the pump state classifier."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from pumpwatch.domain.errors import Anomaly
from pumpwatch.domain.models import FAULT_MASK_BITS, Decision, PumpEvent, PumpState


@dataclass(frozen=True, slots=True)
class FaultCode:
    """Named fault bit with its severity rank (higher is more severe)."""

    bit: int
    name: str
    severity: int

    def __post_init__(self) -> None:
        if self.bit < 0:
            raise ValueError("bit must be >= 0")
        if not self.name.strip():
            raise ValueError("name is required")
        if self.severity < 0:
            raise ValueError("severity must be >= 0")


DEFAULT_FAULT_CODES: tuple[FaultCode, ...] = (
    FaultCode(bit=0, name="sensor_fault", severity=1),
    FaultCode(bit=1, name="low_suction", severity=2),
    FaultCode(bit=2, name="overcurrent", severity=4),
    FaultCode(bit=3, name="overtemperature", severity=4),
    FaultCode(bit=4, name="dry_run", severity=5),
    FaultCode(bit=5, name="seal_leak", severity=3),
    FaultCode(bit=6, name="vibration_high", severity=2),
    FaultCode(bit=7, name="comms_loss", severity=1),
)


def _default_fault_severity() -> Mapping[int, FaultCode]:
    return MappingProxyType({code.bit: code for code in DEFAULT_FAULT_CODES})


@dataclass(frozen=True, slots=True)
class ClassifierPolicy:
    """Thresholds and tolerances for deterministic pump state classification.

    Flow is compared against `idle_flow_max` and `running_flow_min`; pressure
    against `idle_pressure_max` and `throttle_pressure_min`. Units follow the
    telemetry source and only need to be consistent.
    """

    hysteresis_samples: int = 3
    reorder_window: int = 16
    history_size: int = 8
    priming_timeout_ms: int = 30_000
    idle_flow_max: float = 0.1
    idle_pressure_max: float = 0.5
    running_flow_min: float = 1.0
    throttle_pressure_min: float = 8.0
    fault_mask_bits: int = FAULT_MASK_BITS
    fault_severity: Mapping[int, FaultCode] = field(default_factory=_default_fault_severity)

    def __post_init__(self) -> None:
        object.__setattr__(self, "fault_severity", MappingProxyType(dict(self.fault_severity)))
        if self.hysteresis_samples <= 0:
            raise ValueError("hysteresis_samples must be > 0")
        if self.reorder_window < 0:
            raise ValueError("reorder_window must be >= 0")
        if self.history_size <= 0:
            raise ValueError("history_size must be > 0")
        if self.priming_timeout_ms <= 0:
            raise ValueError("priming_timeout_ms must be > 0")
        thresholds = (
            self.idle_flow_max,
            self.idle_pressure_max,
            self.running_flow_min,
            self.throttle_pressure_min,
        )
        if any(value < 0.0 for value in thresholds):
            raise ValueError("flow/pressure thresholds must be >= 0")
        if self.idle_flow_max >= self.running_flow_min:
            raise ValueError("idle_flow_max must be lower than running_flow_min")
        if not (1 <= self.fault_mask_bits <= 64):
            raise ValueError("fault_mask_bits must be in range [1, 64]")
        for bit, code in self.fault_severity.items():
            if bit != code.bit:
                raise ValueError(f"fault_severity key {bit} does not match code bit {code.bit}")
            if bit >= self.fault_mask_bits:
                raise ValueError(f"fault bit {bit} is outside the {self.fault_mask_bits}-bit mask")

    def fault_code(self, bit: int) -> FaultCode:
        """Return the ranked fault code for `bit`, severity 0 when unlisted."""
        code = self.fault_severity.get(bit)
        if code is None:
            return FaultCode(bit=bit, name=f"bit_{bit}", severity=0)
        return code


@dataclass(frozen=True, slots=True)
class ClassifierContext:
    """Per-pump classification state; replaced, never mutated in place."""

    pump_id: str
    state: PumpState = PumpState.UNKNOWN
    last_transition_ms: int | None = None
    committed_sequence: int | None = None
    highest_sequence: int | None = None
    seen_sequences: frozenset[int] = frozenset()
    streak_state: PumpState | None = None
    streak_count: int = 0
    recent_events: tuple[PumpEvent, ...] = ()

    def counter(self, state: PumpState) -> int:
        """Consecutive qualifying samples currently counted for `state`."""
        return self.streak_count if self.streak_state == state else 0


@dataclass(frozen=True, slots=True)
class ClassificationResult:
    """Outcome of classifying one event against a pump context."""

    context: ClassifierContext
    decision: Decision | None
    anomaly: Anomaly | None = None

    @property
    def committed(self) -> bool:
        """Whether a state transition was committed."""
        return self.decision is not None and self.decision.changed
