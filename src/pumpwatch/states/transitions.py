"""Allowed operational state transitions for monitored pumps."""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

from pumpwatch.domain.models import PumpState


ALLOWED_TRANSITIONS: Mapping[PumpState, frozenset[PumpState]] = MappingProxyType(
    {
        PumpState.UNKNOWN: frozenset(
            {PumpState.IDLE, PumpState.PRIMING, PumpState.RUNNING, PumpState.FAULT}
        ),
        PumpState.IDLE: frozenset({PumpState.PRIMING, PumpState.FAULT}),
        PumpState.PRIMING: frozenset({PumpState.RUNNING, PumpState.FAULT, PumpState.IDLE}),
        PumpState.RUNNING: frozenset({PumpState.THROTTLED, PumpState.FAULT, PumpState.IDLE}),
        PumpState.THROTTLED: frozenset({PumpState.RUNNING, PumpState.FAULT, PumpState.IDLE}),
        PumpState.FAULT: frozenset({PumpState.IDLE}),
    }
)

# Entering these states needs consecutive confirming samples.
HYSTERESIS_STATES: frozenset[PumpState] = frozenset({PumpState.THROTTLED, PumpState.FAULT})


def allowed_targets(state: PumpState) -> frozenset[PumpState]:
    """Return the states reachable from `state` in one transition."""
    return ALLOWED_TRANSITIONS[state]


def is_transition_allowed(prior: PumpState, new: PumpState) -> bool:
    """Whether `prior -> new` is an edge of the transition graph."""
    return new in ALLOWED_TRANSITIONS[prior]
