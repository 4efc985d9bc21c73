"""Operational state graph."""

from pumpwatch.states.transitions import (
    ALLOWED_TRANSITIONS,
    HYSTERESIS_STATES,
    allowed_targets,
    is_transition_allowed,
)

__all__ = ["ALLOWED_TRANSITIONS", "HYSTERESIS_STATES", "allowed_targets", "is_transition_allowed"]
