"""Decision sinks and decision serialization."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Protocol

from pumpwatch.domain.errors import SinkFailureError
from pumpwatch.domain.models import Decision
from pumpwatch.integration.payloads import event_to_jsonable

logger = logging.getLogger(__name__)

DecisionKey = tuple[str, int, str, str, str]


class DecisionSink(Protocol):
    """Accept one decision; `False` or an exception marks the emission failed.

    Implementations must tolerate the same decision being emitted twice.
    """

    def emit(self, decision: Decision) -> bool: ...


def decision_key(decision: Decision) -> DecisionKey:
    """Stable identity of a decision, used to make retries idempotent."""
    return (
        decision.pump_id,
        decision.event.sequence,
        decision.prior_state.value,
        decision.new_state.value,
        decision.reason.value,
    )


def decision_to_jsonable(decision: Decision) -> dict[str, object]:
    """Serialize a decision to plain JSON types."""
    return {
        "pump_id": decision.pump_id,
        "prior_state": decision.prior_state.value,
        "new_state": decision.new_state.value,
        "changed": decision.changed,
        "reason": decision.reason.value,
        "detail": decision.detail,
        "fault_bit": decision.fault_bit,
        "timestamp_ms": decision.timestamp_ms,
        "event": event_to_jsonable(decision.event),
    }


class CollectingDecisionSink:
    """Keep emitted decisions in memory, ignoring repeated emissions."""

    def __init__(self) -> None:
        self._decisions: list[Decision] = []
        self._keys: set[DecisionKey] = set()
        self._lock = threading.Lock()

    @property
    def decisions(self) -> tuple[Decision, ...]:
        with self._lock:
            return tuple(self._decisions)

    def emit(self, decision: Decision) -> bool:
        key = decision_key(decision)
        with self._lock:
            if key not in self._keys:
                self._keys.add(key)
                self._decisions.append(decision)
        return True


class LoggingDecisionSink:
    """Write each decision to the `pumpwatch.decisions` logger."""

    def __init__(self, *, level: int = logging.INFO, name: str = "pumpwatch.decisions") -> None:
        self._logger = logging.getLogger(name)
        self._level = level

    def emit(self, decision: Decision) -> bool:
        self._logger.log(
            self._level,
            "pump=%s seq=%s %s -> %s reason=%s %s",
            decision.pump_id,
            decision.event.sequence,
            decision.prior_state.value,
            decision.new_state.value,
            decision.reason.value,
            decision.detail,
        )
        return True


class JsonLinesDecisionSink:
    """Append decisions as JSON lines, writing each decision key at most once."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._written: set[DecisionKey] = set()
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def emit(self, decision: Decision) -> bool:
        key = decision_key(decision)
        line = json.dumps(decision_to_jsonable(decision), sort_keys=True)
        with self._lock:
            if key in self._written:
                return True
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                with self._path.open("a", encoding="utf-8") as handle:
                    handle.write(line + "\n")
            except OSError as exc:
                raise SinkFailureError(f"cannot append decision to {self._path}: {exc}") from exc
            self._written.add(key)
        return True
