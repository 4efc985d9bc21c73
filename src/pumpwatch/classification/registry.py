"""Process-wide per-pump context store with exclusive per-pump classification."""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import dataclass, field

from pumpwatch.classification.classifier import DEFAULT_POLICY, classify
from pumpwatch.classification.contracts import ClassificationResult, ClassifierContext, ClassifierPolicy
from pumpwatch.domain.models import PumpEvent, PumpState


@dataclass(slots=True)
class _PumpSlot:
    context: ClassifierContext
    lock: threading.Lock = field(default_factory=threading.Lock)


class ContextRegistry:
    """Own one `ClassifierContext` per pump id.

    Each pump has its own lock, so different pumps classify in parallel while
    one pump's context is only ever advanced by a single thread at a time.
    The registry lock only guards slot creation.
    """

    def __init__(self, policy: ClassifierPolicy = DEFAULT_POLICY) -> None:
        self._policy = policy
        self._slots: dict[str, _PumpSlot] = {}
        self._registry_lock = threading.Lock()

    @property
    def policy(self) -> ClassifierPolicy:
        return self._policy

    def classify(self, event: PumpEvent) -> ClassificationResult:
        """Classify one event against its pump context and store the result."""
        slot = self._slot(event.pump_id)
        with slot.lock:
            result = classify(slot.context, event, self._policy)
            slot.context = result.context
        return result

    def classify_many(self, pump_id: str, events: Iterable[PumpEvent]) -> tuple[ClassificationResult, ...]:
        """Classify one pump's events in order while holding that pump's lock."""
        slot = self._slot(pump_id)
        results: list[ClassificationResult] = []
        with slot.lock:
            for event in events:
                result = classify(slot.context, event, self._policy)
                slot.context = result.context
                results.append(result)
        return tuple(results)

    def context(self, pump_id: str) -> ClassifierContext:
        """Return the current context, a fresh `unknown` one for unseen pumps."""
        slot = self._slots.get(pump_id)
        if slot is None:
            return ClassifierContext(pump_id=pump_id)
        with slot.lock:
            return slot.context

    def state(self, pump_id: str) -> PumpState:
        return self.context(pump_id).state

    def pump_ids(self) -> tuple[str, ...]:
        with self._registry_lock:
            return tuple(sorted(self._slots))

    def snapshot(self) -> dict[str, PumpState]:
        """Current state per known pump, in pump id order."""
        return {pump_id: self.state(pump_id) for pump_id in self.pump_ids()}

    def _slot(self, pump_id: str) -> _PumpSlot:
        slot = self._slots.get(pump_id)
        if slot is not None:
            return slot
        with self._registry_lock:
            slot = self._slots.get(pump_id)
            if slot is None:
                slot = _PumpSlot(context=ClassifierContext(pump_id=pump_id))
                self._slots[pump_id] = slot
            return slot

    def __len__(self) -> int:
        return len(self._slots)
