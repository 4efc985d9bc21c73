"""Pull-based event sources feeding the observation loop."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator, Sequence
from pathlib import Path
from typing import Protocol

from pumpwatch.domain.errors import SourceUnavailableError
from pumpwatch.domain.models import PumpEvent
from pumpwatch.integration.columnar import load_npz_events
from pumpwatch.integration.payloads import normalize_pump_payload

logger = logging.getLogger(__name__)


class EventSource(Protocol):
    """Batch provider; raises `SourceUnavailableError` when it cannot be read."""

    def fetch_batch(self) -> Sequence[PumpEvent]: ...


class StaticEventSource:
    """Serve pre-built batches in order, then empty batches."""

    def __init__(self, batches: Iterable[Sequence[PumpEvent]]) -> None:
        self._batches: Iterator[Sequence[PumpEvent]] = iter(batches)

    def fetch_batch(self) -> Sequence[PumpEvent]:
        return tuple(next(self._batches, ()))


class JsonLinesEventSource:
    """Tail a JSON-lines file, one payload object per line.

    Each fetch returns the complete lines appended since the previous fetch
    (at most `batch_size` of them). Lines that are not JSON objects or carry
    no pump id cannot be attributed to a pump; they are logged and counted in
    `rejected_lines`.
    """

    def __init__(self, path: Path, *, batch_size: int | None = None) -> None:
        if batch_size is not None and batch_size <= 0:
            raise ValueError("batch_size must be > 0 when set")
        self._path = path
        self._batch_size = batch_size
        self._offset = 0
        self._line_number = 0
        self.rejected_lines = 0

    @property
    def path(self) -> Path:
        return self._path

    def fetch_batch(self) -> Sequence[PumpEvent]:
        try:
            handle = self._path.open("rb")
        except OSError as exc:
            raise SourceUnavailableError(f"cannot open event file {self._path}: {exc}") from exc

        events: list[PumpEvent] = []
        with handle:
            handle.seek(self._offset)
            while self._batch_size is None or len(events) < self._batch_size:
                raw = handle.readline()
                if not raw or not raw.endswith(b"\n"):
                    # Partial trailing line stays unread until the writer finishes it.
                    break
                self._offset += len(raw)
                self._line_number += 1
                try:
                    text = raw.decode("utf-8").strip()
                except UnicodeDecodeError as exc:
                    self._reject(f"line is not valid UTF-8 ({exc.reason})")
                    continue
                if not text:
                    continue
                event = self._parse_line(text)
                if event is not None:
                    events.append(event)
        return tuple(events)

    def _parse_line(self, text: str) -> PumpEvent | None:
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            return self._reject(f"invalid JSON ({exc.msg})")
        if not isinstance(payload, dict):
            return self._reject("payload is not a JSON object")
        try:
            return normalize_pump_payload(payload)
        except ValueError as exc:
            return self._reject(str(exc))

    def _reject(self, reason: str) -> None:
        self.rejected_lines += 1
        logger.warning("Skipping %s line %d: %s", self._path, self._line_number, reason)
        return None


class NpzEventSource:
    """Serve every row of a columnar `.npz` archive as one batch."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._consumed = False

    def fetch_batch(self) -> Sequence[PumpEvent]:
        if self._consumed:
            return ()
        try:
            events = load_npz_events(self._path)
        except OSError as exc:
            raise SourceUnavailableError(f"cannot read event archive {self._path}: {exc}") from exc
        self._consumed = True
        return events
