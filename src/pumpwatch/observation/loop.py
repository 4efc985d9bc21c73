"""Batch observation loop: fetch, classify per pump, emit decisions."""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from concurrent.futures import Future, ThreadPoolExecutor

from pumpwatch.classification.classifier import DEFAULT_POLICY
from pumpwatch.classification.contracts import ClassificationResult, ClassifierPolicy
from pumpwatch.classification.registry import ContextRegistry
from pumpwatch.domain.errors import Anomaly, AnomalyKind
from pumpwatch.domain.models import Decision, PumpEvent
from pumpwatch.integration.sinks import DecisionSink
from pumpwatch.integration.sources import EventSource
from pumpwatch.observation.contracts import (
    BatchReport,
    ClassifiedBatch,
    EmissionOutcome,
    ObservationSummary,
    ObserverConfig,
)

logger = logging.getLogger(__name__)


def partition_by_pump(events: Sequence[PumpEvent]) -> dict[str, tuple[PumpEvent, ...]]:
    """Group events per pump id (sorted ids), each group stable-sorted by sequence."""
    groups: dict[str, list[PumpEvent]] = {}
    for event in events:
        groups.setdefault(event.pump_id, []).append(event)
    return {
        pump_id: tuple(sorted(groups[pump_id], key=lambda event: event.sequence))
        for pump_id in sorted(groups)
    }


class ObservationLoop:
    """Pull event batches from a source and hand decisions to a sink.

    Classification errors never stop the loop. Only the source raising (for
    example `SourceUnavailableError`) propagates to the caller.
    """

    def __init__(
        self,
        source: EventSource,
        sink: DecisionSink,
        *,
        policy: ClassifierPolicy = DEFAULT_POLICY,
        config: ObserverConfig | None = None,
        registry: ContextRegistry | None = None,
    ) -> None:
        self._source = source
        self._sink = sink
        self._config = config if config is not None else ObserverConfig()
        self._registry = registry if registry is not None else ContextRegistry(policy)

    @property
    def registry(self) -> ContextRegistry:
        return self._registry

    @property
    def config(self) -> ObserverConfig:
        return self._config

    def classify_batch(self, events: Sequence[PumpEvent]) -> ClassifiedBatch:
        """Classify each pump's sub-sequence in order; pumps may run in parallel."""
        partitions = partition_by_pump(events)

        per_pump: dict[str, tuple[ClassificationResult, ...]]
        if self._config.max_workers > 1 and len(partitions) > 1:
            with ThreadPoolExecutor(
                max_workers=min(self._config.max_workers, len(partitions)),
                thread_name_prefix="pumpwatch-classify",
            ) as pool:
                futures = {
                    pump_id: pool.submit(self._registry.classify_many, pump_id, pump_events)
                    for pump_id, pump_events in partitions.items()
                }
                per_pump = {pump_id: future.result() for pump_id, future in futures.items()}
        else:
            per_pump = {
                pump_id: self._registry.classify_many(pump_id, pump_events)
                for pump_id, pump_events in partitions.items()
            }

        results: list[ClassificationResult] = []
        to_emit: list[Decision] = []
        anomalies: list[Anomaly] = []
        for pump_id in partitions:
            for result in per_pump[pump_id]:
                results.append(result)
                if result.anomaly is not None:
                    anomalies.append(result.anomaly)
                    if result.anomaly.kind == AnomalyKind.STALE_EVENT:
                        logger.info("Stale event discarded: %s", result.anomaly.detail)
                decision = result.decision
                if decision is None:
                    continue
                if decision.changed or self._config.audit_all:
                    to_emit.append(decision)

        return ClassifiedBatch(
            events_seen=len(events),
            results=tuple(results),
            to_emit=tuple(to_emit),
            anomalies=tuple(anomalies),
        )

    def emit(self, decisions: Sequence[Decision]) -> EmissionOutcome:
        """Emit decisions in order; failed ones are retried, then counted."""
        emitted = 0
        failed = 0
        anomalies: list[Anomaly] = []
        for decision in decisions:
            if self._emit_with_retry(decision):
                emitted += 1
                if decision.changed:
                    logger.info(
                        "Pump %s: %s -> %s (%s)",
                        decision.pump_id,
                        decision.prior_state.value,
                        decision.new_state.value,
                        decision.reason.value,
                    )
                continue
            failed += 1
            anomalies.append(
                Anomaly(
                    kind=AnomalyKind.SINK_FAILURE,
                    pump_id=decision.pump_id,
                    sequence=decision.event.sequence,
                    detail=f"sink rejected decision after {self._config.sink_retries + 1} attempt(s)",
                )
            )
        return EmissionOutcome(emitted=emitted, failed=failed, anomalies=tuple(anomalies))

    def observe_batch(self, events: Sequence[PumpEvent], *, batch_index: int = 0) -> BatchReport:
        """Classify and emit one already-fetched batch."""
        classified = self.classify_batch(events)
        return self._report(batch_index, classified, self.emit(classified.to_emit))

    def observe_once(self, *, batch_index: int = 0) -> BatchReport:
        """Fetch one batch from the source, then classify and emit it."""
        return self.observe_batch(self._source.fetch_batch(), batch_index=batch_index)

    def run(
        self,
        stop_event: threading.Event | None = None,
        *,
        max_batches: int | None = None,
    ) -> ObservationSummary:
        """Observe batches until stopped.

        Decisions of batch N are written by a single sink worker while batch
        N+1 is fetched and classified, so same-pump decisions keep their order.
        `stop_event` is checked between batches only; `max_batches` bounds the
        number of fetches, empty ones included.
        """
        if max_batches is not None and max_batches <= 0:
            raise ValueError("max_batches must be > 0 when set")
        stop = stop_event if stop_event is not None else threading.Event()

        reports: list[BatchReport] = []
        pending: tuple[int, ClassifiedBatch, Future[EmissionOutcome]] | None = None
        batch_index = 0

        with ThreadPoolExecutor(max_workers=1, thread_name_prefix="pumpwatch-sink") as sink_pool:
            try:
                while not stop.is_set() and (max_batches is None or batch_index < max_batches):
                    events = self._source.fetch_batch()
                    index = batch_index
                    batch_index += 1

                    if not events:
                        if pending is not None:
                            reports.append(self._finish(pending))
                            pending = None
                        if self._config.stop_on_empty_batch:
                            break
                        stop.wait(self._config.poll_interval_s)
                        continue

                    classified = self.classify_batch(events)
                    if pending is not None:
                        reports.append(self._finish(pending))
                    pending = (index, classified, sink_pool.submit(self.emit, classified.to_emit))
            finally:
                if pending is not None:
                    reports.append(self._finish(pending))

        return ObservationSummary(reports=tuple(reports), stopped_by_signal=stop.is_set())

    def _emit_with_retry(self, decision: Decision) -> bool:
        attempts = self._config.sink_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                if self._sink.emit(decision):
                    return True
                logger.warning(
                    "Sink rejected decision for pump %s sequence %s (attempt %d/%d)",
                    decision.pump_id,
                    decision.event.sequence,
                    attempt,
                    attempts,
                )
            except Exception as exc:
                logger.warning(
                    "Sink failed for pump %s sequence %s (attempt %d/%d): %s",
                    decision.pump_id,
                    decision.event.sequence,
                    attempt,
                    attempts,
                    exc,
                )
        return False

    def _finish(self, pending: tuple[int, ClassifiedBatch, Future[EmissionOutcome]]) -> BatchReport:
        index, classified, future = pending
        return self._report(index, classified, future.result())

    def _report(self, batch_index: int, classified: ClassifiedBatch, outcome: EmissionOutcome) -> BatchReport:
        report = BatchReport(
            batch_index=batch_index,
            events_seen=classified.events_seen,
            decisions_produced=len(classified.decisions),
            transitions=classified.transitions,
            emitted=outcome.emitted,
            failed_emissions=outcome.failed,
            anomalies=classified.anomalies + outcome.anomalies,
        )
        logger.info(
            "Batch %d: %d events, %d transitions, %d emitted, %d failed emissions, %d anomalies",
            report.batch_index,
            report.events_seen,
            report.transitions,
            report.emitted,
            report.failed_emissions,
            len(report.anomalies),
        )
        return report
