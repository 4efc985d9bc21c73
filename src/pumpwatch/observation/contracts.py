"""Configuration and report contracts for the observation loop."""

from __future__ import annotations

from dataclasses import dataclass

from pumpwatch.classification.contracts import ClassificationResult
from pumpwatch.domain.errors import Anomaly, AnomalyKind
from pumpwatch.domain.models import Decision


@dataclass(frozen=True, slots=True)
class ObserverConfig:
    """Runtime options for batch observation."""

    audit_all: bool = False
    max_workers: int = 1
    sink_retries: int = 1
    poll_interval_s: float = 1.0
    stop_on_empty_batch: bool = False

    def __post_init__(self) -> None:
        if self.max_workers <= 0:
            raise ValueError("max_workers must be > 0")
        if self.sink_retries < 0:
            raise ValueError("sink_retries must be >= 0")
        if self.poll_interval_s < 0.0:
            raise ValueError("poll_interval_s must be >= 0")


@dataclass(frozen=True, slots=True)
class ClassifiedBatch:
    """Classification output of one batch, before emission."""

    events_seen: int
    results: tuple[ClassificationResult, ...]
    to_emit: tuple[Decision, ...]
    anomalies: tuple[Anomaly, ...]

    @property
    def decisions(self) -> tuple[Decision, ...]:
        return tuple(result.decision for result in self.results if result.decision is not None)

    @property
    def transitions(self) -> int:
        return sum(1 for result in self.results if result.committed)


@dataclass(frozen=True, slots=True)
class EmissionOutcome:
    """Sink results for one batch of decisions."""

    emitted: int
    failed: int
    anomalies: tuple[Anomaly, ...] = ()


@dataclass(frozen=True, slots=True)
class BatchReport:
    """Per-batch counters returned to the caller."""

    batch_index: int
    events_seen: int
    decisions_produced: int
    transitions: int
    emitted: int
    failed_emissions: int
    anomalies: tuple[Anomaly, ...] = ()

    def anomaly_count(self, kind: AnomalyKind) -> int:
        return sum(1 for anomaly in self.anomalies if anomaly.kind == kind)

    @property
    def anomaly_counts(self) -> tuple[tuple[str, int], ...]:
        """Counts per anomaly kind in stable enum order."""
        return tuple((kind.value, self.anomaly_count(kind)) for kind in AnomalyKind)


@dataclass(frozen=True, slots=True)
class ObservationSummary:
    """Reports collected by one `ObservationLoop.run` call."""

    reports: tuple[BatchReport, ...]
    stopped_by_signal: bool

    @property
    def events_seen(self) -> int:
        return sum(report.events_seen for report in self.reports)

    @property
    def transitions(self) -> int:
        return sum(report.transitions for report in self.reports)

    @property
    def emitted(self) -> int:
        return sum(report.emitted for report in self.reports)

    @property
    def failed_emissions(self) -> int:
        return sum(report.failed_emissions for report in self.reports)
