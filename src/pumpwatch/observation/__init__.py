"""Observation loop around the classification engine."""

from pumpwatch.observation.contracts import (
    BatchReport,
    ClassifiedBatch,
    EmissionOutcome,
    ObservationSummary,
    ObserverConfig,
)
from pumpwatch.observation.loop import ObservationLoop, partition_by_pump

__all__ = [
    "BatchReport",
    "ClassifiedBatch",
    "EmissionOutcome",
    "ObservationLoop",
    "ObservationSummary",
    "ObserverConfig",
    "partition_by_pump",
]
