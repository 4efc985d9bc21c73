"""Collector and sink adapters around the classification core."""

from pumpwatch.integration.columnar import events_from_columns, load_npz_events
from pumpwatch.integration.payloads import event_to_jsonable, normalize_pump_payload, normalize_pump_payload_batch
from pumpwatch.integration.sinks import (
    CollectingDecisionSink,
    DecisionSink,
    JsonLinesDecisionSink,
    LoggingDecisionSink,
    decision_key,
    decision_to_jsonable,
)
from pumpwatch.integration.sources import EventSource, JsonLinesEventSource, NpzEventSource, StaticEventSource

__all__ = [
    "CollectingDecisionSink",
    "DecisionSink",
    "EventSource",
    "JsonLinesDecisionSink",
    "JsonLinesEventSource",
    "LoggingDecisionSink",
    "NpzEventSource",
    "StaticEventSource",
    "decision_key",
    "decision_to_jsonable",
    "event_to_jsonable",
    "events_from_columns",
    "load_npz_events",
    "normalize_pump_payload",
    "normalize_pump_payload_batch",
]
