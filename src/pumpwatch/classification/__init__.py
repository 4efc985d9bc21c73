"""Pump state classification engine."""

from pumpwatch.classification.classifier import (
    DEFAULT_POLICY,
    classify,
    classify_sequence,
    dominant_fault,
    sample_state,
)
from pumpwatch.classification.config import load_policy_file, policy_from_mapping
from pumpwatch.classification.contracts import (
    DEFAULT_FAULT_CODES,
    ClassificationResult,
    ClassifierContext,
    ClassifierPolicy,
    FaultCode,
)
from pumpwatch.classification.registry import ContextRegistry

__all__ = [
    "DEFAULT_FAULT_CODES",
    "DEFAULT_POLICY",
    "ClassificationResult",
    "ClassifierContext",
    "ClassifierPolicy",
    "ContextRegistry",
    "FaultCode",
    "classify",
    "classify_sequence",
    "dominant_fault",
    "load_policy_file",
    "policy_from_mapping",
    "sample_state",
]
