"""Deterministic event-to-state classification for pump telemetry."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import replace

from pumpwatch.classification.contracts import ClassificationResult, ClassifierContext, ClassifierPolicy, FaultCode
from pumpwatch.domain.errors import Anomaly, AnomalyKind
from pumpwatch.domain.models import Decision, EventKind, PumpEvent, PumpState, ReasonCode
from pumpwatch.states.transitions import HYSTERESIS_STATES, is_transition_allowed

logger = logging.getLogger(__name__)

DEFAULT_POLICY = ClassifierPolicy()


def sample_state(event: PumpEvent, policy: ClassifierPolicy) -> PumpState:
    """Map one well-formed telemetry sample to its candidate state by thresholds."""
    if event.flow_rate <= policy.idle_flow_max and event.pressure <= policy.idle_pressure_max:
        return PumpState.IDLE
    if event.flow_rate < policy.running_flow_min:
        return PumpState.PRIMING
    if event.pressure >= policy.throttle_pressure_min:
        return PumpState.THROTTLED
    return PumpState.RUNNING


def dominant_fault(fault_bits: int, policy: ClassifierPolicy) -> FaultCode:
    """Pick the highest-severity raised bit; ties go to the lowest bit index."""
    raised = [policy.fault_code(bit) for bit in range(fault_bits.bit_length()) if fault_bits >> bit & 1]
    if not raised:
        raise ValueError("fault_bits has no raised bit")
    return min(raised, key=lambda code: (-code.severity, code.bit))


def classify(
    context: ClassifierContext,
    event: PumpEvent,
    policy: ClassifierPolicy = DEFAULT_POLICY,
) -> ClassificationResult:
    """Classify one event against a pump context and return the next context.

    The result depends only on `context`, `event` and `policy`. Stale events
    return the unchanged context with no decision; every other event yields a
    decision, which is a no-op when the state does not change.
    """
    if event.pump_id != context.pump_id:
        raise ValueError(f"event pump_id {event.pump_id!r} does not match context {context.pump_id!r}")

    sequence_usable = isinstance(event.sequence, int) and event.sequence >= 0
    if sequence_usable:
        stale_detail = _stale_detail(context, event.sequence, policy)
        if stale_detail is not None:
            return ClassificationResult(
                context=context,
                decision=None,
                anomaly=Anomaly(
                    kind=AnomalyKind.STALE_EVENT,
                    pump_id=context.pump_id,
                    sequence=event.sequence,
                    detail=stale_detail,
                ),
            )
    tracked = _track(context, event, policy, sequence_usable=sequence_usable)

    issues = _event_issues(event, policy)
    if issues:
        detail = "; ".join(issues)
        return _apply(
            tracked,
            event,
            target=PumpState.FAULT,
            reason=ReasonCode.MALFORMED_INPUT,
            detail=detail,
            policy=policy,
            anomaly=Anomaly(
                kind=AnomalyKind.INVALID_EVENT,
                pump_id=context.pump_id,
                sequence=event.sequence,
                detail=detail,
            ),
        )

    if event.has_fault:
        code = dominant_fault(event.fault_bits, policy)
        return _apply(
            _reset_streak(tracked),
            event,
            target=PumpState.FAULT,
            reason=ReasonCode.FAULT_LATCHED,
            detail=f"fault bit {code.bit} ({code.name}, severity {code.severity})",
            policy=policy,
            fault_bit=code.bit,
        )

    if context.state == PumpState.FAULT:
        if event.kind == EventKind.FAULT_CLEAR:
            return _apply(
                _reset_streak(tracked),
                event,
                target=PumpState.IDLE,
                reason=ReasonCode.FAULT_CLEARED,
                detail="explicit fault clear",
                policy=policy,
            )
        return _hold(tracked, event, ReasonCode.FAULT_HELD, "fault latched until explicit clear")

    if event.kind == EventKind.FAULT_CLEAR:
        return _hold(tracked, event, ReasonCode.STEADY, "fault clear outside fault state")

    candidate = sample_state(event, policy)
    counted = _count(tracked, candidate)

    if context.state == PumpState.UNKNOWN:
        return _apply(
            counted,
            event,
            target=candidate,
            reason=ReasonCode.INITIAL_CLASSIFICATION,
            detail=f"first sample classified as {candidate.value}",
            policy=policy,
        )

    if (
        context.state == PumpState.PRIMING
        and candidate == PumpState.PRIMING
        and context.last_transition_ms is not None
        and event.timestamp_ms - context.last_transition_ms > policy.priming_timeout_ms
    ):
        return _apply(
            counted,
            event,
            target=PumpState.IDLE,
            reason=ReasonCode.PRIMING_TIMEOUT,
            detail=(
                f"priming exceeded {policy.priming_timeout_ms} ms "
                f"({event.timestamp_ms - context.last_transition_ms} ms)"
            ),
            policy=policy,
        )

    if candidate == context.state:
        return _hold(counted, event, ReasonCode.STEADY, f"sample confirms {candidate.value}")

    if candidate in HYSTERESIS_STATES:
        seen = counted.counter(candidate)
        if seen < policy.hysteresis_samples:
            return _hold(
                counted,
                event,
                ReasonCode.HYSTERESIS_PENDING,
                f"{candidate.value} pending {seen}/{policy.hysteresis_samples} samples",
            )

    return _apply(
        counted,
        event,
        target=candidate,
        reason=ReasonCode.TRANSITION,
        detail=f"{context.state.value} -> {candidate.value}",
        policy=policy,
    )


def classify_sequence(
    context: ClassifierContext,
    events: Iterable[PumpEvent],
    policy: ClassifierPolicy = DEFAULT_POLICY,
) -> tuple[ClassifierContext, tuple[ClassificationResult, ...]]:
    """Classify events in the given order and return the final context."""
    results: list[ClassificationResult] = []
    current = context
    for event in events:
        result = classify(current, event, policy)
        results.append(result)
        current = result.context
    return current, tuple(results)


def _event_issues(event: PumpEvent, policy: ClassifierPolicy) -> tuple[str, ...]:
    issues = list(event.issues)
    if event.has_fault and event.fault_bits >> policy.fault_mask_bits:
        issues.append(f"fault_bits 0x{event.fault_bits:x} exceeds {policy.fault_mask_bits}-bit mask")
    return tuple(issues)


def _stale_detail(context: ClassifierContext, sequence: int, policy: ClassifierPolicy) -> str | None:
    if sequence in context.seen_sequences:
        return f"sequence {sequence} already processed"
    highest = context.highest_sequence
    if highest is not None and highest - sequence > policy.reorder_window:
        return (
            f"sequence {sequence} is {highest - sequence} behind highest {highest} "
            f"(reorder_window={policy.reorder_window})"
        )
    return None


def _track(
    context: ClassifierContext,
    event: PumpEvent,
    policy: ClassifierPolicy,
    *,
    sequence_usable: bool,
) -> ClassifierContext:
    recent = (context.recent_events + (event,))[-policy.history_size :]
    if not sequence_usable:
        return replace(context, recent_events=recent)

    highest = event.sequence if context.highest_sequence is None else max(context.highest_sequence, event.sequence)
    floor = highest - policy.reorder_window
    seen = frozenset(seq for seq in context.seen_sequences | {event.sequence} if seq >= floor)
    return replace(context, highest_sequence=highest, seen_sequences=seen, recent_events=recent)


def _later_sequence(committed: int | None, sequence: int) -> int | None:
    if sequence < 0:
        return committed
    if committed is None:
        return sequence
    return max(committed, sequence)


def _count(context: ClassifierContext, candidate: PumpState) -> ClassifierContext:
    if context.streak_state == candidate:
        return replace(context, streak_count=context.streak_count + 1)
    return replace(context, streak_state=candidate, streak_count=1)


def _reset_streak(context: ClassifierContext) -> ClassifierContext:
    return replace(context, streak_state=None, streak_count=0)


def _hold(
    context: ClassifierContext,
    event: PumpEvent,
    reason: ReasonCode,
    detail: str,
    *,
    anomaly: Anomaly | None = None,
    fault_bit: int | None = None,
) -> ClassificationResult:
    decision = Decision(
        pump_id=context.pump_id,
        prior_state=context.state,
        new_state=context.state,
        event=event,
        reason=reason,
        timestamp_ms=event.timestamp_ms,
        detail=detail,
        fault_bit=fault_bit,
    )
    return ClassificationResult(context=context, decision=decision, anomaly=anomaly)


def _apply(
    context: ClassifierContext,
    event: PumpEvent,
    *,
    target: PumpState,
    reason: ReasonCode,
    detail: str,
    policy: ClassifierPolicy,
    anomaly: Anomaly | None = None,
    fault_bit: int | None = None,
) -> ClassificationResult:
    prior = context.state
    if target == prior:
        held_reason = ReasonCode.FAULT_HELD if prior == PumpState.FAULT else ReasonCode.STEADY
        if reason == ReasonCode.MALFORMED_INPUT:
            held_reason = reason
        return _hold(context, event, held_reason, detail, anomaly=anomaly, fault_bit=fault_bit)

    # Fault entry is exempt: late fault evidence still latches.
    if (
        target != PumpState.FAULT
        and context.committed_sequence is not None
        and 0 <= event.sequence < context.committed_sequence
    ):
        return _hold(
            context,
            event,
            ReasonCode.LATE_SAMPLE,
            (
                f"sequence {event.sequence} predates committed sequence {context.committed_sequence}; "
                f"{prior.value} -> {target.value} not applied"
            ),
            anomaly=anomaly,
            fault_bit=fault_bit,
        )

    if not is_transition_allowed(prior, target):
        logger.warning(
            "Illegal transition rejected for pump %s: %s -> %s (sequence %s)",
            context.pump_id,
            prior.value,
            target.value,
            event.sequence,
        )
        illegal = Anomaly(
            kind=AnomalyKind.ILLEGAL_TRANSITION,
            pump_id=context.pump_id,
            sequence=event.sequence,
            detail=f"{prior.value} -> {target.value} is not an allowed transition",
        )
        return _hold(
            context,
            event,
            ReasonCode.ILLEGAL_TRANSITION,
            illegal.detail,
            anomaly=anomaly if anomaly is not None else illegal,
            fault_bit=fault_bit,
        )

    committed = replace(
        _reset_streak(context),
        state=target,
        last_transition_ms=event.timestamp_ms,
        committed_sequence=_later_sequence(context.committed_sequence, event.sequence),
    )
    logger.debug(
        "Pump %s: %s -> %s (%s, sequence %s)",
        context.pump_id,
        prior.value,
        target.value,
        reason.value,
        event.sequence,
    )
    decision = Decision(
        pump_id=context.pump_id,
        prior_state=prior,
        new_state=target,
        event=event,
        reason=reason,
        timestamp_ms=event.timestamp_ms,
        detail=detail,
        fault_bit=fault_bit,
    )
    return ClassificationResult(context=committed, decision=decision, anomaly=anomaly)
