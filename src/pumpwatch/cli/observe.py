"""CLI for one observation pass over a recorded pump telemetry file."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Sequence

from pumpwatch.classification import ClassifierPolicy, load_policy_file
from pumpwatch.integration import (
    DecisionSink,
    EventSource,
    JsonLinesDecisionSink,
    JsonLinesEventSource,
    LoggingDecisionSink,
    NpzEventSource,
)
from pumpwatch.observation import ObservationLoop, ObservationSummary, ObserverConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ObserveCliArtifacts:
    """Outputs and counters produced by one CLI observation pass."""

    summary: ObservationSummary
    final_states: dict[str, str]
    decisions_path: Path | None
    report_path: Path | None


def build_parser() -> argparse.ArgumentParser:
    """Create parser for the observation CLI."""
    parser = argparse.ArgumentParser(
        prog="pumpwatch-observe",
        description="Classify recorded pump telemetry into operational states and emit decisions.",
    )
    parser.add_argument(
        "--events",
        type=Path,
        required=True,
        help="Telemetry input: JSON lines (.jsonl) or columnar numpy archive (.npz).",
    )
    parser.add_argument(
        "--decisions",
        type=Path,
        default=None,
        help="JSON-lines decision output. Decisions are logged when omitted.",
    )
    parser.add_argument("--policy", type=Path, default=None, help="JSON file with classifier policy overrides.")
    parser.add_argument("--report", type=Path, default=None, help="Optional JSON run report path.")
    parser.add_argument(
        "--audit",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Emit a decision for every classified event, not only transitions.",
    )
    parser.add_argument("--workers", type=int, default=1, help="Parallel classification workers across pumps.")
    parser.add_argument("--batch-size", type=int, default=None, help="Max JSON lines per batch.")
    parser.add_argument(
        "--log-level",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        default="INFO",
    )
    parser.add_argument(
        "--fail-on-sink-errors",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Exit with code 1 when any decision could not be emitted.",
    )
    return parser


def run_observe_from_args(args: argparse.Namespace) -> ObserveCliArtifacts:
    """Run the observation loop until the input file is exhausted."""
    policy = load_policy_file(args.policy) if args.policy is not None else ClassifierPolicy()
    config = ObserverConfig(
        audit_all=args.audit,
        max_workers=args.workers,
        stop_on_empty_batch=True,
    )
    source = _build_source(args.events, batch_size=args.batch_size)
    sink: DecisionSink = (
        JsonLinesDecisionSink(args.decisions) if args.decisions is not None else LoggingDecisionSink()
    )

    loop = ObservationLoop(source, sink, policy=policy, config=config)
    summary = loop.run()
    final_states = {pump_id: state.value for pump_id, state in loop.registry.snapshot().items()}

    if args.report is not None:
        args.report.parent.mkdir(parents=True, exist_ok=True)
        args.report.write_text(
            json.dumps(_report_payload(args, summary, final_states), indent=2, sort_keys=True) + "\n",
            encoding="utf-8",
        )

    return ObserveCliArtifacts(
        summary=summary,
        final_states=final_states,
        decisions_path=args.decisions,
        report_path=args.report,
    )


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint for a single observation pass."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    try:
        artifacts = run_observe_from_args(args)
    except Exception as exc:
        print(f"[ERROR] Observation failed: {exc}", file=sys.stderr)
        return 2

    summary = artifacts.summary
    print(f"events_seen: {summary.events_seen}")
    print(f"transitions: {summary.transitions}")
    print(f"emitted: {summary.emitted}")
    print(f"failed_emissions: {summary.failed_emissions}")
    for pump_id, state in artifacts.final_states.items():
        print(f"pump {pump_id}: {state}")
    if artifacts.decisions_path is not None:
        print(f"decisions: {artifacts.decisions_path}")
    if artifacts.report_path is not None:
        print(f"report: {artifacts.report_path}")
    if args.fail_on_sink_errors and summary.failed_emissions:
        return 1
    return 0


def _build_source(path: Path, *, batch_size: int | None) -> EventSource:
    if path.suffix == ".npz":
        return NpzEventSource(path)
    return JsonLinesEventSource(path, batch_size=batch_size)


def _report_payload(
    args: argparse.Namespace,
    summary: ObservationSummary,
    final_states: dict[str, str],
) -> dict[str, Any]:
    return {
        "inputs": {
            "events": str(args.events),
            "policy": str(args.policy) if args.policy is not None else None,
            "audit": args.audit,
            "workers": args.workers,
        },
        "totals": {
            "batches": len(summary.reports),
            "events_seen": summary.events_seen,
            "transitions": summary.transitions,
            "emitted": summary.emitted,
            "failed_emissions": summary.failed_emissions,
        },
        "batches": [
            {
                "batch_index": report.batch_index,
                "events_seen": report.events_seen,
                "decisions_produced": report.decisions_produced,
                "transitions": report.transitions,
                "emitted": report.emitted,
                "failed_emissions": report.failed_emissions,
                "anomalies": dict(report.anomaly_counts),
            }
            for report in summary.reports
        ],
        "final_states": final_states,
    }


if __name__ == "__main__":
    raise SystemExit(main())
