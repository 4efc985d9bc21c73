"""Columnar (numpy) telemetry adapters."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

import numpy as np
import numpy.typing as npt

from pumpwatch.domain.models import EventKind, PumpEvent

FloatArray = npt.NDArray[np.float64]
IntArray = npt.NDArray[np.int64]

REQUIRED_COLUMNS: tuple[str, ...] = (
    "pump_id",
    "timestamp_ms",
    "flow_rate",
    "pressure",
    "fault_bits",
    "sequence",
)


def events_from_columns(
    *,
    pump_ids: Sequence[str] | npt.ArrayLike,
    timestamps_ms: npt.ArrayLike,
    flow_rates: npt.ArrayLike,
    pressures: npt.ArrayLike,
    fault_bits: npt.ArrayLike,
    sequences: npt.ArrayLike,
    kinds: Sequence[str] | npt.ArrayLike | None = None,
) -> tuple[PumpEvent, ...]:
    """Build events from equal-length columns, preserving row order.

    Non-finite or negative readings are kept as-is so they surface as invalid
    events downstream.
    """
    pump_col = np.asarray(pump_ids).astype(str)
    ts_col: IntArray = np.asarray(timestamps_ms, dtype=np.int64)
    flow_col: FloatArray = np.asarray(flow_rates, dtype=np.float64)
    pressure_col: FloatArray = np.asarray(pressures, dtype=np.float64)
    fault_col: IntArray = np.asarray(fault_bits, dtype=np.int64)
    seq_col: IntArray = np.asarray(sequences, dtype=np.int64)
    kind_col = np.full(pump_col.shape, EventKind.TELEMETRY.value) if kinds is None else np.asarray(kinds).astype(str)

    columns = (pump_col, ts_col, flow_col, pressure_col, fault_col, seq_col, kind_col)
    if any(column.ndim != 1 for column in columns):
        raise ValueError("telemetry columns must be 1D arrays")
    lengths = {column.shape[0] for column in columns}
    if len(lengths) != 1:
        raise ValueError(f"telemetry columns must share one length, got {sorted(lengths)}")

    return tuple(
        PumpEvent(
            pump_id=str(pump_col[idx]),
            timestamp_ms=int(ts_col[idx]),
            flow_rate=float(flow_col[idx]),
            pressure=float(pressure_col[idx]),
            fault_bits=int(fault_col[idx]),
            sequence=int(seq_col[idx]),
            kind=EventKind(str(kind_col[idx])),
        )
        for idx in range(pump_col.shape[0])
    )


def load_npz_events(path: Path) -> tuple[PumpEvent, ...]:
    """Load events from an `.npz` archive holding one array per column."""
    with np.load(path, allow_pickle=False) as archive:
        missing = [name for name in REQUIRED_COLUMNS if name not in archive.files]
        if missing:
            raise ValueError(f"npz archive {path} is missing columns: {', '.join(missing)}")
        return events_from_columns(
            pump_ids=archive["pump_id"],
            timestamps_ms=archive["timestamp_ms"],
            flow_rates=archive["flow_rate"],
            pressures=archive["pressure"],
            fault_bits=archive["fault_bits"],
            sequences=archive["sequence"],
            kinds=archive["kind"] if "kind" in archive.files else None,
        )
