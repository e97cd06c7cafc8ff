"""Deterministic run summaries built from the epoch metrics log."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Sequence

import numpy as np

_NON_METRIC_KEYS = {"epoch", "seed", "split", "sha"}


def compute_auc(points: Sequence[float]) -> float:
    """Return the trapezoidal area under ``points`` along an implicit epoch axis."""

    if len(points) < 2:
        return 0.0
    y = np.asarray(points, dtype=np.float64)
    return float(np.sum((y[1:] + y[:-1]) * 0.5))


def _read_records(metrics_path: Path) -> List[Mapping[str, object]]:
    if not metrics_path.exists():
        return []
    return [json.loads(line) for line in metrics_path.read_text().splitlines() if line.strip()]


def _collect(records: Iterable[Mapping[str, object]]) -> Dict[str, List[float]]:
    series: Dict[str, List[float]] = {}
    for record in records:
        for key, value in record.items():
            if key in _NON_METRIC_KEYS or isinstance(value, bool):
                continue
            if isinstance(value, (int, float)):
                series.setdefault(key, []).append(float(value))
    return series


def build_summary(
    records: Sequence[Mapping[str, object]],
    *,
    tail: int = 32,
    stopping_condition: str | None = None,
) -> Mapping[str, object]:
    tail_window = min(tail, len(records))
    metrics: Dict[str, Mapping[str, float]] = {}
    for name, values in sorted(_collect(records).items()):
        series = np.asarray(values, dtype=np.float64)
        metrics[name] = {
            "min": float(np.min(series)),
            "max": float(np.max(series)),
            "mean": float(np.mean(series)),
            "last": float(series[-1]),
            "tail_auc": compute_auc(series[-tail_window:].tolist()) if tail_window else 0.0,
        }
    summary: Dict[str, object] = {
        "version": 1,
        "epochs": int(records[-1]["epoch"]) if records else 0,
        "records": len(records),
        "tail_window": tail_window,
        "metrics": metrics,
    }
    if stopping_condition is not None:
        summary["stopping_condition"] = stopping_condition
    return summary


def write_summary(
    metrics_jsonl: str | Path,
    out_summary_json: str | Path,
    *,
    tail: int = 32,
    stopping_condition: str | None = None,
) -> str:
    """Summarise ``metrics_jsonl`` into ``out_summary_json`` with sorted keys."""

    out_path = Path(out_summary_json)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    summary = build_summary(
        _read_records(Path(metrics_jsonl)), tail=tail, stopping_condition=stopping_condition
    )
    out_path.write_text(json.dumps(summary, sort_keys=True, indent=2))
    return str(out_path)


__all__ = ["build_summary", "compute_auc", "write_summary"]
