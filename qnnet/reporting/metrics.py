"""Per-epoch metric sinks used as optimizer callbacks."""

from __future__ import annotations

import csv
import json
import math
from pathlib import Path
from typing import Dict, Iterable, Mapping

from .artifacts import git_sha


def _finite(metrics: Mapping[str, float], exclude: Iterable[str] = ()) -> Dict[str, float]:
    # Undefined values (no selection split, for example) are left out.
    skipped = set(exclude)
    return {
        key: float(value)
        for key, value in metrics.items()
        if key not in skipped and isinstance(value, (int, float)) and math.isfinite(value)
    }


class JsonlSink:
    """Append-only JSONL writer for epoch metrics."""

    def __init__(
        self,
        path: str | Path,
        *,
        split: str = "training",
        seed: int | None = None,
        sha: str | None = None,
        exclude: Iterable[str] = (),
    ) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text("")
        self.split = split
        self.seed = seed
        self.sha = sha or git_sha()
        self.exclude = frozenset(exclude)

    def on_epoch(self, epoch: int, metrics: Mapping[str, float]) -> None:
        record = {
            "epoch": int(epoch),
            "split": self.split,
            "seed": self.seed,
            "sha": self.sha,
        }
        record.update(_finite(metrics, self.exclude))
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(record) + "\n")

    __call__ = on_epoch


class CsvSink:
    """Write epoch metrics to CSV; the header is fixed by the first row."""

    def __init__(
        self, path: str | Path, *, split: str = "training", exclude: Iterable[str] = ()
    ) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text("")
        self.split = split
        self.exclude = frozenset(exclude)
        self._fieldnames: list[str] | None = None

    def on_epoch(self, epoch: int, metrics: Mapping[str, float]) -> None:
        row: Dict[str, object] = {"epoch": int(epoch), "split": self.split}
        row.update(_finite(metrics, self.exclude))
        if self._fieldnames is None:
            self._fieldnames = ["epoch", "split"] + sorted(
                set(metrics) - {"epoch", "split"} - self.exclude
            )
        with self.path.open("a", encoding="utf-8", newline="") as handle:
            writer = csv.DictWriter(handle, fieldnames=self._fieldnames, extrasaction="ignore")
            if handle.tell() == 0:
                writer.writeheader()
            writer.writerow(row)

    __call__ = on_epoch


__all__ = ["CsvSink", "JsonlSink"]
