"""Testing-split metrics computed from network outputs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Mapping, Tuple

import numpy as np

from ..core.types import Array

_EPSILON = 1e-9


@dataclass(frozen=True)
class MetricResult:
    name: str
    value: float


def default_metrics(task_type: str, *, num_classes: int | None = None) -> List[str]:
    """Metrics reported for the testing split of a ``task_type`` data set."""

    if task_type == "regression":
        return ["mae", "rmse", "r2"]
    if task_type == "binary":
        return ["accuracy", "precision", "recall", "f1"]
    if task_type == "multiclass":
        # Per-class F1 stops being readable past a handful of classes.
        return ["accuracy", "macro_f1"] if num_classes and num_classes <= 20 else ["accuracy"]
    raise ValueError(f"Unknown task type: {task_type}")


def _predicted_classes(outputs: Array, targets: Array) -> Tuple[Array, Array]:
    """Class indices of outputs and targets; a single column is cut at 0.5."""

    if outputs.shape[1] == 1:
        return (outputs[:, 0] >= 0.5).astype(int), (targets[:, 0] >= 0.5).astype(int)
    return np.argmax(outputs, axis=1), np.argmax(targets, axis=1)


def _confusion_counts(predicted: Array, actual: Array, label: int) -> Tuple[float, float, float]:
    hit = predicted == label
    relevant = actual == label
    return (
        float(np.sum(hit & relevant)),
        float(np.sum(hit & ~relevant)),
        float(np.sum(~hit & relevant)),
    )


def _precision(predicted: Array, actual: Array, label: int) -> float:
    true_positives, false_positives, _ = _confusion_counts(predicted, actual, label)
    return true_positives / (true_positives + false_positives + _EPSILON)


def _recall(predicted: Array, actual: Array, label: int) -> float:
    true_positives, _, false_negatives = _confusion_counts(predicted, actual, label)
    return true_positives / (true_positives + false_negatives + _EPSILON)


def _f1(predicted: Array, actual: Array, label: int) -> float:
    precision = _precision(predicted, actual, label)
    recall = _recall(predicted, actual, label)
    return 2.0 * precision * recall / (precision + recall + _EPSILON)


def _mae(outputs: Array, targets: Array, num_classes: int | None) -> float:
    return float(np.mean(np.abs(outputs - targets)))


def _rmse(outputs: Array, targets: Array, num_classes: int | None) -> float:
    return float(np.sqrt(np.mean(np.square(outputs - targets))))


def _r2(outputs: Array, targets: Array, num_classes: int | None) -> float:
    residual = float(np.sum(np.square(targets - outputs)))
    total = float(np.sum(np.square(targets - np.mean(targets, axis=0, keepdims=True))))
    return 1.0 if total == 0.0 else 1.0 - residual / total


def _accuracy(outputs: Array, targets: Array, num_classes: int | None) -> float:
    predicted, actual = _predicted_classes(outputs, targets)
    return float(np.mean(predicted == actual))


def _macro_f1(outputs: Array, targets: Array, num_classes: int | None) -> float:
    predicted, actual = _predicted_classes(outputs, targets)
    classes = num_classes or outputs.shape[1]
    return float(np.mean([_f1(predicted, actual, label) for label in range(classes)]))


def _positive_class(score: Callable[[Array, Array, int], float]):
    def _metric(outputs: Array, targets: Array, num_classes: int | None) -> float:
        return score(*_predicted_classes(outputs, targets), 1)

    return _metric


_METRICS: Dict[str, Callable[[Array, Array, int | None], float]] = {
    "mae": _mae,
    "rmse": _rmse,
    "r2": _r2,
    "accuracy": _accuracy,
    "macro_f1": _macro_f1,
    "precision": _positive_class(_precision),
    "recall": _positive_class(_recall),
    "f1": _positive_class(_f1),
}


def compute_metric(
    name: str,
    outputs: Array,
    targets: Array,
    *,
    num_classes: int | None = None,
) -> MetricResult:
    key = name.lower()
    if key not in _METRICS:
        available = ", ".join(sorted(_METRICS))
        raise KeyError(f"Unknown metric {name!r}. Available metrics: {available}")
    return MetricResult(name=key, value=float(_METRICS[key](outputs, targets, num_classes)))


def compute_metrics(
    names: Iterable[str],
    outputs: Array,
    targets: Array,
    *,
    num_classes: int | None = None,
) -> Mapping[str, float]:
    return {
        result.name: result.value
        for result in (
            compute_metric(name, outputs, targets, num_classes=num_classes) for name in names
        )
    }


__all__ = ["MetricResult", "compute_metric", "compute_metrics", "default_metrics"]
