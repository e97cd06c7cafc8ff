"""Utility helpers for data set factories."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

import numpy as np

from ..core.types import Batch, DataSet


@dataclass(frozen=True)
class SplitIndices:
    """Indices for training/selection/testing partitions."""

    training: np.ndarray
    selection: np.ndarray
    testing: np.ndarray

    @property
    def sizes(self) -> Mapping[str, int]:
        return {
            "training": int(self.training.size),
            "selection": int(self.selection.size),
            "testing": int(self.testing.size),
        }


def deterministic_split(
    samples_number: int,
    *,
    selection_split: float = 0.2,
    testing_split: float = 0.2,
    seed: int = 0,
) -> SplitIndices:
    """Return deterministic indices for the requested split ratios."""

    if not 0 <= selection_split < 1:
        raise ValueError("selection_split must be in [0, 1)")
    if not 0 <= testing_split < 1:
        raise ValueError("testing_split must be in [0, 1)")
    if selection_split + testing_split >= 1:
        raise ValueError("selection_split + testing_split must be < 1")

    rng = np.random.default_rng(seed)
    indices = np.arange(samples_number)
    rng.shuffle(indices)

    testing_size = int(round(samples_number * testing_split))
    selection_size = int(round(samples_number * selection_split))
    # At least one sample per requested split
    testing_size = min(max(testing_size, 1 if testing_split > 0 else 0), samples_number)
    remaining = samples_number - testing_size
    selection_size = min(max(selection_size, 1 if selection_split > 0 else 0), remaining)
    training_size = samples_number - selection_size - testing_size
    if training_size <= 0:
        raise ValueError("Not enough samples for the requested splits")

    testing = np.sort(indices[:testing_size])
    selection = np.sort(indices[testing_size : testing_size + selection_size])
    training = np.sort(indices[testing_size + selection_size :])
    return SplitIndices(training=training, selection=selection, testing=testing)


def make_data_set(inputs: np.ndarray, targets: np.ndarray, splits: SplitIndices) -> DataSet:
    """Partition ``inputs``/``targets`` into a :class:`DataSet`."""

    inputs = np.asarray(inputs, dtype=np.float64)
    targets = np.asarray(targets, dtype=np.float64)
    if targets.ndim == 1:
        targets = targets.reshape(-1, 1)

    def _batch(indices: np.ndarray) -> Batch | None:
        if indices.size == 0:
            return None
        return Batch(inputs=inputs[indices], targets=targets[indices])

    return DataSet(
        training=_batch(splits.training),
        selection=_batch(splits.selection),
        testing=_batch(splits.testing),
    )


def one_hot(labels: np.ndarray, classes_number: int) -> np.ndarray:
    labels = np.asarray(labels).reshape(-1).astype(int)
    return np.eye(classes_number)[labels]


def standardize(
    array: np.ndarray,
    *,
    mean: np.ndarray | None = None,
    std: np.ndarray | None = None,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Apply standard scaling returning the scaled array and parameters."""

    if mean is None or std is None:
        mean = array.mean(axis=0, keepdims=True)
        std = array.std(axis=0, keepdims=True)
        std = np.where(std == 0, 1.0, std)
    return (array - mean) / std, mean, std


__all__ = ["SplitIndices", "deterministic_split", "make_data_set", "one_hot", "standardize"]
