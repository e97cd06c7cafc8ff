"""Pure in-memory synthetic data sets."""

from __future__ import annotations

import numpy as np
from sklearn.datasets import make_blobs

from .registry import DataSpec, DatasetSpec, register_dataset
from .utils import deterministic_split, make_data_set, one_hot, standardize


def _split_provenance(selection_split: float, testing_split: float) -> dict:
    return {"selection_split": selection_split, "testing_split": testing_split}


@register_dataset("sine")
def make_sine(
    freq: int = 1,
    n_points: int = 64,
    noise: float = 0.05,
    seed: int = 0,
    *,
    selection_split: float = 0.2,
    testing_split: float = 0.2,
) -> DatasetSpec:
    """Noisy ``sin(freq * pi * x)`` on ``[-1, 1]``."""

    rng = np.random.default_rng(seed)
    x = np.linspace(-1.0, 1.0, n_points).reshape(-1, 1)
    y = np.sin(freq * np.pi * x) + noise * rng.standard_normal(size=x.shape)
    splits = deterministic_split(
        n_points, selection_split=selection_split, testing_split=testing_split, seed=seed
    )
    provenance = {
        "type": "synthetic",
        "freq": freq,
        "n_points": n_points,
        "noise": noise,
        "seed": seed,
        **_split_provenance(selection_split, testing_split),
    }
    return DatasetSpec(
        name="sine",
        data_set=make_data_set(x, y, splits),
        data_spec=DataSpec(inputs_number=1, targets_number=1, task_type="regression"),
        provenance=provenance,
        splits=dict(splits.sizes),
    )


@register_dataset("blobs")
def make_gaussian_blobs(
    n_samples: int = 120,
    n_features: int = 2,
    centers: int = 3,
    cluster_std: float = 1.0,
    seed: int = 0,
    *,
    selection_split: float = 0.2,
    testing_split: float = 0.2,
) -> DatasetSpec:
    """Isotropic Gaussian clusters; binary targets for two centers, one-hot otherwise."""

    if centers < 2:
        raise ValueError("blobs needs at least two centers")
    inputs, labels = make_blobs(
        n_samples=n_samples,
        n_features=n_features,
        centers=centers,
        cluster_std=cluster_std,
        random_state=seed,
    )
    inputs, mean, std = standardize(inputs)
    if centers == 2:
        targets = labels.reshape(-1, 1).astype(np.float64)
        data_spec = DataSpec(
            inputs_number=n_features,
            targets_number=1,
            task_type="binary",
            num_classes=2,
            normalization={"mean": mean.ravel().tolist(), "std": std.ravel().tolist()},
        )
    else:
        targets = one_hot(labels, centers)
        data_spec = DataSpec(
            inputs_number=n_features,
            targets_number=centers,
            task_type="multiclass",
            num_classes=centers,
            normalization={"mean": mean.ravel().tolist(), "std": std.ravel().tolist()},
        )
    splits = deterministic_split(
        n_samples, selection_split=selection_split, testing_split=testing_split, seed=seed
    )
    provenance = {
        "type": "synthetic",
        "generator": "sklearn.datasets.make_blobs",
        "n_samples": n_samples,
        "n_features": n_features,
        "centers": centers,
        "cluster_std": cluster_std,
        "seed": seed,
        **_split_provenance(selection_split, testing_split),
    }
    return DatasetSpec(
        name="blobs",
        data_set=make_data_set(inputs, targets, splits),
        data_spec=data_spec,
        provenance=provenance,
        splits=dict(splits.sizes),
    )


@register_dataset("xor")
def make_xor(
    repeats: int = 1,
    noise: float = 0.0,
    seed: int = 0,
    *,
    selection_split: float = 0.0,
    testing_split: float = 0.0,
) -> DatasetSpec:
    """The four XOR points, optionally repeated with input jitter."""

    rng = np.random.default_rng(seed)
    base_inputs = np.array([[0.0, 0.0], [0.0, 1.0], [1.0, 0.0], [1.0, 1.0]])
    base_targets = np.array([[0.0], [1.0], [1.0], [0.0]])
    inputs = np.tile(base_inputs, (repeats, 1))
    targets = np.tile(base_targets, (repeats, 1))
    if noise > 0.0:
        inputs = inputs + noise * rng.standard_normal(size=inputs.shape)
    splits = deterministic_split(
        inputs.shape[0], selection_split=selection_split, testing_split=testing_split, seed=seed
    )
    provenance = {
        "type": "synthetic",
        "repeats": repeats,
        "noise": noise,
        "seed": seed,
        **_split_provenance(selection_split, testing_split),
    }
    return DatasetSpec(
        name="xor",
        data_set=make_data_set(inputs, targets, splits),
        data_spec=DataSpec(inputs_number=2, targets_number=1, task_type="binary", num_classes=2),
        provenance=provenance,
        splits=dict(splits.sizes),
    )


__all__ = ["make_gaussian_blobs", "make_sine", "make_xor"]
