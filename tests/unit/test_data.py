import numpy as np
import pytest

from qnnet.data import registry
from qnnet.data.utils import deterministic_split, one_hot, standardize


def test_builtin_datasets_are_registered():
    assert {"sine", "blobs", "xor"} <= set(registry.available_datasets())


def test_unknown_dataset():
    with pytest.raises(KeyError, match="Available datasets"):
        registry.get_dataset("mnist")


def test_sine_splits_and_spec():
    dataset = registry.get_dataset("sine", n_points=50, seed=3)
    assert dataset.data_spec.task_type == "regression"
    assert dataset.splits == {"training": 30, "selection": 10, "testing": 10}
    assert dataset.data_set.training.inputs.shape == (30, 1)
    assert dataset.data_set.has_selection()
    assert dataset.provenance["n_points"] == 50


def test_sine_is_deterministic():
    first = registry.get_dataset("sine", seed=5).data_set.training
    second = registry.get_dataset("sine", seed=5).data_set.training
    np.testing.assert_array_equal(first.inputs, second.inputs)
    np.testing.assert_array_equal(first.targets, second.targets)


def test_blobs_targets():
    multiclass = registry.get_dataset("blobs", n_samples=60, centers=3)
    targets = multiclass.data_set.training.targets
    assert multiclass.data_spec.num_classes == 3
    np.testing.assert_array_equal(targets.sum(axis=1), np.ones(targets.shape[0]))

    binary = registry.get_dataset("blobs", n_samples=60, centers=2)
    assert binary.data_spec.task_type == "binary"
    assert binary.data_set.training.targets.shape[1] == 1
    with pytest.raises(ValueError):
        registry.get_dataset("blobs", centers=1)


def test_xor_has_only_training_split():
    dataset = registry.get_dataset("xor", repeats=2)
    assert dataset.data_set.training.samples_number == 8
    assert not dataset.data_set.has_selection()
    assert dataset.data_set.testing is None


def test_deterministic_split_is_a_partition():
    splits = deterministic_split(20, selection_split=0.25, testing_split=0.25, seed=1)
    merged = np.sort(np.concatenate([splits.training, splits.selection, splits.testing]))
    np.testing.assert_array_equal(merged, np.arange(20))
    with pytest.raises(ValueError):
        deterministic_split(10, selection_split=0.5, testing_split=0.5)


def test_register_dataset_directly():
    def make_constant(**options):
        return registry.get_dataset("xor")

    registry.register_dataset("constant-xor", make_constant)
    assert "constant-xor" in registry.available_datasets()
    assert registry.get_dataset("constant-xor").name == "xor"


def test_helpers():
    np.testing.assert_array_equal(one_hot(np.array([1, 0]), 3), [[0, 1, 0], [1, 0, 0]])
    scaled, mean, std = standardize(np.array([[1.0, 5.0], [3.0, 5.0]]))
    np.testing.assert_allclose(scaled, [[-1.0, 0.0], [1.0, 0.0]])
    np.testing.assert_allclose(std, [[1.0, 1.0]])
