import numpy as np
import pytest

from qnnet import NeuralNetwork
from qnnet.core.types import Batch, DataSet
from qnnet.data import registry
from qnnet.training.levenberg_marquardt import LevenbergMarquardtAlgorithm
from qnnet.training.losses import CrossEntropyError, MeanSquaredError, SumSquaredError
from qnnet.training.optimization import StoppingCondition


def test_linear_least_squares_solution():
    x = np.array([[0.0], [1.0], [2.0], [3.0]])
    network = NeuralNetwork.approximation([1, 1], seed=0)
    loss_index = SumSquaredError(network, DataSet(training=Batch(x, 2.0 * x + 1.0)))
    results = LevenbergMarquardtAlgorithm(
        loss_index, maximum_epochs_number=50, display=False
    ).perform_training()
    np.testing.assert_allclose(network.get_parameters(), [1.0, 2.0], atol=1e-4)
    assert results.loss < 1e-8


def test_damping_stays_within_bounds_on_sine():
    dataset = registry.get_dataset("sine", n_points=40, seed=0)
    network = NeuralNetwork.approximation([1, 5, 1], seed=0)
    loss_index = MeanSquaredError(network, dataset.data_set)
    initial = loss_index.calculate_loss()
    optimizer = LevenbergMarquardtAlgorithm(loss_index, maximum_epochs_number=30, display=False)
    results = optimizer.perform_training()
    assert results.loss < initial
    assert all(
        optimizer.minimum_damping_parameter <= damping <= optimizer.maximum_damping_parameter
        for damping in results.learning_rate_history
    )
    assert results.stopping_condition is not StoppingCondition.NONE


def test_rejected_steps_keep_parameters():
    x = np.array([[0.0], [1.0]])
    network = NeuralNetwork.approximation([1, 1], seed=0)
    network.set_parameters(np.array([1.0, 2.0]))
    loss_index = SumSquaredError(network, DataSet(training=Batch(x, 2.0 * x + 1.0)))
    optimizer = LevenbergMarquardtAlgorithm(loss_index, maximum_damping_parameter=1e-2)
    batch = loss_index.data_set.training
    forward = loss_index.new_forward_propagation(batch)
    back_lm = loss_index.new_back_propagation_lm(batch)
    network.forward_propagate(batch.inputs, forward)
    loss_index.back_propagate_lm(batch, forward, back_lm)

    parameters, accepted = optimizer.update_parameters(batch, forward, back_lm, network.get_parameters())
    assert not accepted
    np.testing.assert_array_equal(parameters, [1.0, 2.0])
    assert optimizer.damping_parameter == pytest.approx(1e-2)


def test_cross_entropy_is_rejected():
    network = NeuralNetwork.classification([2, 3, 1], seed=0)
    data_set = DataSet(training=Batch(np.zeros((2, 2)), np.array([[0.0], [1.0]])))
    with pytest.raises(ValueError):
        LevenbergMarquardtAlgorithm(CrossEntropyError(network, data_set)).perform_training()


def test_settings():
    optimizer = LevenbergMarquardtAlgorithm(damping_parameter=1e-9)
    assert optimizer.damping_parameter == optimizer.minimum_damping_parameter
    settings = optimizer.to_dict()
    assert {"damping_parameter", "damping_parameter_factor"} <= set(settings)
    assert LevenbergMarquardtAlgorithm.from_dict(settings).to_dict() == settings
    with pytest.raises(ValueError):
        LevenbergMarquardtAlgorithm(damping_parameter_factor=1.0)
    with pytest.raises(ValueError):
        LevenbergMarquardtAlgorithm(minimum_damping_parameter=1.0, maximum_damping_parameter=0.1)
