import numpy as np
import pytest

from qnnet import NeuralNetwork
from qnnet.core.errors import MissingLossIndexError
from qnnet.core.types import Batch, DataSet
from qnnet.training.losses import (
    REGISTRY,
    CrossEntropyError,
    MeanSquaredError,
    SumSquaredError,
    get_regularization,
)


def _regression_data(samples=6, inputs=2, targets=2, seed=0):
    rng = np.random.default_rng(seed)
    batch = Batch(rng.standard_normal((samples, inputs)), rng.standard_normal((samples, targets)))
    return DataSet(training=batch)


def _classification_data(samples=8, inputs=2, classes=3, seed=0):
    rng = np.random.default_rng(seed)
    x = rng.standard_normal((samples, inputs))
    if classes == 1:
        targets = (rng.random((samples, 1)) > 0.5).astype(float)
    else:
        targets = np.eye(classes)[rng.integers(classes, size=samples)]
    return DataSet(training=Batch(x, targets))


def _assert_gradient_matches(loss_index):
    analytic = loss_index.calculate_gradient()
    numerical = loss_index.calculate_numerical_gradient()
    np.testing.assert_allclose(analytic, numerical, rtol=1e-4, atol=1e-6)


@pytest.mark.parametrize("loss_class", [SumSquaredError, MeanSquaredError])
def test_perceptron_gradient_matches_numerical(loss_class):
    network = NeuralNetwork.approximation([2, 3, 2], "HyperbolicTangent", seed=0)
    network.set_parameters_random(-1.0, 1.0)
    _assert_gradient_matches(loss_class(network, _regression_data()))


def test_logistic_output_gradient_matches_numerical():
    network = NeuralNetwork.classification([2, 3, 1], "Logistic", seed=1)
    data_set = _classification_data(classes=1)
    _assert_gradient_matches(CrossEntropyError(network, data_set))
    _assert_gradient_matches(SumSquaredError(network, data_set))


@pytest.mark.parametrize("loss_class", [CrossEntropyError, SumSquaredError, MeanSquaredError])
def test_softmax_output_gradient_matches_numerical(loss_class):
    network = NeuralNetwork.classification([2, 4, 3], "HyperbolicTangent", seed=2)
    network.set_parameters_random(-1.0, 1.0)
    _assert_gradient_matches(loss_class(network, _classification_data()))


def test_three_layer_gradient_matches_numerical():
    network = NeuralNetwork.approximation([3, 4, 3, 1], "SoftPlus", seed=3)
    network.set_parameters_random(-1.0, 1.0)
    _assert_gradient_matches(SumSquaredError(network, _regression_data(inputs=3, targets=1)))


@pytest.mark.parametrize("regularization", ["L1", "L2"])
def test_regularized_gradient_matches_numerical(regularization):
    network = NeuralNetwork.approximation([2, 3, 1], seed=4)
    network.set_parameters_random(0.1, 1.0)
    loss_index = MeanSquaredError(
        network,
        _regression_data(targets=1),
        regularization=regularization,
        regularization_weight=0.1,
    )
    _assert_gradient_matches(loss_index)


def test_loss_includes_weighted_regularization():
    network = NeuralNetwork.approximation([2, 1], seed=0)
    network.set_parameters(np.array([0.0, 3.0, 4.0]))
    data_set = _regression_data(targets=1)
    plain = SumSquaredError(network, data_set).calculate_loss()
    regularized = SumSquaredError(
        network, data_set, regularization="L2", regularization_weight=0.5
    ).calculate_loss()
    assert regularized == pytest.approx(plain + 0.5 * 5.0)


def test_l2_regularization_hessian_is_norm_hessian():
    regularization = get_regularization("L2")
    v = np.array([1.0, 2.0, 2.0])
    np.testing.assert_allclose(regularization.hessian(v), (np.eye(3) - np.outer(v, v) / 9.0) / 3.0)
    with pytest.raises(KeyError):
        get_regularization("L3")


def test_error_values():
    network = NeuralNetwork.approximation([1, 1], "HyperbolicTangent", seed=0)
    network.set_parameters(np.array([0.0, 1.0]))
    batch = Batch(np.array([[1.0], [2.0]]), np.array([[0.0], [1.0]]))
    data_set = DataSet(training=batch)
    errors = network.calculate_outputs(batch.inputs) - batch.targets
    sse = float(np.sum(errors**2))
    assert SumSquaredError(network, data_set).calculate_loss() == pytest.approx(sse)
    assert MeanSquaredError(network, data_set).calculate_loss() == pytest.approx(sse / 2)


def test_cross_entropy_is_clipped():
    network = NeuralNetwork.classification([1, 1], seed=0)
    network.set_parameters(np.array([0.0, 1000.0]))
    data_set = DataSet(training=Batch(np.array([[1.0]]), np.array([[0.0]])))
    loss = CrossEntropyError(network, data_set).calculate_loss()
    assert np.isfinite(loss)
    assert loss == pytest.approx(-np.log(1e-12), rel=1e-3)


def test_candidate_parameters_do_not_mutate_network():
    network = NeuralNetwork.approximation([2, 3, 1], seed=0)
    loss_index = SumSquaredError(network, _regression_data(targets=1))
    stored = network.get_parameters()
    loss_at_candidate = loss_index.calculate_loss(stored + 0.5)
    np.testing.assert_array_equal(network.get_parameters(), stored)
    network.set_parameters(stored + 0.5)
    assert loss_index.calculate_loss() == pytest.approx(loss_at_candidate)


@pytest.mark.parametrize(
    "architecture, classification",
    [([2, 3, 2], False), ([2, 4, 3], True), ([2, 3, 1], True)],
)
def test_squared_errors_jacobian_reproduces_sum_squared_error_gradient(architecture, classification):
    if classification:
        network = NeuralNetwork.classification(architecture, seed=5)
        data_set = _classification_data(classes=architecture[-1])
    else:
        network = NeuralNetwork.approximation(architecture, seed=5)
        data_set = _regression_data(targets=architecture[-1])
    network.set_parameters_random(-1.0, 1.0)
    loss_index = SumSquaredError(network, data_set)

    jacobian = loss_index.calculate_squared_errors_jacobian()
    errors = network.calculate_outputs(data_set.training.inputs) - data_set.training.targets
    squared_errors = np.sqrt(np.sum(errors**2, axis=1))

    assert jacobian.shape == (data_set.training.samples_number, network.get_parameters_number())
    np.testing.assert_allclose(
        2.0 * jacobian.T @ squared_errors, loss_index.calculate_gradient(), rtol=1e-8, atol=1e-10
    )


def test_mean_squared_error_lm_gradient_and_hessian():
    network = NeuralNetwork.approximation([2, 3, 1], seed=6)
    data_set = _regression_data(targets=1)
    loss_index = MeanSquaredError(network, data_set)
    batch = data_set.training
    forward = loss_index.new_forward_propagation(batch)
    back_lm = loss_index.new_back_propagation_lm(batch)
    network.forward_propagate(batch.inputs, forward)
    loss_index.back_propagate_lm(batch, forward, back_lm)

    samples = batch.samples_number
    jacobian = back_lm.squared_errors_jacobian
    assert back_lm.loss == pytest.approx(loss_index.calculate_loss())
    np.testing.assert_allclose(back_lm.gradient, loss_index.calculate_gradient(), atol=1e-10)
    np.testing.assert_allclose(back_lm.hessian, 2.0 / samples * jacobian.T @ jacobian)


def test_cross_entropy_has_no_squared_errors_form():
    network = NeuralNetwork.classification([2, 3, 1], seed=0)
    loss_index = CrossEntropyError(network, _classification_data(classes=1))
    assert not loss_index.supports_lm
    with pytest.raises(ValueError):
        loss_index.calculate_squared_errors_jacobian()


def test_missing_network_or_data_set():
    with pytest.raises(MissingLossIndexError):
        SumSquaredError().calculate_loss()
    with pytest.raises(MissingLossIndexError):
        SumSquaredError(NeuralNetwork.approximation([1, 1])).calculate_gradient()


def test_registry():
    assert {"sse", "mse", "ce", "sum_squared_error"} <= set(REGISTRY.names())
    assert REGISTRY.get("mse") is MeanSquaredError
    loss_index = REGISTRY.create("ce", regularization="L1")
    assert isinstance(loss_index, CrossEntropyError)
    assert loss_index.regularization.name == "L1"
    with pytest.raises(KeyError):
        REGISTRY.get("hinge")
