import numpy as np
import pytest

from qnnet.core.errors import DimensionError, UnknownActivationError
from qnnet.core.perceptron import PerceptronLayer
from qnnet.core.probabilistic import ProbabilisticLayer
from qnnet.core.types import LayerKind


def test_linear_identity_neuron_passes_inputs_through():
    layer = PerceptronLayer(1, 1, "Linear")
    layer.set_parameters(np.array([0.0, 1.0]))
    np.testing.assert_allclose(layer.forward(np.array([[2.5], [-1.0]])), [[2.5], [-1.0]])


def test_parameter_vector_is_biases_then_column_major_weights():
    layer = PerceptronLayer(2, 3, "Linear")
    layer.set_parameters(np.arange(9.0))
    np.testing.assert_array_equal(layer.biases, [0.0, 1.0, 2.0])
    np.testing.assert_array_equal(layer.synaptic_weights, [[3.0, 5.0, 7.0], [4.0, 6.0, 8.0]])
    np.testing.assert_array_equal(layer.get_parameters(), np.arange(9.0))


def test_set_parameters_reads_from_offset():
    layer = PerceptronLayer(1, 2)
    layer.set_parameters(np.arange(10.0), index=4)
    np.testing.assert_array_equal(layer.get_parameters(), [4.0, 5.0, 6.0, 7.0])
    with pytest.raises(DimensionError):
        layer.set_parameters(np.zeros(3))


def test_parameters_round_trip():
    layer = PerceptronLayer(3, 4, seed=0)
    parameters = np.random.default_rng(1).standard_normal(layer.get_parameters_number())
    layer.set_parameters(parameters)
    np.testing.assert_array_equal(layer.get_parameters(), parameters)


def test_combinations_add_biases_to_weighted_inputs():
    layer = PerceptronLayer(2, 3, seed=0)
    inputs = np.random.default_rng(2).standard_normal((4, 2))
    combinations = layer.calculate_combinations(inputs, layer.biases, layer.synaptic_weights)
    np.testing.assert_allclose(combinations, inputs @ layer.synaptic_weights + layer.biases)


def test_wrong_inputs_number_raises():
    layer = PerceptronLayer(2, 3)
    with pytest.raises(DimensionError, match="columns"):
        layer.forward(np.ones((4, 3)))


def test_forward_buffer_of_another_batch_size_raises():
    layer = PerceptronLayer(2, 3)
    forward = layer.new_forward_propagation(5)
    with pytest.raises(DimensionError):
        layer.forward_propagate(np.ones((4, 2)), forward)


def test_candidate_parameters_leave_layer_untouched():
    layer = PerceptronLayer(2, 2, "Linear", seed=0)
    stored = layer.get_parameters()
    candidate = np.ones_like(stored)
    forward = layer.new_forward_propagation(1)
    layer.forward_propagate(np.array([[1.0, 2.0]]), forward, candidate)
    np.testing.assert_allclose(forward.activations, [[4.0, 4.0]])
    np.testing.assert_array_equal(layer.get_parameters(), stored)


def test_constant_and_resize():
    layer = PerceptronLayer(2, 3)
    layer.set_parameters_constant(0.5)
    np.testing.assert_array_equal(layer.get_parameters(), np.full(9, 0.5))
    layer.set_inputs_number(4)
    assert layer.synaptic_weights.shape == (4, 3)
    layer.set_neurons_number(1)
    assert layer.get_parameters_number() == 5


def test_activation_function_by_name():
    layer = PerceptronLayer(1, 1)
    assert layer.write_activation_function() == "HyperbolicTangent"
    layer.set_activation_function("SoftPlus")
    assert layer.write_activation_function() == "SoftPlus"
    with pytest.raises(UnknownActivationError):
        layer.set_activation_function("Swish")


def _forward(layer, inputs):
    forward = layer.new_forward_propagation(inputs.shape[0])
    layer.forward_propagate(inputs, forward)
    return forward


def test_hidden_delta_from_perceptron_layer():
    rng = np.random.default_rng(3)
    inputs = rng.standard_normal((5, 3))
    layer = PerceptronLayer(3, 4, seed=0)
    next_layer = PerceptronLayer(4, 2, "Logistic", seed=1)
    forward = _forward(layer, inputs)
    next_forward = _forward(next_layer, forward.activations)
    next_back = next_layer.new_back_propagation(5)
    next_back.delta[...] = rng.standard_normal((5, 2))
    back = layer.new_back_propagation(5)

    layer.calculate_hidden_delta(next_forward, next_back, back)

    expected = (next_back.delta * next_forward.activations_derivatives) @ next_layer.synaptic_weights.T
    np.testing.assert_allclose(back.delta, expected)


def test_hidden_delta_from_softmax_layer_uses_jacobian():
    rng = np.random.default_rng(4)
    inputs = rng.standard_normal((5, 3))
    layer = PerceptronLayer(3, 4, seed=0)
    next_layer = ProbabilisticLayer(4, 3, "Softmax", seed=1)
    forward = _forward(layer, inputs)
    next_forward = _forward(next_layer, forward.activations)
    next_back = next_layer.new_back_propagation(5)
    next_back.delta[...] = rng.standard_normal((5, 3))
    back = layer.new_back_propagation(5)

    layer.calculate_hidden_delta(next_forward, next_back, back)

    error_combinations = np.einsum("sj,sjk->sk", next_back.delta, next_forward.activations_derivatives)
    np.testing.assert_allclose(back.delta, error_combinations @ next_layer.synaptic_weights.T)


def test_hidden_delta_from_competitive_multiclass_layer():
    rng = np.random.default_rng(7)
    inputs = rng.standard_normal((5, 3))
    layer = PerceptronLayer(3, 4, seed=0)
    next_layer = ProbabilisticLayer(4, 3, "Competitive", seed=1)
    assert next_layer.kind is LayerKind.PROBABILISTIC_MULTICLASS
    forward = _forward(layer, inputs)
    next_forward = _forward(next_layer, forward.activations)
    assert next_forward.activations_derivatives.shape == (5, 3)
    next_back = next_layer.new_back_propagation(5)
    next_back.delta[...] = rng.standard_normal((5, 3))
    back = layer.new_back_propagation(5)

    layer.calculate_hidden_delta(next_forward, next_back, back)

    expected = (next_back.delta * next_forward.activations_derivatives) @ next_layer.synaptic_weights.T
    np.testing.assert_allclose(back.delta, expected)


def test_hidden_delta_from_binary_logistic_layer():
    rng = np.random.default_rng(8)
    inputs = rng.standard_normal((5, 3))
    layer = PerceptronLayer(3, 4, seed=0)
    next_layer = ProbabilisticLayer(4, 1, "Logistic", seed=1)
    assert next_layer.kind is LayerKind.PROBABILISTIC_BINARY
    forward = _forward(layer, inputs)
    next_forward = _forward(next_layer, forward.activations)
    next_back = next_layer.new_back_propagation(5)
    next_back.delta[...] = rng.standard_normal((5, 1))
    back = layer.new_back_propagation(5)

    layer.calculate_hidden_delta(next_forward, next_back, back)

    outputs = next_forward.activations
    expected = (next_back.delta * outputs * (1.0 - outputs)) @ next_layer.synaptic_weights.T
    np.testing.assert_allclose(back.delta, expected)
    assert back.delta.shape == (5, 4)


def test_stale_forward_buffer_after_activation_change_raises():
    layer = ProbabilisticLayer(3, 3, "Softmax", seed=0)
    forward = layer.new_forward_propagation(4)
    layer.set_activation_function("Competitive")
    with pytest.raises(DimensionError, match=r"\(4, 3, 3\)"):
        layer.forward_propagate(np.ones((4, 3)), forward)


def test_set_biases_and_synaptic_weights():
    layer = PerceptronLayer(3, 2, seed=0)
    biases = np.array([0.5, -0.5])
    weights = np.arange(6.0).reshape(3, 2)
    layer.set_biases(biases)
    layer.set_synaptic_weights(weights)
    biases[0] = 9.0
    weights[0, 0] = 9.0

    np.testing.assert_array_equal(layer.biases, [0.5, -0.5])
    np.testing.assert_array_equal(layer.synaptic_weights, np.arange(6.0).reshape(3, 2))
    np.testing.assert_array_equal(layer.get_parameters()[:2], [0.5, -0.5])


def test_set_biases_and_synaptic_weights_reject_wrong_shapes():
    layer = PerceptronLayer(3, 2, seed=0)
    before = layer.get_parameters()
    with pytest.raises(DimensionError):
        layer.set_biases(np.zeros(3))
    with pytest.raises(DimensionError):
        layer.set_synaptic_weights(np.zeros((2, 3)))
    with pytest.raises(DimensionError):
        layer.set_synaptic_weights(np.zeros(6))
    np.testing.assert_array_equal(layer.get_parameters(), before)


def test_hidden_delta_rejects_mismatched_softmax_buffers():
    layer = PerceptronLayer(3, 4, seed=0)
    next_layer = ProbabilisticLayer(4, 3, "Softmax", seed=1)
    forward = _forward(layer, np.ones((2, 3)))
    next_forward = _forward(next_layer, forward.activations)
    back = layer.new_back_propagation(2)

    next_back = next_layer.new_back_propagation(2)
    next_back.delta = np.zeros((2, 2))
    with pytest.raises(DimensionError):
        layer.calculate_hidden_delta(next_forward, next_back, back)

    next_back = next_layer.new_back_propagation(2)
    next_forward.activations_derivatives = np.zeros((2, 3))
    with pytest.raises(DimensionError):
        layer.calculate_hidden_delta(next_forward, next_back, back)


def test_hidden_delta_rejects_unconnected_layers():
    layer = PerceptronLayer(3, 4, seed=0)
    next_layer = PerceptronLayer(5, 2, seed=1)
    next_forward = next_layer.new_forward_propagation(2)
    next_back = next_layer.new_back_propagation(2)
    with pytest.raises(DimensionError):
        layer.calculate_hidden_delta(next_forward, next_back, layer.new_back_propagation(2))


def test_error_gradient_is_inserted_in_parameter_order():
    rng = np.random.default_rng(5)
    inputs = rng.standard_normal((6, 2))
    layer = PerceptronLayer(2, 3, "Linear", seed=0)
    forward = _forward(layer, inputs)
    back = layer.new_back_propagation(6)
    back.delta[...] = rng.standard_normal((6, 3))

    layer.calculate_error_gradient(inputs, forward, back)
    gradient = np.zeros(2 + layer.get_parameters_number())
    layer.insert_gradient(back, 2, gradient)

    np.testing.assert_allclose(gradient[2:5], back.delta.sum(axis=0))
    np.testing.assert_allclose(gradient[5:], (inputs.T @ back.delta).ravel(order="F"))
    assert gradient[0] == gradient[1] == 0.0


def test_probabilistic_layer_defaults_and_kinds():
    binary = ProbabilisticLayer(3, 1)
    assert binary.write_activation_function() == "Logistic"
    assert binary.kind is LayerKind.PROBABILISTIC_BINARY
    multiclass = ProbabilisticLayer(3, 4)
    assert multiclass.write_activation_function() == "Softmax"
    assert multiclass.kind is LayerKind.PROBABILISTIC_SOFTMAX
    assert multiclass.new_forward_propagation(2).activations_derivatives.shape == (2, 4, 4)
    multiclass.set_activation_function("Competitive")
    assert multiclass.kind is LayerKind.PROBABILISTIC_MULTICLASS
    assert multiclass.new_forward_propagation(2).activations_derivatives.shape == (2, 4)


def test_single_neuron_probabilistic_layer_rejects_softmax():
    with pytest.raises(ValueError):
        ProbabilisticLayer(3, 1, "Softmax")


def test_probabilistic_outputs():
    layer = ProbabilisticLayer(2, 3, seed=0)
    outputs = layer.forward(np.random.default_rng(6).standard_normal((5, 2)))
    np.testing.assert_allclose(outputs.sum(axis=1), np.ones(5))

    layer = ProbabilisticLayer(1, 1, "Binary", decision_threshold=0.5)
    layer.set_parameters(np.array([0.0, 1.0]))
    np.testing.assert_array_equal(layer.forward(np.array([[0.2], [0.7]])), [[0.0], [1.0]])
    with pytest.raises(ValueError):
        layer.set_decision_threshold(1.5)
