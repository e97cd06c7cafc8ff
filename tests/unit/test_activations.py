import numpy as np
import pytest

from qnnet.core import activations
from qnnet.core.activations import ActivationFunction, ProbabilisticActivation
from qnnet.core.errors import UnknownActivationError

# Points away from the kinks of the piecewise functions.
_POINTS = np.array([[-1.7, -0.3, 0.4, 1.9]])


@pytest.mark.parametrize("function", list(ActivationFunction))
def test_derivative_matches_finite_difference(function):
    h = 1e-6
    _, derivatives = activations.activate_with_derivatives(function, _POINTS)
    numerical = (
        activations.activate(function, _POINTS + h) - activations.activate(function, _POINTS - h)
    ) / (2 * h)
    np.testing.assert_allclose(derivatives, numerical, atol=1e-4)


def test_reference_values():
    a, d = activations.activate_with_derivatives("Logistic", np.array([[0.0]]))
    assert a[0, 0] == pytest.approx(0.5)
    assert d[0, 0] == pytest.approx(0.25)

    a, d = activations.activate_with_derivatives("RectifiedLinear", np.array([[-1.0, 2.0]]))
    np.testing.assert_array_equal(a, [[0.0, 2.0]])
    np.testing.assert_array_equal(d, [[0.0, 1.0]])

    a, _ = activations.activate_with_derivatives("SymmetricThreshold", np.array([[-0.1, 0.0]]))
    np.testing.assert_array_equal(a, [[-1.0, 1.0]])

    a, d = activations.activate_with_derivatives("HardSigmoid", np.array([[-3.0, 0.0, 3.0]]))
    np.testing.assert_allclose(a, [[0.0, 0.5, 1.0]])
    np.testing.assert_allclose(d, [[0.0, 0.2, 0.0]])


def test_scaled_exponential_linear_constants():
    a, d = activations.activate_with_derivatives("ScaledExponentialLinear", np.array([[1.0, -1.0]]))
    assert a[0, 0] == pytest.approx(1.0507)
    assert a[0, 1] == pytest.approx(1.0507 * 1.67326 * (np.exp(-1.0) - 1.0))
    assert d[0, 0] == pytest.approx(1.0507)


def test_large_combinations_stay_finite():
    c = np.array([[-800.0, 800.0]])
    for function in ActivationFunction:
        a, d = activations.activate_with_derivatives(function, c)
        assert np.all(np.isfinite(a)), function
        assert np.all(np.isfinite(d)), function


def test_names_parse_case_sensitively():
    assert ActivationFunction.from_name("HyperbolicTangent") is ActivationFunction.HYPERBOLIC_TANGENT
    with pytest.raises(UnknownActivationError):
        ActivationFunction.from_name("hyperbolictangent")
    with pytest.raises(UnknownActivationError):
        ProbabilisticActivation.from_name("Sigmoid")


def test_softmax_rows_sum_to_one_and_jacobian_matches_finite_difference():
    c = np.array([[0.2, -1.0, 0.5], [3.0, 1.0, -2.0]])
    a, jacobian = activations.probabilistic_activate_with_derivatives("Softmax", c)
    np.testing.assert_allclose(a.sum(axis=1), np.ones(2))
    assert jacobian.shape == (2, 3, 3)
    h = 1e-6
    for k in range(3):
        shift = np.zeros_like(c)
        shift[:, k] = h
        numerical = (activations.softmax(c + shift) - activations.softmax(c - shift)) / (2 * h)
        np.testing.assert_allclose(jacobian[:, :, k], numerical, atol=1e-6)


def test_competitive_and_binary():
    c = np.array([[0.1, 0.7, 0.2], [0.9, 0.0, 0.1]])
    a, d = activations.probabilistic_activate_with_derivatives("Competitive", c)
    np.testing.assert_array_equal(a, [[0.0, 1.0, 0.0], [1.0, 0.0, 0.0]])
    np.testing.assert_array_equal(d, np.zeros_like(c))
    b = activations.binary(np.array([[0.3], [0.5], [0.8]]), decision_threshold=0.5)
    np.testing.assert_array_equal(b, [[0.0], [1.0], [1.0]])
