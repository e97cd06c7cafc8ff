"""Activation functions and their closed-form derivatives."""

from __future__ import annotations

from enum import Enum
from typing import Callable, Dict, Tuple

import numpy as np
from scipy.special import expit

from .errors import UnknownActivationError
from .types import Array

SELU_LAMBDA = 1.0507
SELU_ALPHA = 1.67326
ELU_ALPHA = 1.0


class ActivationFunction(str, Enum):
    LINEAR = "Linear"
    LOGISTIC = "Logistic"
    HYPERBOLIC_TANGENT = "HyperbolicTangent"
    THRESHOLD = "Threshold"
    SYMMETRIC_THRESHOLD = "SymmetricThreshold"
    RECTIFIED_LINEAR = "RectifiedLinear"
    SCALED_EXPONENTIAL_LINEAR = "ScaledExponentialLinear"
    SOFT_PLUS = "SoftPlus"
    SOFT_SIGN = "SoftSign"
    HARD_SIGMOID = "HardSigmoid"
    EXPONENTIAL_LINEAR = "ExponentialLinear"

    @classmethod
    def from_name(cls, name: "str | ActivationFunction") -> "ActivationFunction":
        if isinstance(name, cls):
            return name
        for member in cls:
            if member.value == name:
                return member
        raise UnknownActivationError(f"Unknown activation function: {name!r}")


class ProbabilisticActivation(str, Enum):
    BINARY = "Binary"
    LOGISTIC = "Logistic"
    COMPETITIVE = "Competitive"
    SOFTMAX = "Softmax"

    @classmethod
    def from_name(cls, name: "str | ProbabilisticActivation") -> "ProbabilisticActivation":
        if isinstance(name, cls):
            return name
        for member in cls:
            if member.value == name:
                return member
        raise UnknownActivationError(f"Unknown probabilistic activation function: {name!r}")


# ----------------------------------------------------------------------
# Elementwise functions. Each returns (activations, derivatives).


def _linear(c: Array) -> Tuple[Array, Array]:
    return c.copy(), np.ones_like(c)


def _logistic(c: Array) -> Tuple[Array, Array]:
    a = expit(c)
    return a, a * (1.0 - a)


def _hyperbolic_tangent(c: Array) -> Tuple[Array, Array]:
    a = np.tanh(c)
    return a, 1.0 - a * a


def _threshold(c: Array) -> Tuple[Array, Array]:
    return np.where(c >= 0.0, 1.0, 0.0), np.zeros_like(c)


def _symmetric_threshold(c: Array) -> Tuple[Array, Array]:
    return np.where(c >= 0.0, 1.0, -1.0), np.zeros_like(c)


def _rectified_linear(c: Array) -> Tuple[Array, Array]:
    return np.maximum(c, 0.0), np.where(c > 0.0, 1.0, 0.0)


def _scaled_exponential_linear(c: Array) -> Tuple[Array, Array]:
    negative = np.minimum(c, 0.0)
    a = np.where(c > 0.0, SELU_LAMBDA * c, SELU_LAMBDA * SELU_ALPHA * np.expm1(negative))
    d = np.where(c > 0.0, SELU_LAMBDA, SELU_LAMBDA * SELU_ALPHA * np.exp(negative))
    return a, d


def _soft_plus(c: Array) -> Tuple[Array, Array]:
    return np.logaddexp(0.0, c), expit(c)


def _soft_sign(c: Array) -> Tuple[Array, Array]:
    denominator = 1.0 + np.abs(c)
    return c / denominator, 1.0 / (denominator * denominator)


def _hard_sigmoid(c: Array) -> Tuple[Array, Array]:
    a = np.clip(0.2 * c + 0.5, 0.0, 1.0)
    d = np.where((c > -2.5) & (c < 2.5), 0.2, 0.0)
    return a, d


def _exponential_linear(c: Array) -> Tuple[Array, Array]:
    a = np.where(c > 0.0, c, ELU_ALPHA * np.expm1(np.minimum(c, 0.0)))
    d = np.where(c > 0.0, 1.0, a + ELU_ALPHA)
    return a, d


_FUNCTIONS: Dict[ActivationFunction, Callable[[Array], Tuple[Array, Array]]] = {
    ActivationFunction.LINEAR: _linear,
    ActivationFunction.LOGISTIC: _logistic,
    ActivationFunction.HYPERBOLIC_TANGENT: _hyperbolic_tangent,
    ActivationFunction.THRESHOLD: _threshold,
    ActivationFunction.SYMMETRIC_THRESHOLD: _symmetric_threshold,
    ActivationFunction.RECTIFIED_LINEAR: _rectified_linear,
    ActivationFunction.SCALED_EXPONENTIAL_LINEAR: _scaled_exponential_linear,
    ActivationFunction.SOFT_PLUS: _soft_plus,
    ActivationFunction.SOFT_SIGN: _soft_sign,
    ActivationFunction.HARD_SIGMOID: _hard_sigmoid,
    ActivationFunction.EXPONENTIAL_LINEAR: _exponential_linear,
}


def activate(function: "ActivationFunction | str", combinations: Array) -> Array:
    """Return the activations of ``combinations``."""

    activations, _ = _FUNCTIONS[ActivationFunction.from_name(function)](
        np.asarray(combinations, dtype=np.float64)
    )
    return activations


def activate_with_derivatives(
    function: "ActivationFunction | str", combinations: Array
) -> Tuple[Array, Array]:
    """Return ``(activations, derivatives)`` of ``combinations`` in one pass."""

    return _FUNCTIONS[ActivationFunction.from_name(function)](
        np.asarray(combinations, dtype=np.float64)
    )


# ----------------------------------------------------------------------
# Probabilistic (output) functions.


def binary(combinations: Array, decision_threshold: float = 0.5) -> Array:
    return np.where(combinations >= decision_threshold, 1.0, 0.0)


def competitive(combinations: Array) -> Array:
    combinations = np.atleast_2d(combinations)
    activations = np.zeros_like(combinations, dtype=np.float64)
    activations[np.arange(combinations.shape[0]), np.argmax(combinations, axis=1)] = 1.0
    return activations


def softmax(combinations: Array) -> Array:
    shifted = combinations - np.max(combinations, axis=1, keepdims=True)
    exponentials = np.exp(shifted)
    return exponentials / np.sum(exponentials, axis=1, keepdims=True)


def softmax_derivatives(activations: Array) -> Array:
    """Return the per-sample Jacobian ``J[s, j, k] = a[s, j] (delta_jk - a[s, k])``."""

    neurons_number = activations.shape[1]
    identity = np.eye(neurons_number)[np.newaxis, :, :]
    return activations[:, :, np.newaxis] * (identity - activations[:, np.newaxis, :])


def probabilistic_activate_with_derivatives(
    function: "ProbabilisticActivation | str",
    combinations: Array,
    decision_threshold: float = 0.5,
) -> Tuple[Array, Array]:
    function = ProbabilisticActivation.from_name(function)
    combinations = np.asarray(combinations, dtype=np.float64)
    if function is ProbabilisticActivation.BINARY:
        return binary(combinations, decision_threshold), np.zeros_like(combinations)
    if function is ProbabilisticActivation.LOGISTIC:
        return _logistic(combinations)
    if function is ProbabilisticActivation.COMPETITIVE:
        return competitive(combinations), np.zeros_like(combinations)
    activations = softmax(combinations)
    return activations, softmax_derivatives(activations)


__all__ = [
    "ActivationFunction",
    "ProbabilisticActivation",
    "activate",
    "activate_with_derivatives",
    "binary",
    "competitive",
    "probabilistic_activate_with_derivatives",
    "softmax",
    "softmax_derivatives",
]
