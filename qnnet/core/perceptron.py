"""Fully connected perceptron layer."""

from __future__ import annotations

from typing import Callable, Dict, Tuple

import numpy as np

from . import activations as activation_library
from .activations import ActivationFunction
from .device import ExecutionContext
from .errors import DimensionError
from .layer import Layer
from .types import Array, LayerKind


def _elementwise_error_combinations(next_forward, next_back) -> Array:
    return next_back.delta * next_forward.activations_derivatives


def _binary_error_combinations(next_forward, next_back) -> Array:
    derivatives = next_forward.activations_derivatives.reshape(-1, 1)
    return next_back.delta * derivatives


def _softmax_error_combinations(next_forward, next_back) -> Array:
    neurons_number = next_back.layer.get_neurons_number()
    jacobian = next_forward.activations_derivatives
    if next_back.delta.shape[1] != neurons_number:
        raise DimensionError(
            f"Next layer delta has {next_back.delta.shape[1]} columns, "
            f"but must be {neurons_number}."
        )
    if jacobian.ndim != 3 or jacobian.shape[1:] != (neurons_number, neurons_number):
        raise DimensionError(
            f"Next layer activations Jacobian has shape {jacobian.shape}, but its last two "
            f"dimensions must be ({neurons_number}, {neurons_number})."
        )
    np.einsum("sj,sjk->sk", next_back.delta, jacobian, out=next_back.error_combinations_derivatives)
    return next_back.error_combinations_derivatives


_NEXT_LAYER_ERROR_COMBINATIONS: Dict[LayerKind, Callable[..., Array]] = {
    LayerKind.PERCEPTRON: _elementwise_error_combinations,
    LayerKind.PROBABILISTIC_BINARY: _binary_error_combinations,
    LayerKind.PROBABILISTIC_MULTICLASS: _elementwise_error_combinations,
    LayerKind.PROBABILISTIC_SOFTMAX: _softmax_error_combinations,
}


class PerceptronLayer(Layer):
    """Hidden or output layer with an elementwise activation function."""

    def __init__(
        self,
        inputs_number: int = 0,
        neurons_number: int = 0,
        activation_function: ActivationFunction | str = ActivationFunction.HYPERBOLIC_TANGENT,
        *,
        name: str = "perceptron_layer",
        seed: int | None = None,
        context: ExecutionContext | None = None,
    ) -> None:
        self.activation_function = ActivationFunction.from_name(activation_function)
        super().__init__(inputs_number, neurons_number, name=name, seed=seed, context=context)

    @property
    def kind(self) -> LayerKind:
        return LayerKind.PERCEPTRON

    def set_activation_function(self, activation_function: ActivationFunction | str) -> None:
        self.activation_function = ActivationFunction.from_name(activation_function)

    def write_activation_function(self) -> str:
        return self.activation_function.value

    def calculate_activations(self, combinations: Array) -> Array:
        return activation_library.activate(self.activation_function, combinations)

    def calculate_activations_derivatives(self, combinations: Array) -> Tuple[Array, Array]:
        return activation_library.activate_with_derivatives(self.activation_function, combinations)

    def _propagate_delta(self, next_forward, next_back, back) -> None:
        next_layer = next_back.layer
        if next_layer.get_inputs_number() != self.get_neurons_number():
            raise DimensionError(
                f"{self.name}: next layer has {next_layer.get_inputs_number()} inputs, "
                f"but this layer has {self.get_neurons_number()} neurons."
            )
        error_combinations = _NEXT_LAYER_ERROR_COMBINATIONS[next_layer.kind](
            next_forward, next_back
        )
        self.context.contract(error_combinations, next_layer.synaptic_weights.T, out=back.delta)

    def calculate_hidden_delta(self, next_forward, next_back, back) -> None:
        """Write into ``back.delta`` the error delta carried back from the next layer."""

        self._propagate_delta(next_forward, next_back, back)

    def calculate_hidden_delta_lm(self, next_forward, next_back_lm, back_lm) -> None:
        """Per-sample delta for the squared-errors Jacobian."""

        self._propagate_delta(next_forward, next_back_lm, back_lm)


__all__ = ["PerceptronLayer"]
