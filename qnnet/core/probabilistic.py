"""Probabilistic output layer."""

from __future__ import annotations

from typing import Tuple

import numpy as np

from . import activations as activation_library
from .activations import ProbabilisticActivation
from .device import ExecutionContext
from .layer import Layer
from .types import (
    Array,
    LayerKind,
    ProbabilisticLayerBackPropagation,
    ProbabilisticLayerBackPropagationLM,
    ProbabilisticLayerForwardPropagation,
)

_SINGLE_NEURON_ACTIVATIONS = (ProbabilisticActivation.BINARY, ProbabilisticActivation.LOGISTIC)


class ProbabilisticLayer(Layer):
    """Output layer producing class probabilities.

    One neuron means a binary problem (Binary or Logistic activation);
    several neurons a multiclass one, Softmax by default.
    """

    forward_propagation_class = ProbabilisticLayerForwardPropagation
    back_propagation_class = ProbabilisticLayerBackPropagation
    back_propagation_lm_class = ProbabilisticLayerBackPropagationLM

    def __init__(
        self,
        inputs_number: int = 0,
        neurons_number: int = 0,
        activation_function: ProbabilisticActivation | str | None = None,
        *,
        decision_threshold: float = 0.5,
        name: str = "probabilistic_layer",
        seed: int | None = None,
        context: ExecutionContext | None = None,
    ) -> None:
        self.decision_threshold = float(decision_threshold)
        self.activation_function = ProbabilisticActivation.SOFTMAX
        super().__init__(inputs_number, neurons_number, name=name, seed=seed, context=context)
        if activation_function is None:
            self.set_default_activation_function()
        else:
            self.set_activation_function(activation_function)

    @property
    def kind(self) -> LayerKind:
        if self.get_neurons_number() == 1:
            return LayerKind.PROBABILISTIC_BINARY
        if self.activation_function is ProbabilisticActivation.SOFTMAX:
            return LayerKind.PROBABILISTIC_SOFTMAX
        return LayerKind.PROBABILISTIC_MULTICLASS

    def uses_jacobian(self) -> bool:
        return self.kind is LayerKind.PROBABILISTIC_SOFTMAX

    def set_default_activation_function(self) -> None:
        if self.get_neurons_number() == 1:
            self.activation_function = ProbabilisticActivation.LOGISTIC
        else:
            self.activation_function = ProbabilisticActivation.SOFTMAX

    def set_activation_function(self, activation_function: ProbabilisticActivation | str) -> None:
        activation_function = ProbabilisticActivation.from_name(activation_function)
        if self.get_neurons_number() == 1 and activation_function not in _SINGLE_NEURON_ACTIVATIONS:
            raise ValueError(
                f"{self.name}: a single-neuron probabilistic layer supports Binary or Logistic, "
                f"not {activation_function.value}."
            )
        self.activation_function = activation_function

    def set_neurons_number(self, neurons_number: int) -> None:
        super().set_neurons_number(neurons_number)
        self.set_default_activation_function()

    def write_activation_function(self) -> str:
        return self.activation_function.value

    def set_decision_threshold(self, decision_threshold: float) -> None:
        if not 0.0 <= decision_threshold <= 1.0:
            raise ValueError("decision_threshold must lie in [0, 1]")
        self.decision_threshold = float(decision_threshold)

    def calculate_activations_derivatives(self, combinations: Array) -> Tuple[Array, Array]:
        return activation_library.probabilistic_activate_with_derivatives(
            self.activation_function, combinations, self.decision_threshold
        )

    def calculate_error_combinations(self, forward_propagation, back_propagation) -> Array:
        if not self.uses_jacobian():
            return super().calculate_error_combinations(forward_propagation, back_propagation)
        np.einsum(
            "sj,sjk->sk",
            back_propagation.delta,
            forward_propagation.activations_derivatives,
            out=back_propagation.error_combinations_derivatives,
        )
        return back_propagation.error_combinations_derivatives


__all__ = ["ProbabilisticLayer"]
