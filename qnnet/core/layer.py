"""Parameter model shared by fully connected layers."""

from __future__ import annotations

from typing import Tuple, Type

import numpy as np

from . import tensor_utils
from .device import ExecutionContext
from .errors import DimensionError
from .types import (
    Array,
    LayerKind,
    PerceptronLayerBackPropagation,
    PerceptronLayerBackPropagationLM,
    PerceptronLayerForwardPropagation,
)


class Layer:
    """Dense layer: ``biases`` (neurons) and ``synaptic_weights`` (inputs x neurons).

    The flat parameter vector is all biases followed by the weights in
    column-major order, so within each neuron's column the input index
    varies fastest.
    """

    forward_propagation_class: Type[PerceptronLayerForwardPropagation] = (
        PerceptronLayerForwardPropagation
    )
    back_propagation_class: Type[PerceptronLayerBackPropagation] = PerceptronLayerBackPropagation
    back_propagation_lm_class: Type[PerceptronLayerBackPropagationLM] = (
        PerceptronLayerBackPropagationLM
    )

    def __init__(
        self,
        inputs_number: int = 0,
        neurons_number: int = 0,
        *,
        name: str = "layer",
        seed: int | None = None,
        context: ExecutionContext | None = None,
    ) -> None:
        if inputs_number < 0 or neurons_number < 0:
            raise ValueError("inputs_number and neurons_number must be non-negative")
        self.name = name
        self.context = context or ExecutionContext()
        self._rng = np.random.default_rng(seed)
        self._allocate(int(inputs_number), int(neurons_number))

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(inputs_number={self.get_inputs_number()}, "
            f"neurons_number={self.get_neurons_number()}, name={self.name!r})"
        )

    def _allocate(self, inputs_number: int, neurons_number: int) -> None:
        self.biases = np.zeros(neurons_number)
        self.synaptic_weights = np.zeros((inputs_number, neurons_number))
        self.set_parameters_random()

    # ------------------------------------------------------------------
    # Introspection

    @property
    def kind(self) -> LayerKind:
        raise NotImplementedError

    def uses_jacobian(self) -> bool:
        """Whether activation derivatives are per-sample Jacobians."""

        return False

    def get_inputs_number(self) -> int:
        return int(self.synaptic_weights.shape[0])

    def get_neurons_number(self) -> int:
        return int(self.biases.shape[0])

    def get_biases_number(self) -> int:
        return self.get_neurons_number()

    def get_synaptic_weights_number(self) -> int:
        return int(self.synaptic_weights.size)

    def get_parameters_number(self) -> int:
        return self.get_biases_number() + self.get_synaptic_weights_number()

    # ------------------------------------------------------------------
    # Parameters

    def get_biases(self, parameters: Array | None = None) -> Array:
        if parameters is None:
            return self.biases
        tensor_utils.check_size(parameters, self.get_parameters_number(), f"{self.name}: ")
        return np.asarray(parameters)[: self.get_biases_number()]

    def get_synaptic_weights(self, parameters: Array | None = None) -> Array:
        if parameters is None:
            return self.synaptic_weights
        tensor_utils.check_size(parameters, self.get_parameters_number(), f"{self.name}: ")
        return np.asarray(parameters)[self.get_biases_number() :].reshape(
            (self.get_inputs_number(), self.get_neurons_number()), order="F"
        )

    def _split_parameters(self, parameters: Array | None) -> Tuple[Array, Array]:
        return self.get_biases(parameters), self.get_synaptic_weights(parameters)

    def get_parameters(self) -> Array:
        return np.concatenate([self.biases, self.synaptic_weights.ravel(order="F")])

    def set_parameters(self, parameters: Array, index: int = 0) -> None:
        """Read this layer's parameters from ``parameters`` starting at ``index``."""

        parameters = np.asarray(parameters, dtype=np.float64)
        end = index + self.get_parameters_number()
        if index < 0 or end > parameters.size:
            raise DimensionError(
                f"{self.name}: need {self.get_parameters_number()} parameters from index "
                f"{index}, but vector has size {parameters.size}."
            )
        segment = parameters[index:end]
        self.biases = segment[: self.get_biases_number()].copy()
        self.synaptic_weights = self.get_synaptic_weights(segment).copy()

    def set_inputs_number(self, inputs_number: int) -> None:
        self._allocate(int(inputs_number), self.get_neurons_number())

    def set_neurons_number(self, neurons_number: int) -> None:
        self._allocate(self.get_inputs_number(), int(neurons_number))

    def set_biases(self, biases: Array) -> None:
        tensor_utils.check_size(biases, self.get_neurons_number(), f"{self.name}: set_biases: ")
        self.biases = np.array(biases, dtype=np.float64).reshape(-1)

    def set_synaptic_weights(self, synaptic_weights: Array) -> None:
        tensor_utils.check_dimensions(
            synaptic_weights,
            self.get_inputs_number(),
            self.get_neurons_number(),
            f"{self.name}: set_synaptic_weights: ",
        )
        self.synaptic_weights = np.array(synaptic_weights, dtype=np.float64)

    def set_biases_constant(self, value: float) -> None:
        self.biases.fill(value)

    def set_synaptic_weights_constant(self, value: float) -> None:
        self.synaptic_weights.fill(value)

    def set_parameters_constant(self, value: float) -> None:
        self.set_biases_constant(value)
        self.set_synaptic_weights_constant(value)

    def set_parameters_random(self, minimum: float = -0.2, maximum: float = 0.2) -> None:
        self.biases = self._rng.uniform(minimum, maximum, size=self.biases.shape)
        self.synaptic_weights = self._rng.uniform(minimum, maximum, size=self.synaptic_weights.shape)

    def set_execution_context(self, context: ExecutionContext) -> None:
        self.context = context

    # ------------------------------------------------------------------
    # Buffers

    def new_forward_propagation(self, batch_samples_number: int) -> PerceptronLayerForwardPropagation:
        return self.forward_propagation_class(self, batch_samples_number)

    def new_back_propagation(self, batch_samples_number: int) -> PerceptronLayerBackPropagation:
        return self.back_propagation_class(self, batch_samples_number)

    def new_back_propagation_lm(self, batch_samples_number: int) -> PerceptronLayerBackPropagationLM:
        return self.back_propagation_lm_class(self, batch_samples_number)

    # ------------------------------------------------------------------
    # Forward

    def calculate_combinations(
        self,
        inputs: Array,
        biases: Array,
        synaptic_weights: Array,
        out: Array | None = None,
    ) -> Array:
        tensor_utils.check_columns_number(inputs, self.get_inputs_number(), f"{self.name}: ")
        combinations = self.context.contract(inputs, synaptic_weights, out=out)
        combinations += biases
        return combinations

    def calculate_activations_derivatives(self, combinations: Array) -> Tuple[Array, Array]:
        raise NotImplementedError

    def calculate_activations(self, combinations: Array) -> Array:
        activations, _ = self.calculate_activations_derivatives(combinations)
        return activations

    def forward(self, inputs: Array) -> Array:
        inputs = np.asarray(inputs, dtype=np.float64)
        combinations = self.calculate_combinations(inputs, self.biases, self.synaptic_weights)
        return self.calculate_activations(combinations)

    calculate_outputs = forward

    def forward_propagate(
        self,
        inputs: Array,
        forward_propagation: PerceptronLayerForwardPropagation,
        parameters: Array | None = None,
    ) -> None:
        """Fill ``forward_propagation`` for ``inputs``.

        ``parameters`` is an optional candidate vector for this layer; the
        stored parameters are left untouched when it is given.
        """

        inputs = np.asarray(inputs, dtype=np.float64)
        expected = (inputs.shape[0], self.get_neurons_number())
        if forward_propagation.combinations.shape != expected:
            raise DimensionError(
                f"{self.name}: forward buffer has shape "
                f"{forward_propagation.combinations.shape}, but must be {expected}."
            )
        biases, synaptic_weights = self._split_parameters(parameters)
        self.calculate_combinations(
            inputs, biases, synaptic_weights, out=forward_propagation.combinations
        )
        activations, derivatives = self.calculate_activations_derivatives(
            forward_propagation.combinations
        )
        outputs = (("activations", activations), ("activations_derivatives", derivatives))
        for field_name, value in outputs:
            buffer = getattr(forward_propagation, field_name)
            if buffer.shape != value.shape:
                raise DimensionError(
                    f"{self.name}: forward buffer {field_name} has shape {buffer.shape}, "
                    f"but must be {value.shape}."
                )
            buffer[...] = value

    # ------------------------------------------------------------------
    # Backward

    def calculate_error_combinations(self, forward_propagation, back_propagation) -> Array:
        """Return the derivative of the error with respect to the combinations."""

        return back_propagation.delta * forward_propagation.activations_derivatives

    def calculate_error_gradient(
        self,
        inputs: Array,
        forward_propagation: PerceptronLayerForwardPropagation,
        back_propagation: PerceptronLayerBackPropagation,
    ) -> None:
        error_combinations = self.calculate_error_combinations(
            forward_propagation, back_propagation
        )
        back_propagation.biases_derivatives[...] = np.sum(error_combinations, axis=0)
        back_propagation.synaptic_weights_derivatives[...] = self.context.contract_transposed(
            np.asarray(inputs, dtype=np.float64), error_combinations
        )

    def insert_gradient(
        self,
        back_propagation: PerceptronLayerBackPropagation,
        index: int,
        gradient: Array,
    ) -> None:
        biases_number = self.get_biases_number()
        end = index + self.get_parameters_number()
        gradient[index : index + biases_number] = back_propagation.biases_derivatives
        gradient[index + biases_number : end] = (
            back_propagation.synaptic_weights_derivatives.ravel(order="F")
        )

    def calculate_squared_errors_jacobian_lm(
        self,
        inputs: Array,
        forward_propagation: PerceptronLayerForwardPropagation,
        back_propagation_lm: PerceptronLayerBackPropagationLM,
    ) -> None:
        """Per-sample derivatives of the squared errors with respect to this layer."""

        inputs = np.asarray(inputs, dtype=np.float64)
        error_combinations = self.calculate_error_combinations(
            forward_propagation, back_propagation_lm
        )
        samples_number = inputs.shape[0]
        neurons_number = self.get_neurons_number()
        jacobian = back_propagation_lm.squared_errors_jacobian
        jacobian[:, :neurons_number] = error_combinations
        jacobian[:, neurons_number:] = (
            error_combinations[:, :, np.newaxis] * inputs[:, np.newaxis, :]
        ).reshape(samples_number, -1)

    def insert_squared_errors_jacobian_lm(
        self,
        back_propagation_lm: PerceptronLayerBackPropagationLM,
        index: int,
        squared_errors_jacobian: Array,
    ) -> None:
        end = index + self.get_parameters_number()
        squared_errors_jacobian[:, index:end] = back_propagation_lm.squared_errors_jacobian


__all__ = ["Layer"]
