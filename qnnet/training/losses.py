"""Loss indices: error terms, regularization and their derivatives."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List

import numpy as np

from ..core import tensor_utils
from ..core.errors import MissingLossIndexError
from ..core.network import NeuralNetwork, NeuralNetworkForwardPropagation
from ..core.types import (
    Array,
    Batch,
    DataSet,
    PerceptronLayerBackPropagation,
    PerceptronLayerBackPropagationLM,
)

CROSS_ENTROPY_EPSILON = 1e-12


# ----------------------------------------------------------------------
# Regularization


@dataclass(frozen=True)
class Regularization:
    """Penalty on the parameter vector with its gradient and Hessian."""

    name: str
    value: Callable[[Array], float]
    gradient: Callable[[Array], Array]
    hessian: Callable[[Array], Array]


def _no_value(parameters: Array) -> float:
    return 0.0


def _no_gradient(parameters: Array) -> Array:
    return np.zeros_like(parameters)


def _no_hessian(parameters: Array) -> Array:
    return np.zeros((parameters.size, parameters.size))


REGULARIZATIONS: Dict[str, Regularization] = {
    "NoRegularization": Regularization("NoRegularization", _no_value, _no_gradient, _no_hessian),
    "L1": Regularization(
        "L1",
        tensor_utils.l1_norm,
        tensor_utils.l1_norm_gradient,
        tensor_utils.l1_norm_hessian,
    ),
    "L2": Regularization(
        "L2",
        tensor_utils.l2_norm,
        tensor_utils.l2_norm_gradient,
        tensor_utils.l2_norm_hessian,
    ),
}


def get_regularization(name: str) -> Regularization:
    try:
        return REGULARIZATIONS[name]
    except KeyError as exc:
        available = ", ".join(sorted(REGULARIZATIONS))
        raise KeyError(f"Unknown regularization {name!r}. Available: {available}") from exc


# ----------------------------------------------------------------------
# Back-propagation buffers


@dataclass
class LossIndexBackPropagation:
    """Errors, loss and gradient of one batch, plus one buffer per layer."""

    loss_index: "LossIndex"
    batch_samples_number: int
    errors: Array = field(init=False, repr=False)
    gradient: Array = field(init=False, repr=False)
    layers: List[PerceptronLayerBackPropagation] = field(init=False, repr=False)
    error: float = 0.0
    regularization: float = 0.0
    loss: float = 0.0

    def __post_init__(self) -> None:
        network = self.loss_index.neural_network
        self.errors = np.zeros((self.batch_samples_number, network.get_outputs_number()))
        self.gradient = np.zeros(network.get_parameters_number())
        self.layers = [
            layer.new_back_propagation(self.batch_samples_number) for layer in network.layers
        ]


@dataclass
class LossIndexBackPropagationLM:
    """Squared errors, their Jacobian and the Gauss-Newton Hessian of one batch."""

    loss_index: "LossIndex"
    batch_samples_number: int
    errors: Array = field(init=False, repr=False)
    squared_errors: Array = field(init=False, repr=False)
    squared_errors_jacobian: Array = field(init=False, repr=False)
    gradient: Array = field(init=False, repr=False)
    hessian: Array = field(init=False, repr=False)
    layers: List[PerceptronLayerBackPropagationLM] = field(init=False, repr=False)
    error: float = 0.0
    regularization: float = 0.0
    loss: float = 0.0

    def __post_init__(self) -> None:
        network = self.loss_index.neural_network
        parameters_number = network.get_parameters_number()
        self.errors = np.zeros((self.batch_samples_number, network.get_outputs_number()))
        self.squared_errors = np.zeros(self.batch_samples_number)
        self.squared_errors_jacobian = np.zeros((self.batch_samples_number, parameters_number))
        self.gradient = np.zeros(parameters_number)
        self.hessian = np.zeros((parameters_number, parameters_number))
        self.layers = [
            layer.new_back_propagation_lm(self.batch_samples_number) for layer in network.layers
        ]


# ----------------------------------------------------------------------
# Loss index


class LossIndex:
    """Error term of a network on a data set plus a weighted regularization.

    Subclasses provide the error and the output delta; everything else,
    the backward sweep through the layers included, lives here.
    """

    name = "loss_index"
    supports_lm = True

    def __init__(
        self,
        neural_network: NeuralNetwork | None = None,
        data_set: DataSet | None = None,
        *,
        regularization: str = "NoRegularization",
        regularization_weight: float = 0.01,
    ) -> None:
        self.neural_network = neural_network
        self.data_set = data_set
        self.regularization = get_regularization(regularization)
        self.regularization_weight = float(regularization_weight)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(regularization={self.regularization.name!r}, "
            f"regularization_weight={self.regularization_weight})"
        )

    def set_regularization(self, name: str) -> None:
        self.regularization = get_regularization(name)

    def _check_network(self) -> None:
        if self.neural_network is None:
            raise MissingLossIndexError("Loss index has no neural network.")

    def check(self) -> None:
        self._check_network()
        if self.data_set is None:
            raise MissingLossIndexError("Loss index has no data set.")

    # ------------------------------------------------------------------
    # Error term hooks

    def calculate_error(self, outputs: Array, targets: Array, errors: Array) -> float:
        raise NotImplementedError

    def calculate_output_delta(self, outputs: Array, targets: Array, errors: Array) -> Array:
        raise NotImplementedError

    def lm_coefficient(self, samples_number: int) -> float:
        """Scale turning the sum of squared errors into this error term."""

        raise NotImplementedError

    @staticmethod
    def calculate_squared_errors_lm(errors: Array) -> Array:
        return np.sqrt(np.sum(np.square(errors), axis=1))

    @staticmethod
    def calculate_output_delta_lm(errors: Array, squared_errors: Array) -> Array:
        divisor = np.where(squared_errors == 0.0, 1.0, squared_errors)
        return np.where(squared_errors[:, np.newaxis] == 0.0, 0.0, errors / divisor[:, np.newaxis])

    # ------------------------------------------------------------------
    # Buffers

    def new_forward_propagation(self, batch: Batch) -> NeuralNetworkForwardPropagation:
        return self.neural_network.new_forward_propagation(batch.samples_number)

    def new_back_propagation(self, batch: Batch) -> LossIndexBackPropagation:
        return LossIndexBackPropagation(self, batch.samples_number)

    def new_back_propagation_lm(self, batch: Batch) -> LossIndexBackPropagationLM:
        return LossIndexBackPropagationLM(self, batch.samples_number)

    def _resolve_batch(self, batch: Batch | None) -> Batch:
        if batch is not None:
            return batch
        self.check()
        return self.data_set.training

    def _regularization_terms(self, parameters: Array):
        weight = self.regularization_weight
        if self.regularization.name == "NoRegularization" or weight == 0.0:
            return 0.0, None
        return self.regularization.value(parameters), weight

    # ------------------------------------------------------------------
    # Values

    def calculate_batch_error(
        self,
        batch: Batch,
        forward_propagation: NeuralNetworkForwardPropagation | None = None,
        parameters: Array | None = None,
    ) -> float:
        """Error term alone (no regularization) of ``batch``."""

        if forward_propagation is None or forward_propagation.batch_samples_number != batch.samples_number:
            forward_propagation = self.new_forward_propagation(batch)
        self.neural_network.forward_propagate(batch.inputs, forward_propagation, parameters)
        outputs = forward_propagation.outputs
        return float(self.calculate_error(outputs, batch.targets, outputs - batch.targets))

    def calculate_loss(
        self,
        parameters: Array | None = None,
        batch: Batch | None = None,
        forward_propagation: NeuralNetworkForwardPropagation | None = None,
    ) -> float:
        """Loss at ``parameters`` (stored parameters when omitted); state is not mutated."""

        self._check_network()
        batch = self._resolve_batch(batch)
        error = self.calculate_batch_error(batch, forward_propagation, parameters)
        if parameters is None:
            parameters = self.neural_network.get_parameters()
        regularization, weight = self._regularization_terms(np.asarray(parameters, dtype=np.float64))
        if weight is None:
            return error
        return error + weight * regularization

    # ------------------------------------------------------------------
    # First order

    def back_propagate(
        self,
        batch: Batch,
        forward_propagation: NeuralNetworkForwardPropagation,
        back_propagation: LossIndexBackPropagation,
    ) -> None:
        """Fill ``back_propagation`` from an already forward-propagated batch."""

        network = self.neural_network
        outputs = forward_propagation.outputs
        back_propagation.errors[...] = outputs - batch.targets
        back_propagation.error = float(
            self.calculate_error(outputs, batch.targets, back_propagation.errors)
        )
        back_propagation.layers[-1].delta[...] = self.calculate_output_delta(
            outputs, batch.targets, back_propagation.errors
        )
        for index in range(len(network.layers) - 2, -1, -1):
            network.layers[index].calculate_hidden_delta(
                forward_propagation.layers[index + 1],
                back_propagation.layers[index + 1],
                back_propagation.layers[index],
            )

        parameter_index = 0
        for index, layer in enumerate(network.layers):
            inputs = batch.inputs if index == 0 else forward_propagation.layers[index - 1].activations
            layer.calculate_error_gradient(
                inputs, forward_propagation.layers[index], back_propagation.layers[index]
            )
            layer.insert_gradient(
                back_propagation.layers[index], parameter_index, back_propagation.gradient
            )
            parameter_index += layer.get_parameters_number()

        parameters = network.get_parameters()
        regularization, weight = self._regularization_terms(parameters)
        back_propagation.regularization = regularization
        back_propagation.loss = back_propagation.error
        if weight is not None:
            back_propagation.loss += weight * regularization
            back_propagation.gradient += weight * self.regularization.gradient(parameters)

    def calculate_gradient(self, parameters: Array | None = None, batch: Batch | None = None) -> Array:
        self._check_network()
        batch = self._resolve_batch(batch)
        network = self.neural_network
        saved = network.get_parameters()
        if parameters is not None:
            network.set_parameters(parameters)
        try:
            forward_propagation = self.new_forward_propagation(batch)
            back_propagation = self.new_back_propagation(batch)
            network.forward_propagate(batch.inputs, forward_propagation)
            self.back_propagate(batch, forward_propagation, back_propagation)
        finally:
            network.set_parameters(saved)
        return back_propagation.gradient.copy()

    def calculate_numerical_gradient(
        self,
        parameters: Array | None = None,
        batch: Batch | None = None,
        step: float = 1e-6,
    ) -> Array:
        """Central-difference gradient, used to check the analytical one."""

        self._check_network()
        batch = self._resolve_batch(batch)
        if parameters is None:
            parameters = self.neural_network.get_parameters()
        parameters = np.asarray(parameters, dtype=np.float64)
        forward_propagation = self.new_forward_propagation(batch)
        gradient = np.zeros_like(parameters)
        for index in range(parameters.size):
            h = step * (1.0 + abs(parameters[index]))
            forward = parameters.copy()
            forward[index] += h
            backward = parameters.copy()
            backward[index] -= h
            gradient[index] = (
                self.calculate_loss(forward, batch, forward_propagation)
                - self.calculate_loss(backward, batch, forward_propagation)
            ) / (2.0 * h)
        return gradient

    # ------------------------------------------------------------------
    # Second order (Levenberg-Marquardt)

    def back_propagate_lm(
        self,
        batch: Batch,
        forward_propagation: NeuralNetworkForwardPropagation,
        back_propagation_lm: LossIndexBackPropagationLM,
    ) -> None:
        if not self.supports_lm:
            raise ValueError(f"{type(self).__name__} cannot be written as a sum of squares.")
        network = self.neural_network
        outputs = forward_propagation.outputs
        back = back_propagation_lm
        back.errors[...] = outputs - batch.targets
        back.squared_errors[...] = self.calculate_squared_errors_lm(back.errors)
        back.layers[-1].delta[...] = self.calculate_output_delta_lm(back.errors, back.squared_errors)
        for index in range(len(network.layers) - 2, -1, -1):
            network.layers[index].calculate_hidden_delta_lm(
                forward_propagation.layers[index + 1],
                back.layers[index + 1],
                back.layers[index],
            )

        parameter_index = 0
        for index, layer in enumerate(network.layers):
            inputs = batch.inputs if index == 0 else forward_propagation.layers[index - 1].activations
            layer.calculate_squared_errors_jacobian_lm(
                inputs, forward_propagation.layers[index], back.layers[index]
            )
            layer.insert_squared_errors_jacobian_lm(
                back.layers[index], parameter_index, back.squared_errors_jacobian
            )
            parameter_index += layer.get_parameters_number()

        coefficient = self.lm_coefficient(batch.samples_number)
        jacobian = back.squared_errors_jacobian
        back.error = float(coefficient * np.sum(np.square(back.squared_errors)))
        back.gradient[...] = 2.0 * coefficient * network.context.contract_transposed(
            jacobian, back.squared_errors[:, np.newaxis]
        ).ravel()
        back.hessian[...] = 2.0 * coefficient * network.context.contract_transposed(jacobian, jacobian)

        parameters = network.get_parameters()
        regularization, weight = self._regularization_terms(parameters)
        back.regularization = regularization
        back.loss = back.error
        if weight is not None:
            back.loss += weight * regularization
            back.gradient += weight * self.regularization.gradient(parameters)
            back.hessian += weight * self.regularization.hessian(parameters)

    def calculate_squared_errors_jacobian(
        self, parameters: Array | None = None, batch: Batch | None = None
    ) -> Array:
        self._check_network()
        batch = self._resolve_batch(batch)
        network = self.neural_network
        saved = network.get_parameters()
        if parameters is not None:
            network.set_parameters(parameters)
        try:
            forward_propagation = self.new_forward_propagation(batch)
            back_propagation_lm = self.new_back_propagation_lm(batch)
            network.forward_propagate(batch.inputs, forward_propagation)
            self.back_propagate_lm(batch, forward_propagation, back_propagation_lm)
        finally:
            network.set_parameters(saved)
        return back_propagation_lm.squared_errors_jacobian.copy()


class SumSquaredError(LossIndex):
    name = "sum_squared_error"

    def calculate_error(self, outputs: Array, targets: Array, errors: Array) -> float:
        return float(np.sum(np.square(errors)))

    def calculate_output_delta(self, outputs: Array, targets: Array, errors: Array) -> Array:
        return 2.0 * errors

    def lm_coefficient(self, samples_number: int) -> float:
        return 1.0


class MeanSquaredError(LossIndex):
    name = "mean_squared_error"

    def calculate_error(self, outputs: Array, targets: Array, errors: Array) -> float:
        return float(np.sum(np.square(errors)) / max(1, errors.shape[0]))

    def calculate_output_delta(self, outputs: Array, targets: Array, errors: Array) -> Array:
        return 2.0 * errors / max(1, errors.shape[0])

    def lm_coefficient(self, samples_number: int) -> float:
        return 1.0 / max(1, samples_number)


class CrossEntropyError(LossIndex):
    """Binary cross-entropy for one output, categorical otherwise."""

    name = "cross_entropy"
    supports_lm = False

    def calculate_error(self, outputs: Array, targets: Array, errors: Array) -> float:
        samples_number = max(1, outputs.shape[0])
        outputs = np.clip(outputs, CROSS_ENTROPY_EPSILON, 1.0 - CROSS_ENTROPY_EPSILON)
        if outputs.shape[1] == 1:
            error = -np.sum(targets * np.log(outputs) + (1.0 - targets) * np.log(1.0 - outputs))
        else:
            error = -np.sum(targets * np.log(outputs))
        return float(error / samples_number)

    def calculate_output_delta(self, outputs: Array, targets: Array, errors: Array) -> Array:
        samples_number = max(1, outputs.shape[0])
        outputs = np.clip(outputs, CROSS_ENTROPY_EPSILON, 1.0 - CROSS_ENTROPY_EPSILON)
        if outputs.shape[1] == 1:
            delta = -targets / outputs + (1.0 - targets) / (1.0 - outputs)
        else:
            delta = -targets / outputs
        return delta / samples_number

    def lm_coefficient(self, samples_number: int) -> float:
        raise ValueError("Cross-entropy has no sum-of-squares form.")


# ----------------------------------------------------------------------
# Registry


class LossRegistry:
    """Central registry for loss index classes."""

    def __init__(self) -> None:
        self._registry: Dict[str, type] = {}

    def register(self, name: str, loss_class: type) -> None:
        self._registry[name] = loss_class

    def get(self, name: str) -> type:
        if name not in self._registry:
            available = ", ".join(sorted(self._registry))
            raise KeyError(f"Unknown loss {name!r}. Available losses: {available}")
        return self._registry[name]

    def names(self) -> Iterable[str]:
        return sorted(self._registry)

    def create(self, name: str, neural_network=None, data_set=None, **options) -> LossIndex:
        return self.get(name)(neural_network, data_set, **options)


REGISTRY = LossRegistry()

REGISTRY.register("sum_squared_error", SumSquaredError)
REGISTRY.register("mean_squared_error", MeanSquaredError)
REGISTRY.register("cross_entropy", CrossEntropyError)
# Short names used in configuration files
REGISTRY.register("sse", SumSquaredError)
REGISTRY.register("mse", MeanSquaredError)
REGISTRY.register("ce", CrossEntropyError)

__all__ = [
    "CrossEntropyError",
    "LossIndex",
    "LossIndexBackPropagation",
    "LossIndexBackPropagationLM",
    "LossRegistry",
    "MeanSquaredError",
    "REGISTRY",
    "REGULARIZATIONS",
    "Regularization",
    "SumSquaredError",
    "get_regularization",
]
