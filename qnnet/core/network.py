"""Neural network container chaining layers over one flat parameter vector."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Sequence

import numpy as np

from . import tensor_utils
from .activations import ActivationFunction, ProbabilisticActivation
from .device import ExecutionContext
from .errors import DimensionError
from .layer import Layer
from .perceptron import PerceptronLayer
from .probabilistic import ProbabilisticLayer
from .types import Array, PerceptronLayerForwardPropagation


@dataclass
class NeuralNetworkForwardPropagation:
    """One forward buffer per layer for a fixed batch size."""

    network: "NeuralNetwork"
    batch_samples_number: int
    layers: List[PerceptronLayerForwardPropagation] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.layers = [
            layer.new_forward_propagation(self.batch_samples_number)
            for layer in self.network.layers
        ]

    @property
    def outputs(self) -> Array:
        return self.layers[-1].activations


class NeuralNetwork:
    """Ordered stack of layers; the last one may be probabilistic."""

    def __init__(
        self,
        layers: Iterable[Layer] = (),
        context: ExecutionContext | None = None,
    ) -> None:
        self.context = context or ExecutionContext()
        self.layers: List[Layer] = []
        for layer in layers:
            self.add_layer(layer)

    @classmethod
    def approximation(
        cls,
        architecture: Sequence[int],
        activation: ActivationFunction | str = ActivationFunction.HYPERBOLIC_TANGENT,
        *,
        output_activation: ActivationFunction | str = ActivationFunction.LINEAR,
        seed: int | None = None,
        context: ExecutionContext | None = None,
    ) -> "NeuralNetwork":
        """Perceptron hidden layers with a perceptron output layer."""

        network = cls(context=context)
        rng = np.random.default_rng(seed)
        sizes = _check_architecture(architecture)
        for index, (inputs_number, neurons_number) in enumerate(zip(sizes[:-1], sizes[1:])):
            last = index == len(sizes) - 2
            network.add_layer(
                PerceptronLayer(
                    inputs_number,
                    neurons_number,
                    output_activation if last else activation,
                    name=f"perceptron_layer_{index + 1}",
                    seed=int(rng.integers(2**31)),
                )
            )
        return network

    @classmethod
    def classification(
        cls,
        architecture: Sequence[int],
        activation: ActivationFunction | str = ActivationFunction.HYPERBOLIC_TANGENT,
        *,
        output_activation: ProbabilisticActivation | str | None = None,
        seed: int | None = None,
        context: ExecutionContext | None = None,
    ) -> "NeuralNetwork":
        """Perceptron hidden layers with a probabilistic output layer."""

        network = cls(context=context)
        rng = np.random.default_rng(seed)
        sizes = _check_architecture(architecture)
        for index, (inputs_number, neurons_number) in enumerate(zip(sizes[:-2], sizes[1:-1])):
            network.add_layer(
                PerceptronLayer(
                    inputs_number,
                    neurons_number,
                    activation,
                    name=f"perceptron_layer_{index + 1}",
                    seed=int(rng.integers(2**31)),
                )
            )
        network.add_layer(
            ProbabilisticLayer(
                sizes[-2],
                sizes[-1],
                output_activation,
                seed=int(rng.integers(2**31)),
            )
        )
        return network

    def __repr__(self) -> str:
        return f"NeuralNetwork(layers={self.layers!r})"

    # ------------------------------------------------------------------
    # Structure

    def add_layer(self, layer: Layer) -> None:
        if self.layers:
            previous = self.layers[-1]
            if previous.kind.is_probabilistic:
                raise ValueError(f"No layer can follow the probabilistic layer {previous.name!r}.")
            if layer.get_inputs_number() != previous.get_neurons_number():
                raise DimensionError(
                    f"Layer {layer.name!r} has {layer.get_inputs_number()} inputs, but "
                    f"must have {previous.get_neurons_number()} to follow {previous.name!r}."
                )
        layer.set_execution_context(self.context)
        self.layers.append(layer)

    def get_layers_number(self) -> int:
        return len(self.layers)

    def get_inputs_number(self) -> int:
        return self.layers[0].get_inputs_number() if self.layers else 0

    def get_outputs_number(self) -> int:
        return self.layers[-1].get_neurons_number() if self.layers else 0

    def get_layers_parameters_numbers(self) -> List[int]:
        return [layer.get_parameters_number() for layer in self.layers]

    def get_parameters_number(self) -> int:
        return int(sum(self.get_layers_parameters_numbers()))

    def set_execution_context(self, context: ExecutionContext) -> None:
        self.context = context
        for layer in self.layers:
            layer.set_execution_context(context)

    # ------------------------------------------------------------------
    # Parameters

    def get_parameters(self) -> Array:
        if not self.layers:
            return np.zeros(0)
        return np.concatenate([layer.get_parameters() for layer in self.layers])

    def set_parameters(self, parameters: Array) -> None:
        tensor_utils.check_size(parameters, self.get_parameters_number(), "NeuralNetwork: ")
        index = 0
        for layer in self.layers:
            layer.set_parameters(parameters, index)
            index += layer.get_parameters_number()

    def set_parameters_constant(self, value: float) -> None:
        for layer in self.layers:
            layer.set_parameters_constant(value)

    def set_parameters_random(self, minimum: float = -0.2, maximum: float = 0.2) -> None:
        for layer in self.layers:
            layer.set_parameters_random(minimum, maximum)

    def _split_parameters(self, parameters: Array | None) -> List[Array | None]:
        if parameters is None:
            return [None] * len(self.layers)
        tensor_utils.check_size(parameters, self.get_parameters_number(), "NeuralNetwork: ")
        bounds = np.cumsum([0] + self.get_layers_parameters_numbers())
        return [parameters[start:end] for start, end in zip(bounds[:-1], bounds[1:])]

    # ------------------------------------------------------------------
    # Propagation

    def new_forward_propagation(self, batch_samples_number: int) -> NeuralNetworkForwardPropagation:
        return NeuralNetworkForwardPropagation(self, batch_samples_number)

    def calculate_outputs(self, inputs: Array) -> Array:
        outputs = np.asarray(inputs, dtype=np.float64)
        for layer in self.layers:
            outputs = layer.calculate_outputs(outputs)
        return outputs

    def forward_propagate(
        self,
        inputs: Array,
        forward_propagation: NeuralNetworkForwardPropagation,
        parameters: Array | None = None,
    ) -> None:
        """Run every layer, optionally on a candidate parameter vector."""

        layer_inputs = np.asarray(inputs, dtype=np.float64)
        for layer, layer_forward, layer_parameters in zip(
            self.layers, forward_propagation.layers, self._split_parameters(parameters)
        ):
            layer.forward_propagate(layer_inputs, layer_forward, layer_parameters)
            layer_inputs = layer_forward.activations

    # ------------------------------------------------------------------
    # In-memory checkpoints

    def state_dict(self) -> Dict[str, object]:
        return {
            "parameters": self.get_parameters(),
            "layers": [
                {
                    "name": layer.name,
                    "type": type(layer).__name__,
                    "inputs_number": layer.get_inputs_number(),
                    "neurons_number": layer.get_neurons_number(),
                    "activation_function": layer.write_activation_function(),
                }
                for layer in self.layers
            ],
        }

    def load_state_dict(self, state: Mapping[str, object]) -> None:
        layers = state.get("layers")
        if layers is not None:
            if len(layers) != len(self.layers):
                raise DimensionError(
                    f"State has {len(layers)} layers, but network has {len(self.layers)}."
                )
            for layer, meta in zip(self.layers, layers):
                shape = (meta["inputs_number"], meta["neurons_number"])
                if shape != (layer.get_inputs_number(), layer.get_neurons_number()):
                    raise DimensionError(
                        f"Layer {layer.name!r} has shape "
                        f"{(layer.get_inputs_number(), layer.get_neurons_number())}, "
                        f"but state holds {shape}."
                    )
                layer.set_activation_function(meta["activation_function"])
        if "parameters" not in state:
            raise KeyError("Missing parameters in state dict")
        self.set_parameters(np.asarray(state["parameters"], dtype=np.float64))


def _check_architecture(architecture: Sequence[int]) -> List[int]:
    sizes = [int(size) for size in architecture]
    if len(sizes) < 2:
        raise ValueError("architecture needs at least an input and an output size")
    if any(size < 1 for size in sizes):
        raise ValueError(f"architecture sizes must be positive, got {sizes}")
    return sizes


__all__ = ["NeuralNetwork", "NeuralNetworkForwardPropagation"]
