"""Core typing contracts and propagation buffers for qnnet."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:  # pragma: no cover
    from .layer import Layer

Array = np.ndarray


@dataclass(frozen=True)
class Batch:
    """A single batch of samples."""

    inputs: Array
    targets: Array

    @property
    def samples_number(self) -> int:
        return int(self.inputs.shape[0])


@dataclass(frozen=True)
class DataSet:
    """Training, selection and testing partitions of a data set."""

    training: Batch
    selection: Batch | None = None
    testing: Batch | None = None

    @property
    def inputs_number(self) -> int:
        return int(self.training.inputs.shape[1])

    @property
    def targets_number(self) -> int:
        return int(self.training.targets.shape[1])

    def has_selection(self) -> bool:
        return self.selection is not None and self.selection.samples_number > 0


class LayerKind(Enum):
    """Closed set of layer variants used to route backward derivatives."""

    PERCEPTRON = "Perceptron"
    PROBABILISTIC_BINARY = "ProbabilisticBinary"
    PROBABILISTIC_MULTICLASS = "ProbabilisticMulticlass"
    PROBABILISTIC_SOFTMAX = "ProbabilisticSoftmax"

    @property
    def is_probabilistic(self) -> bool:
        return self is not LayerKind.PERCEPTRON


# ----------------------------------------------------------------------
# Per-layer scratch buffers. They are sized once for a batch size and then
# overwritten in place by every forward or backward pass.


@dataclass
class PerceptronLayerForwardPropagation:
    """Combinations, activations and activation derivatives of one layer."""

    layer: "Layer"
    batch_samples_number: int
    combinations: Array = field(init=False, repr=False)
    activations: Array = field(init=False, repr=False)
    activations_derivatives: Array = field(init=False, repr=False)

    def __post_init__(self) -> None:
        shape = (self.batch_samples_number, self.layer.get_neurons_number())
        self.combinations = np.zeros(shape)
        self.activations = np.zeros(shape)
        self.activations_derivatives = np.zeros(shape)


@dataclass
class ProbabilisticLayerForwardPropagation(PerceptronLayerForwardPropagation):
    """Forward buffer whose derivatives are per-sample Jacobians for softmax."""

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.layer.uses_jacobian():
            neurons_number = self.layer.get_neurons_number()
            self.activations_derivatives = np.zeros(
                (self.batch_samples_number, neurons_number, neurons_number)
            )


@dataclass
class PerceptronLayerBackPropagation:
    """Delta and gradient accumulators of one layer."""

    layer: "Layer"
    batch_samples_number: int
    delta: Array = field(init=False, repr=False)
    biases_derivatives: Array = field(init=False, repr=False)
    synaptic_weights_derivatives: Array = field(init=False, repr=False)

    def __post_init__(self) -> None:
        neurons_number = self.layer.get_neurons_number()
        self.delta = np.zeros((self.batch_samples_number, neurons_number))
        self.biases_derivatives = np.zeros(neurons_number)
        self.synaptic_weights_derivatives = np.zeros(
            (self.layer.get_inputs_number(), neurons_number)
        )


@dataclass
class ProbabilisticLayerBackPropagation(PerceptronLayerBackPropagation):
    """Adds the error-combination derivatives needed by softmax outputs."""

    error_combinations_derivatives: Array = field(init=False, repr=False)

    def __post_init__(self) -> None:
        super().__post_init__()
        self.error_combinations_derivatives = np.zeros(
            (self.batch_samples_number, self.layer.get_neurons_number())
        )


@dataclass
class PerceptronLayerBackPropagationLM:
    """Delta and per-sample squared-errors Jacobian of one layer."""

    layer: "Layer"
    batch_samples_number: int
    delta: Array = field(init=False, repr=False)
    squared_errors_jacobian: Array = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.delta = np.zeros((self.batch_samples_number, self.layer.get_neurons_number()))
        self.squared_errors_jacobian = np.zeros(
            (self.batch_samples_number, self.layer.get_parameters_number())
        )


@dataclass
class ProbabilisticLayerBackPropagationLM(PerceptronLayerBackPropagationLM):
    error_combinations_derivatives: Array = field(init=False, repr=False)

    def __post_init__(self) -> None:
        super().__post_init__()
        self.error_combinations_derivatives = np.zeros(
            (self.batch_samples_number, self.layer.get_neurons_number())
        )


@dataclass(frozen=True)
class RunResult:
    """Summary returned by :func:`qnnet.training.pipelines.run_pipeline`."""

    epochs: int
    metrics_path: str
    manifest_path: str
    summary_path: str = ""
    stopping_condition: str = ""
    loss: float = float("nan")


__all__ = [
    "Array",
    "Batch",
    "DataSet",
    "LayerKind",
    "PerceptronLayerForwardPropagation",
    "ProbabilisticLayerForwardPropagation",
    "PerceptronLayerBackPropagation",
    "ProbabilisticLayerBackPropagation",
    "PerceptronLayerBackPropagationLM",
    "ProbabilisticLayerBackPropagationLM",
    "RunResult",
]
