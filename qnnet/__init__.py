"""qnnet public API."""

from .core import activations, tensor_utils, types  # noqa: F401
from .core.device import ExecutionContext
from .core.errors import DimensionError, MissingLossIndexError, QNNetError, UnknownActivationError
from .core.network import NeuralNetwork
from .core.perceptron import PerceptronLayer
from .core.probabilistic import ProbabilisticLayer
from .training.pipelines import load_preset, merge_config, presets, run_pipeline
from .training.quasi_newton import QuasiNewtonMethod

__all__ = [
    "DimensionError",
    "ExecutionContext",
    "MissingLossIndexError",
    "NeuralNetwork",
    "PerceptronLayer",
    "ProbabilisticLayer",
    "QNNetError",
    "QuasiNewtonMethod",
    "UnknownActivationError",
    "activations",
    "load_preset",
    "merge_config",
    "presets",
    "run_pipeline",
    "tensor_utils",
    "types",
]

__version__ = "0.1.0"
