"""Core numerical primitives for qnnet."""

from . import activations, device, errors, tensor_utils, types
from .network import NeuralNetwork, NeuralNetworkForwardPropagation
from .perceptron import PerceptronLayer
from .probabilistic import ProbabilisticLayer

__all__ = [
    "NeuralNetwork",
    "NeuralNetworkForwardPropagation",
    "PerceptronLayer",
    "ProbabilisticLayer",
    "activations",
    "device",
    "errors",
    "tensor_utils",
    "types",
]
