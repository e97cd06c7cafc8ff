"""Loss indices, line searches and optimizers."""

from .learning_rate import LearningRateAlgorithm, LearningRateMethod, Triplet
from .levenberg_marquardt import LevenbergMarquardtAlgorithm
from .losses import (
    REGISTRY,
    CrossEntropyError,
    LossIndex,
    MeanSquaredError,
    SumSquaredError,
)
from .optimization import OptimizationAlgorithm, StoppingCondition, TrainingResults
from .quasi_newton import InverseHessianApproximationMethod, QuasiNewtonData, QuasiNewtonMethod

__all__ = [
    "REGISTRY",
    "CrossEntropyError",
    "InverseHessianApproximationMethod",
    "LearningRateAlgorithm",
    "LearningRateMethod",
    "LevenbergMarquardtAlgorithm",
    "LossIndex",
    "MeanSquaredError",
    "OptimizationAlgorithm",
    "QuasiNewtonData",
    "QuasiNewtonMethod",
    "StoppingCondition",
    "SumSquaredError",
    "TrainingResults",
    "Triplet",
]
