"""Quasi-Newton training with DFP or BFGS inverse-Hessian approximations."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Sequence

import numpy as np

from ..core import tensor_utils
from ..core.types import Array
from .learning_rate import LearningRateAlgorithm
from .losses import LossIndex
from .optimization import OptimizationAlgorithm, StoppingCondition, TrainingResults, _RunState

logger = logging.getLogger(__name__)

EPSILON = np.finfo(np.float64).eps


class InverseHessianApproximationMethod(str, Enum):
    DFP = "DFP"
    BFGS = "BFGS"

    @classmethod
    def from_name(cls, name: "str | InverseHessianApproximationMethod"):
        if isinstance(name, cls):
            return name
        for member in cls:
            if member.value == name:
                return member
        raise ValueError(f"Unknown inverse Hessian approximation method: {name!r}")


@dataclass
class QuasiNewtonData:
    """Optimizer state carried from one epoch to the next."""

    parameters_number: int
    parameters: Array = field(init=False, repr=False)
    old_parameters: Array = field(init=False, repr=False)
    parameters_difference: Array = field(init=False, repr=False)
    gradient: Array = field(init=False, repr=False)
    old_gradient: Array = field(init=False, repr=False)
    gradient_difference: Array = field(init=False, repr=False)
    inverse_hessian: Array = field(init=False, repr=False)
    training_direction: Array = field(init=False, repr=False)
    learning_rate: float = 0.0
    initial_learning_rate: float = 0.0
    epoch: int = 0

    def __post_init__(self) -> None:
        size = self.parameters_number
        self.parameters = np.zeros(size)
        self.old_parameters = np.zeros(size)
        self.parameters_difference = np.zeros(size)
        self.gradient = np.zeros(size)
        self.old_gradient = np.zeros(size)
        self.gradient_difference = np.zeros(size)
        self.inverse_hessian = np.eye(size)
        self.training_direction = np.zeros(size)


def _is_numerically_zero(value: float, scale: float) -> bool:
    return abs(value) <= EPSILON * scale


def calculate_dfp_inverse_hessian(data: QuasiNewtonData) -> Array:
    """``H + (dp x dp)/(dp.dg) - (H dg x H dg)/(dg.H.dg)``, or identity when degenerate."""

    dp = data.parameters_difference
    dg = data.gradient_difference
    H = data.inverse_hessian
    identity = np.eye(data.parameters_number)
    parameters_dot_gradient = float(dp @ dg)
    if _is_numerically_zero(parameters_dot_gradient, tensor_utils.l2_norm(dp) * tensor_utils.l2_norm(dg)):
        logger.debug("DFP update skipped: dp.dg is numerically zero")
        return identity
    hessian_dot_gradient = H @ dg
    gradient_dot_hessian_dot_gradient = float(dg @ hessian_dot_gradient)
    if _is_numerically_zero(
        gradient_dot_hessian_dot_gradient,
        tensor_utils.l2_norm(dg) * tensor_utils.l2_norm(hessian_dot_gradient),
    ):
        logger.debug("DFP update skipped: dg.H.dg is numerically zero")
        return identity
    return (
        H
        + tensor_utils.kronecker_product(dp, dp) / parameters_dot_gradient
        - tensor_utils.kronecker_product(hessian_dot_gradient, hessian_dot_gradient)
        / gradient_dot_hessian_dot_gradient
    )


def calculate_bfgs_inverse_hessian(data: QuasiNewtonData) -> Array:
    """``H + (1 + dg.H.dg/dp.dg)(dp x dp)/(dp.dg) - (H dg x dp + dp x H dg)/(dp.dg)``."""

    dp = data.parameters_difference
    dg = data.gradient_difference
    H = data.inverse_hessian
    parameters_dot_gradient = float(dp @ dg)
    if _is_numerically_zero(parameters_dot_gradient, tensor_utils.l2_norm(dp) * tensor_utils.l2_norm(dg)):
        logger.debug("BFGS update skipped: dp.dg is numerically zero")
        return np.eye(data.parameters_number)
    hessian_dot_gradient = H @ dg
    gradient_dot_hessian_dot_gradient = float(dg @ hessian_dot_gradient)
    return (
        H
        + (1.0 + gradient_dot_hessian_dot_gradient / parameters_dot_gradient)
        * tensor_utils.kronecker_product(dp, dp)
        / parameters_dot_gradient
        - (
            tensor_utils.kronecker_product(hessian_dot_gradient, dp)
            + tensor_utils.kronecker_product(dp, hessian_dot_gradient)
        )
        / parameters_dot_gradient
    )


class QuasiNewtonMethod(OptimizationAlgorithm):
    """Second-order optimizer approximating the inverse Hessian from gradient history."""

    _SETTINGS: Sequence[str] = OptimizationAlgorithm._SETTINGS + (
        "inverse_hessian_approximation_method",
        "first_learning_rate",
        "learning_rate_method",
        "learning_rate_tolerance",
        "loss_tolerance",
    )

    def __init__(
        self,
        loss_index: LossIndex | None = None,
        *,
        inverse_hessian_approximation_method: InverseHessianApproximationMethod | str = (
            InverseHessianApproximationMethod.BFGS
        ),
        first_learning_rate: float = 0.01,
        learning_rate_method: str = "BrentMethod",
        learning_rate_tolerance: float = 1e-3,
        loss_tolerance: float = 1e-3,
        **settings: Any,
    ) -> None:
        super().__init__(loss_index, **settings)
        self.set_inverse_hessian_approximation_method(inverse_hessian_approximation_method)
        if first_learning_rate <= 0.0:
            raise ValueError("first_learning_rate must be positive")
        self.first_learning_rate = float(first_learning_rate)
        self.learning_rate_algorithm = LearningRateAlgorithm(
            loss_index,
            learning_rate_method=learning_rate_method,
            learning_rate_tolerance=learning_rate_tolerance,
            loss_tolerance=loss_tolerance,
        )

    # Line-search settings live on the learning-rate algorithm.
    @property
    def learning_rate_method(self) -> str:
        return self.learning_rate_algorithm.learning_rate_method.value

    @property
    def learning_rate_tolerance(self) -> float:
        return self.learning_rate_algorithm.learning_rate_tolerance

    @property
    def loss_tolerance(self) -> float:
        return self.learning_rate_algorithm.loss_tolerance

    def to_dict(self) -> Dict[str, Any]:
        settings = super().to_dict()
        settings["inverse_hessian_approximation_method"] = (
            self.inverse_hessian_approximation_method.value
        )
        return settings

    def set_loss_index(self, loss_index: LossIndex) -> None:
        super().set_loss_index(loss_index)
        self.learning_rate_algorithm.loss_index = loss_index

    def set_inverse_hessian_approximation_method(
        self, method: InverseHessianApproximationMethod | str
    ) -> None:
        self.inverse_hessian_approximation_method = InverseHessianApproximationMethod.from_name(
            method
        )

    def write_inverse_hessian_approximation_method(self) -> str:
        return self.inverse_hessian_approximation_method.value

    # ------------------------------------------------------------------
    # Update rules

    def calculate_inverse_hessian_approximation(self, data: QuasiNewtonData) -> Array:
        """Update ``data.inverse_hessian`` in place and return it.

        Resets to the identity on the first epoch, on a zero parameter or
        gradient difference, and whenever an input or the result is not finite.
        """

        size = data.parameters_number
        degenerate = (
            data.epoch == 0
            or tensor_utils.is_zero(data.parameters_difference)
            or tensor_utils.is_zero(data.gradient_difference)
            or not tensor_utils.is_finite(data.parameters_difference)
            or not tensor_utils.is_finite(data.gradient_difference)
            or not tensor_utils.is_finite(data.inverse_hessian)
        )
        if degenerate:
            if data.epoch > 0:
                logger.debug("Inverse Hessian reset to identity at epoch %d", data.epoch)
            data.inverse_hessian = np.eye(size)
            return data.inverse_hessian

        if self.inverse_hessian_approximation_method is InverseHessianApproximationMethod.DFP:
            inverse_hessian = calculate_dfp_inverse_hessian(data)
        else:
            inverse_hessian = calculate_bfgs_inverse_hessian(data)

        if not tensor_utils.is_finite(inverse_hessian):
            logger.debug("Non-finite inverse Hessian at epoch %d, reset to identity", data.epoch)
            inverse_hessian = np.eye(size)
        data.inverse_hessian = inverse_hessian
        return data.inverse_hessian

    def calculate_training_direction(self, data: QuasiNewtonData) -> Array:
        direction = -(data.inverse_hessian @ data.gradient)
        if not tensor_utils.is_finite(direction) or float(direction @ data.gradient) >= 0.0:
            logger.debug("Not a descent direction at epoch %d, using steepest descent", data.epoch)
            data.inverse_hessian = np.eye(data.parameters_number)
            direction = -data.gradient
        data.training_direction = direction
        return direction

    def update_parameters(self, batch, forward_propagation, back_propagation, data: QuasiNewtonData) -> None:
        """One quasi-Newton step from the current gradient in ``data``."""

        self.calculate_inverse_hessian_approximation(data)
        self.calculate_training_direction(data)
        if data.epoch == 0 or data.learning_rate <= 0.0:
            data.initial_learning_rate = self.first_learning_rate
        else:
            data.initial_learning_rate = data.learning_rate

        learning_rate, _ = self.learning_rate_algorithm.calculate_directional_point(
            batch, forward_propagation, back_propagation, data
        )

        data.old_parameters = data.parameters.copy()
        data.old_gradient = data.gradient.copy()
        data.parameters = data.parameters + learning_rate * data.training_direction
        data.learning_rate = float(learning_rate)
        data.epoch += 1
        self.loss_index.neural_network.set_parameters(data.parameters)

    # ------------------------------------------------------------------
    # Training loop

    def perform_training(self, callbacks: Sequence[object] = ()) -> TrainingResults:
        self.check()
        loss_index = self.loss_index
        self.learning_rate_algorithm.loss_index = loss_index
        network = loss_index.neural_network
        data_set = loss_index.data_set
        training_batch = data_set.training
        selection_batch = data_set.selection if data_set.has_selection() else None

        forward_propagation = loss_index.new_forward_propagation(training_batch)
        back_propagation = loss_index.new_back_propagation(training_batch)
        selection_forward = (
            loss_index.new_forward_propagation(selection_batch) if selection_batch else None
        )

        data = QuasiNewtonData(network.get_parameters_number())
        data.parameters = network.get_parameters()
        results = TrainingResults()
        state = _RunState()
        start = time.perf_counter()
        logger.info(
            "Quasi-Newton (%s) training of %d parameters",
            self.inverse_hessian_approximation_method.value,
            data.parameters_number,
        )

        epoch = 0
        while True:
            network.forward_propagate(training_batch.inputs, forward_propagation)
            loss_index.back_propagate(training_batch, forward_propagation, back_propagation)
            data.gradient = back_propagation.gradient.copy()
            if epoch > 0:
                data.parameters_difference = data.parameters - data.old_parameters
                data.gradient_difference = data.gradient - data.old_gradient
            loss = float(back_propagation.loss)

            selection_error = float("nan")
            if selection_batch is not None:
                selection_error = loss_index.calculate_batch_error(selection_batch, selection_forward)
                self._update_selection(state, epoch, selection_error, data.parameters)
            self._update_loss_decrease(state, epoch, loss)
            elapsed = time.perf_counter() - start

            results.training_error_history.append(loss)
            results.selection_error_history.append(selection_error)
            results.gradient_norm = tensor_utils.l2_norm(data.gradient)

            condition = self._stopping_condition(
                epoch, loss, state, elapsed, last_learning_rate=data.learning_rate
            )
            metrics = self._epoch_metrics(
                loss, selection_error, data.learning_rate, data.gradient, elapsed
            )
            self._emit_epoch(callbacks, epoch, metrics)
            self._display(epoch, metrics, condition)
            if condition is not StoppingCondition.NONE:
                break

            self.update_parameters(training_batch, forward_propagation, back_propagation, data)
            results.learning_rate_history.append(data.learning_rate)
            epoch += 1

        return self._finish(results, state, epoch, condition, time.perf_counter() - start)


__all__ = [
    "InverseHessianApproximationMethod",
    "QuasiNewtonData",
    "QuasiNewtonMethod",
    "calculate_bfgs_inverse_hessian",
    "calculate_dfp_inverse_hessian",
]
