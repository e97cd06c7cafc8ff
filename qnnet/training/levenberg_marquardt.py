"""Levenberg-Marquardt training on the squared-errors Jacobian."""

from __future__ import annotations

import logging
import time
from typing import Any, Sequence

import numpy as np

from ..core import tensor_utils
from .losses import LossIndex
from .optimization import OptimizationAlgorithm, StoppingCondition, TrainingResults, _RunState

logger = logging.getLogger(__name__)


class LevenbergMarquardtAlgorithm(OptimizationAlgorithm):
    """Damped Gauss-Newton steps, solved through a pivoted QR factorisation."""

    _SETTINGS: Sequence[str] = OptimizationAlgorithm._SETTINGS + (
        "damping_parameter",
        "damping_parameter_factor",
        "minimum_damping_parameter",
        "maximum_damping_parameter",
    )

    def __init__(
        self,
        loss_index: LossIndex | None = None,
        *,
        damping_parameter: float = 1e-3,
        damping_parameter_factor: float = 10.0,
        minimum_damping_parameter: float = 1e-6,
        maximum_damping_parameter: float = 1e6,
        **settings: Any,
    ) -> None:
        super().__init__(loss_index, **settings)
        if damping_parameter_factor <= 1.0:
            raise ValueError("damping_parameter_factor must be greater than 1")
        if not 0.0 < minimum_damping_parameter <= maximum_damping_parameter:
            raise ValueError("damping bounds must satisfy 0 < minimum <= maximum")
        self.damping_parameter_factor = float(damping_parameter_factor)
        self.minimum_damping_parameter = float(minimum_damping_parameter)
        self.maximum_damping_parameter = float(maximum_damping_parameter)
        self.damping_parameter = float(
            np.clip(damping_parameter, self.minimum_damping_parameter, self.maximum_damping_parameter)
        )

    def check(self) -> None:
        super().check()
        if not self.loss_index.supports_lm:
            raise ValueError(
                f"Levenberg-Marquardt needs a sum-of-squares loss, got {type(self.loss_index).__name__}."
            )

    def update_parameters(self, batch, forward_propagation, back_propagation_lm, parameters):
        """Return ``(parameters, accepted)`` after one damped step."""

        loss_index = self.loss_index
        gradient = back_propagation_lm.gradient
        loss = back_propagation_lm.loss
        while True:
            system = tensor_utils.sum_diagonal(
                back_propagation_lm.hessian.copy(), self.damping_parameter
            )
            step = tensor_utils.perform_householder_qr_decomposition(system, -gradient)
            candidate = parameters + step
            new_loss = (
                loss_index.calculate_loss(candidate, batch, forward_propagation)
                if tensor_utils.is_finite(step)
                else float("inf")
            )
            if new_loss < loss:
                self.damping_parameter = max(
                    self.damping_parameter / self.damping_parameter_factor,
                    self.minimum_damping_parameter,
                )
                return candidate, True
            if self.damping_parameter >= self.maximum_damping_parameter:
                logger.debug("Damping at its maximum, step rejected")
                return parameters, False
            self.damping_parameter = min(
                self.damping_parameter * self.damping_parameter_factor,
                self.maximum_damping_parameter,
            )

    def perform_training(self, callbacks: Sequence[object] = ()) -> TrainingResults:
        self.check()
        loss_index = self.loss_index
        network = loss_index.neural_network
        data_set = loss_index.data_set
        training_batch = data_set.training
        selection_batch = data_set.selection if data_set.has_selection() else None

        forward_propagation = loss_index.new_forward_propagation(training_batch)
        back_propagation_lm = loss_index.new_back_propagation_lm(training_batch)
        selection_forward = (
            loss_index.new_forward_propagation(selection_batch) if selection_batch else None
        )

        parameters = network.get_parameters()
        results = TrainingResults()
        state = _RunState()
        start = time.perf_counter()
        logger.info("Levenberg-Marquardt training of %d parameters", parameters.size)

        epoch = 0
        while True:
            network.forward_propagate(training_batch.inputs, forward_propagation)
            loss_index.back_propagate_lm(training_batch, forward_propagation, back_propagation_lm)
            loss = float(back_propagation_lm.loss)

            selection_error = float("nan")
            if selection_batch is not None:
                selection_error = loss_index.calculate_batch_error(selection_batch, selection_forward)
                self._update_selection(state, epoch, selection_error, parameters)
            self._update_loss_decrease(state, epoch, loss)
            elapsed = time.perf_counter() - start

            results.training_error_history.append(loss)
            results.selection_error_history.append(selection_error)
            results.gradient_norm = tensor_utils.l2_norm(back_propagation_lm.gradient)

            condition = self._stopping_condition(epoch, loss, state, elapsed)
            metrics = self._epoch_metrics(
                loss, selection_error, self.damping_parameter, back_propagation_lm.gradient, elapsed
            )
            metrics["damping_parameter"] = self.damping_parameter
            self._emit_epoch(callbacks, epoch, metrics)
            self._display(epoch, metrics, condition)
            if condition is not StoppingCondition.NONE:
                break

            parameters, _ = self.update_parameters(
                training_batch, forward_propagation, back_propagation_lm, parameters
            )
            network.set_parameters(parameters)
            results.learning_rate_history.append(self.damping_parameter)
            epoch += 1

        return self._finish(results, state, epoch, condition, time.perf_counter() - start)


__all__ = ["LevenbergMarquardtAlgorithm"]
