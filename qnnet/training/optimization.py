"""Shared stopping criteria, results and callback plumbing for optimizers."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Sequence

import numpy as np

from ..core.errors import MissingLossIndexError
from ..core.types import Array
from .losses import LossIndex

logger = logging.getLogger(__name__)


class StoppingCondition(Enum):
    NONE = "None"
    LOSS_GOAL = "LossGoal"
    MINIMUM_LOSS_DECREASE = "MinimumLossDecrease"
    MAXIMUM_EPOCHS = "MaximumEpochsNumber"
    MAXIMUM_TIME = "MaximumTime"
    MAXIMUM_SELECTION_FAILURES = "MaximumSelectionErrorIncreases"
    ZERO_LEARNING_RATE = "ZeroLearningRate"

    @property
    def is_convergence(self) -> bool:
        return self in (StoppingCondition.LOSS_GOAL, StoppingCondition.MINIMUM_LOSS_DECREASE)


@dataclass
class TrainingResults:
    """Outcome of one training run."""

    stopping_condition: StoppingCondition = StoppingCondition.NONE
    epochs_number: int = 0
    training_error_history: List[float] = field(default_factory=list)
    selection_error_history: List[float] = field(default_factory=list)
    learning_rate_history: List[float] = field(default_factory=list)
    elapsed_time: float = 0.0
    parameters: Array | None = field(default=None, repr=False)
    loss: float = float("nan")
    selection_error: float = float("nan")
    gradient_norm: float = float("nan")

    def write_stopping_condition(self) -> str:
        return self.stopping_condition.value

    def to_metrics(self) -> Dict[str, float]:
        return {
            "epochs": float(self.epochs_number),
            "loss": float(self.loss),
            "selection_error": float(self.selection_error),
            "gradient_norm": float(self.gradient_norm),
            "elapsed_time": float(self.elapsed_time),
        }


@dataclass
class _RunState:
    """Counters the stopping criteria read between epochs."""

    previous_loss: float = float("nan")
    loss_decrease_failures: int = 0
    previous_selection_error: float = float("inf")
    selection_failures: int = 0
    best_selection_error: float = float("inf")
    best_selection_parameters: Array | None = None


class OptimizationAlgorithm:
    """Base class for optimizers driving a :class:`LossIndex`."""

    _SETTINGS: Sequence[str] = (
        "loss_goal",
        "minimum_loss_decrease",
        "maximum_loss_decrease_failures",
        "maximum_selection_failures",
        "maximum_epochs_number",
        "maximum_time",
        "display",
        "display_period",
    )

    def __init__(
        self,
        loss_index: LossIndex | None = None,
        *,
        loss_goal: float = 0.0,
        minimum_loss_decrease: float = 0.0,
        maximum_loss_decrease_failures: int = 0,
        maximum_selection_failures: int = 100,
        maximum_epochs_number: int = 1000,
        maximum_time: float = 3600.0,
        display: bool = True,
        display_period: int = 10,
    ) -> None:
        self.loss_index = loss_index
        self.loss_goal = float(loss_goal)
        self.minimum_loss_decrease = float(minimum_loss_decrease)
        self.maximum_loss_decrease_failures = int(maximum_loss_decrease_failures)
        self.maximum_selection_failures = int(maximum_selection_failures)
        self.maximum_epochs_number = int(maximum_epochs_number)
        self.maximum_time = float(maximum_time)
        self.display = bool(display)
        self.display_period = int(display_period)
        if self.maximum_epochs_number < 0:
            raise ValueError("maximum_epochs_number must be >= 0")
        if self.display_period < 1:
            raise ValueError("display_period must be >= 1")

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.to_dict()!r})"

    # ------------------------------------------------------------------
    # Configuration

    def to_dict(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self._SETTINGS}

    @classmethod
    def from_dict(cls, settings: Mapping[str, Any], loss_index: LossIndex | None = None):
        unknown = sorted(set(settings) - set(cls._SETTINGS))
        if unknown:
            raise KeyError(f"Unknown {cls.__name__} settings: {', '.join(unknown)}")
        return cls(loss_index, **dict(settings))

    def set_loss_index(self, loss_index: LossIndex) -> None:
        self.loss_index = loss_index

    def check(self) -> None:
        if self.loss_index is None:
            raise MissingLossIndexError(f"{type(self).__name__} has no loss index.")
        self.loss_index.check()

    # ------------------------------------------------------------------
    # Stopping criteria

    def _update_loss_decrease(self, state: _RunState, epoch: int, loss: float) -> None:
        if epoch > 0 and state.previous_loss - loss <= self.minimum_loss_decrease:
            state.loss_decrease_failures += 1
        else:
            state.loss_decrease_failures = 0
        state.previous_loss = loss

    def _update_selection(
        self, state: _RunState, epoch: int, selection_error: float, parameters: Array
    ) -> None:
        if epoch > 0 and selection_error > state.previous_selection_error:
            state.selection_failures += 1
        else:
            state.selection_failures = 0
        if selection_error <= state.best_selection_error:
            state.best_selection_error = selection_error
            state.best_selection_parameters = parameters.copy()
        state.previous_selection_error = selection_error

    def _stopping_condition(
        self,
        epoch: int,
        loss: float,
        state: _RunState,
        elapsed_time: float,
        last_learning_rate: float | None = None,
    ) -> StoppingCondition:
        """Return the first criterion that holds, in priority order."""

        if loss <= self.loss_goal:
            return StoppingCondition.LOSS_GOAL
        if epoch > 0 and state.loss_decrease_failures > self.maximum_loss_decrease_failures:
            return StoppingCondition.MINIMUM_LOSS_DECREASE
        if epoch >= self.maximum_epochs_number:
            return StoppingCondition.MAXIMUM_EPOCHS
        if elapsed_time >= self.maximum_time:
            return StoppingCondition.MAXIMUM_TIME
        if state.selection_failures >= self.maximum_selection_failures:
            return StoppingCondition.MAXIMUM_SELECTION_FAILURES
        if epoch > 0 and last_learning_rate is not None and last_learning_rate == 0.0:
            return StoppingCondition.ZERO_LEARNING_RATE
        return StoppingCondition.NONE

    # ------------------------------------------------------------------
    # Reporting

    def _display(self, epoch: int, metrics: Mapping[str, float], condition: StoppingCondition) -> None:
        if condition is not StoppingCondition.NONE:
            logger.info(
                "Epoch %d: %s (loss=%.6g, selection_error=%.6g)",
                epoch,
                condition.value,
                metrics["loss"],
                metrics["selection_error"],
            )
            return
        if self.display and epoch % self.display_period == 0:
            logger.info(
                "Epoch %d: loss=%.6g selection_error=%.6g learning_rate=%.6g gradient_norm=%.6g",
                epoch,
                metrics["loss"],
                metrics["selection_error"],
                metrics["learning_rate"],
                metrics["gradient_norm"],
            )

    @staticmethod
    def _emit_epoch(callbacks: Sequence[object], epoch: int, metrics: Mapping[str, float]) -> None:
        for callback in callbacks:
            if hasattr(callback, "on_epoch"):
                callback.on_epoch(epoch, metrics)  # type: ignore[attr-defined]
            elif callable(callback):
                callback(epoch, metrics)

    @staticmethod
    def _epoch_metrics(
        loss: float,
        selection_error: float,
        learning_rate: float,
        gradient: Array,
        elapsed_time: float,
    ) -> Dict[str, float]:
        return {
            "loss": float(loss),
            "selection_error": float(selection_error),
            "learning_rate": float(learning_rate),
            "gradient_norm": float(np.linalg.norm(gradient)),
            "elapsed_time": float(elapsed_time),
        }

    def _finish(
        self,
        results: TrainingResults,
        state: _RunState,
        epoch: int,
        condition: StoppingCondition,
        elapsed_time: float,
    ) -> TrainingResults:
        network = self.loss_index.neural_network
        if state.best_selection_parameters is not None:
            network.set_parameters(state.best_selection_parameters)
            results.selection_error = state.best_selection_error
        elif results.selection_error_history:
            results.selection_error = results.selection_error_history[-1]
        results.stopping_condition = condition
        results.epochs_number = epoch
        results.elapsed_time = elapsed_time
        results.parameters = network.get_parameters()
        if state.best_selection_parameters is not None:
            # Training loss of the restored parameters, not of the last epoch.
            results.loss = self.loss_index.calculate_loss(results.parameters)
        elif results.training_error_history:
            results.loss = results.training_error_history[-1]
        if math.isnan(results.gradient_norm):
            results.gradient_norm = 0.0
        return results

    def perform_training(self, callbacks: Sequence[object] = ()) -> TrainingResults:
        raise NotImplementedError


__all__ = ["OptimizationAlgorithm", "StoppingCondition", "TrainingResults"]
