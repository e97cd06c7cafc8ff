"""One-dimensional line searches along a training direction."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Tuple

import numpy as np
from scipy.optimize import minimize_scalar

from ..core.types import Array, Batch
from .losses import LossIndex

logger = logging.getLogger(__name__)

GOLDEN_RATIO = (1.0 + math.sqrt(5.0)) / 2.0
GOLDEN_SECTION = 0.382
MAXIMUM_BRACKETING_ITERATIONS = 64
MAXIMUM_REFINEMENT_ITERATIONS = 1000


class LearningRateMethod(str, Enum):
    GOLDEN_SECTION = "GoldenSection"
    BRENT_METHOD = "BrentMethod"

    @classmethod
    def from_name(cls, name: "str | LearningRateMethod") -> "LearningRateMethod":
        if isinstance(name, cls):
            return name
        for member in cls:
            if member.value == name:
                return member
        raise ValueError(f"Unknown learning rate method: {name!r}")


@dataclass
class Triplet:
    """Three ``(learning_rate, loss)`` points with the interior one lowest."""

    A: Tuple[float, float]
    U: Tuple[float, float]
    B: Tuple[float, float]

    def get_length(self) -> float:
        return self.B[0] - self.A[0]

    def is_bracketing(self) -> bool:
        return (
            self.A[0] <= self.U[0] <= self.B[0]
            and self.U[1] <= self.A[1]
            and self.U[1] <= self.B[1]
        )

    def minimum(self) -> Tuple[float, float]:
        return min((self.A, self.U, self.B), key=lambda point: point[1])


class LearningRateAlgorithm:
    """Bracket then refine the loss minimum along a training direction."""

    def __init__(
        self,
        loss_index: LossIndex | None = None,
        *,
        learning_rate_method: LearningRateMethod | str = LearningRateMethod.BRENT_METHOD,
        learning_rate_tolerance: float = 1e-3,
        loss_tolerance: float = 1e-3,
    ) -> None:
        self.loss_index = loss_index
        self.learning_rate_method = LearningRateMethod.from_name(learning_rate_method)
        self.learning_rate_tolerance = float(learning_rate_tolerance)
        self.loss_tolerance = float(loss_tolerance)

    def set_learning_rate_method(self, method: LearningRateMethod | str) -> None:
        self.learning_rate_method = LearningRateMethod.from_name(method)

    def _loss_at(self, batch: Batch, forward_propagation, parameters: Array, direction: Array, rate: float) -> float:
        loss = self.loss_index.calculate_loss(parameters + rate * direction, batch, forward_propagation)
        return loss if math.isfinite(loss) else math.inf

    def calculate_bracketing_triplet(
        self,
        batch: Batch,
        forward_propagation,
        back_propagation,
        data,
    ) -> Triplet:
        """Expand or shrink from ``data.initial_learning_rate`` until the minimum is bracketed."""

        parameters = data.parameters
        direction = data.training_direction
        A = (0.0, float(back_propagation.loss))
        rate = float(data.initial_learning_rate)
        B = (rate, self._loss_at(batch, forward_propagation, parameters, direction, rate))

        if B[1] > A[1]:
            U = B
            for _ in range(MAXIMUM_BRACKETING_ITERATIONS):
                rate = A[0] + GOLDEN_SECTION * (B[0] - A[0])
                U = (rate, self._loss_at(batch, forward_propagation, parameters, direction, rate))
                if U[1] < A[1]:
                    return Triplet(A, U, B)
                B = U
            logger.debug("Bracketing collapsed to a zero learning rate")
            return Triplet(A, A, B)

        U = B
        for _ in range(MAXIMUM_BRACKETING_ITERATIONS):
            rate = U[0] * GOLDEN_RATIO
            B = (rate, self._loss_at(batch, forward_propagation, parameters, direction, rate))
            if B[1] >= U[1]:
                return Triplet(A, U, B)
            A, U = U, B
        return Triplet(A, U, U)

    def _golden_section(self, batch, forward_propagation, data, triplet: Triplet) -> Tuple[float, float]:
        A, U, B = triplet.A, triplet.U, triplet.B
        for _ in range(MAXIMUM_REFINEMENT_ITERATIONS):
            if B[0] - A[0] <= self.learning_rate_tolerance:
                break
            if abs(A[1] - U[1]) <= self.loss_tolerance and abs(B[1] - U[1]) <= self.loss_tolerance:
                break
            if U[0] < 0.5 * (A[0] + B[0]):
                rate = U[0] + GOLDEN_SECTION * (B[0] - U[0])
            else:
                rate = U[0] - GOLDEN_SECTION * (U[0] - A[0])
            V = (rate, self._loss_at(batch, forward_propagation, data.parameters, data.training_direction, rate))
            if V[0] > U[0]:
                if V[1] < U[1]:
                    A, U = U, V
                else:
                    B = V
            else:
                if V[1] < U[1]:
                    B, U = U, V
                else:
                    A = V
        return U

    def _brent_method(self, batch, forward_propagation, data, triplet: Triplet) -> Tuple[float, float]:
        result = minimize_scalar(
            lambda rate: self._loss_at(
                batch, forward_propagation, data.parameters, data.training_direction, rate
            ),
            bounds=(triplet.A[0], triplet.B[0]),
            method="bounded",
            options={"xatol": self.learning_rate_tolerance},
        )
        candidate = (float(result.x), float(result.fun))
        if math.isfinite(candidate[1]) and candidate[1] < triplet.U[1]:
            return candidate
        return triplet.U

    def calculate_directional_point(
        self,
        batch: Batch,
        forward_propagation,
        back_propagation,
        data,
    ) -> Tuple[float, float]:
        """Return ``(learning_rate, loss)`` minimizing the loss along ``data.training_direction``."""

        triplet = self.calculate_bracketing_triplet(batch, forward_propagation, back_propagation, data)
        if triplet.U[0] == triplet.A[0] == 0.0 or triplet.get_length() <= 0.0:
            point = triplet.minimum()
            return point[0], point[1]
        if self.learning_rate_method is LearningRateMethod.GOLDEN_SECTION:
            point = self._golden_section(batch, forward_propagation, data, triplet)
        else:
            point = self._brent_method(batch, forward_propagation, data, triplet)
        return float(point[0]), float(point[1])


__all__ = ["LearningRateAlgorithm", "LearningRateMethod", "Triplet"]
