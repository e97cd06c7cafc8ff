"""Exception hierarchy for qnnet."""

from __future__ import annotations


class QNNetError(Exception):
    """Base class for all errors raised by qnnet."""


class DimensionError(QNNetError, ValueError):
    """A tensor shape disagrees with the sizes a component declares."""


class UnknownActivationError(QNNetError, ValueError):
    """An activation function name could not be resolved."""


class MissingLossIndexError(QNNetError, RuntimeError):
    """Training was requested without a usable loss index."""


__all__ = [
    "QNNetError",
    "DimensionError",
    "UnknownActivationError",
    "MissingLossIndexError",
]
