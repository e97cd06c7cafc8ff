"""Shared numeric primitives: norms, products, solves and predicates."""

from __future__ import annotations

from typing import Sequence

import numpy as np
import scipy.linalg

from .errors import DimensionError
from .types import Array

NUMERIC_LIMITS_MIN = np.finfo(np.float64).tiny


# ----------------------------------------------------------------------
# Contract checks


def check_size(vector: Array, size: int, log: str = "") -> None:
    if np.size(vector) != size:
        raise DimensionError(f"{log}Size of vector is {np.size(vector)}, but must be {size}.")


def check_dimensions(matrix: Array, rows_number: int, columns_number: int, log: str = "") -> None:
    shape = np.shape(matrix)
    if len(shape) != 2:
        raise DimensionError(f"{log}Expected a matrix, got an array of shape {shape}.")
    if shape[0] != rows_number:
        raise DimensionError(
            f"{log}Number of rows in matrix is {shape[0]}, but must be {rows_number}."
        )
    if shape[1] != columns_number:
        raise DimensionError(
            f"{log}Number of columns in matrix is {shape[1]}, but must be {columns_number}."
        )


def check_columns_number(matrix: Array, columns_number: int, log: str = "") -> None:
    shape = np.shape(matrix)
    if len(shape) != 2:
        raise DimensionError(f"{log}Expected a matrix, got an array of shape {shape}.")
    if shape[1] != columns_number:
        raise DimensionError(
            f"{log}Number of columns in matrix is {shape[1]}, but must be {columns_number}."
        )


# ----------------------------------------------------------------------
# Norms


def l1_norm(vector: Array) -> float:
    return float(np.sum(np.abs(vector)))


def l1_norm_gradient(vector: Array) -> Array:
    return np.sign(vector).astype(np.float64)


def l1_norm_hessian(vector: Array) -> Array:
    size = np.size(vector)
    return np.zeros((size, size))


def l2_norm(vector: Array) -> float:
    return float(np.sqrt(np.sum(np.square(vector))))


def l2_norm_gradient(vector: Array) -> Array:
    """Return ``v / ||v||``, or zeros at the origin."""

    vector = np.asarray(vector, dtype=np.float64)
    norm = l2_norm(vector)
    if norm < NUMERIC_LIMITS_MIN:
        return np.zeros_like(vector)
    return vector / norm


def l2_norm_hessian(vector: Array) -> Array:
    """Return ``(I - v v^T / ||v||^2) / ||v||``, or zeros at the origin."""

    vector = np.asarray(vector, dtype=np.float64)
    size = vector.size
    norm = l2_norm(vector)
    if norm < NUMERIC_LIMITS_MIN:
        return np.zeros((size, size))
    return (np.eye(size) - kronecker_product(vector, vector) / (norm * norm)) / norm


# ----------------------------------------------------------------------
# Products and solves


def kronecker_product(vector: Array, other_vector: Array) -> Array:
    """Return the outer product ``vector (x) other_vector``."""

    return np.outer(vector, other_vector)


def sum_diagonal(matrix: Array, value: float) -> Array:
    """Add ``value`` to the diagonal of ``matrix`` in place and return it."""

    rows = min(matrix.shape)
    matrix[np.arange(rows), np.arange(rows)] += value
    return matrix


def multiply_rows(matrix: Array, vector: Array) -> Array:
    """Scale each column ``j`` of ``matrix`` by ``vector[j]`` in place."""

    check_size(vector, matrix.shape[1], "multiply_rows: ")
    matrix *= vector[np.newaxis, :]
    return matrix


def divide_columns(matrix: Array, vector: Array) -> Array:
    """Divide each row ``i`` by ``vector[i]`` in place, treating zero as one."""

    check_size(vector, matrix.shape[0], "divide_columns: ")
    divisor = np.where(vector == 0, 1.0, vector)
    matrix /= divisor[:, np.newaxis]
    return matrix


def perform_householder_qr_decomposition(A: Array, b: Array) -> Array:
    """Solve ``A x = b`` through a column-pivoted Householder QR factorisation.

    Rank-deficient systems get the basic solution: only the leading
    ``rank x rank`` triangle of ``R`` is solved and the remaining pivoted
    unknowns are zero. A zero matrix yields a zero vector.
    """

    A = np.asarray(A, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if A.ndim != 2 or A.shape[0] != A.shape[1]:
        raise DimensionError(f"QR solve needs a square matrix, got shape {A.shape}.")
    check_size(b, A.shape[0], "perform_householder_qr_decomposition: ")
    if A.shape[0] == 0:
        return np.zeros(0)
    Q, R, P = scipy.linalg.qr(A, pivoting=True)
    diagonal = np.abs(np.diag(R))
    threshold = np.finfo(np.float64).eps * A.shape[0] * diagonal[0]
    rank = int(np.count_nonzero(diagonal > threshold)) if diagonal[0] > 0.0 else 0
    z = np.zeros(A.shape[0])
    if rank:
        z[:rank] = scipy.linalg.solve_triangular(R[:rank, :rank], (Q.T @ b)[:rank])
    x = np.empty_like(z)
    x[P] = z
    return x


def fill_submatrix(matrix: Array, rows_indices: Sequence[int], columns_indices: Sequence[int]) -> Array:
    """Return the submatrix at the given row and column index sets."""

    rows = np.asarray(rows_indices, dtype=int)
    columns = np.asarray(columns_indices, dtype=int)
    return np.asarray(matrix)[np.ix_(rows, columns)]


def scrub_missing_values(matrix: Array, value: float) -> Array:
    matrix[np.isnan(matrix)] = value
    return matrix


# ----------------------------------------------------------------------
# Predicates


def is_zero(tensor: Array, limit: float = NUMERIC_LIMITS_MIN) -> bool:
    return bool(np.all(np.abs(tensor) <= limit))


def is_false(tensor: Array) -> bool:
    return not bool(np.any(tensor))


def is_binary(matrix: Array) -> bool:
    matrix = np.asarray(matrix)
    return bool(np.all((matrix == 0) | (matrix == 1)))


def is_constant(vector: Array) -> bool:
    vector = np.ravel(vector)
    if vector.size == 0:
        return True
    return bool(np.all(vector == vector[0]))


def is_equal(matrix: Array, value: float, tolerance: float = 0.0) -> bool:
    return bool(np.all(np.abs(np.asarray(matrix) - value) <= tolerance))


def are_equal(tensor_1: Array, tensor_2: Array, tolerance: float = 0.0) -> bool:
    tensor_1 = np.asarray(tensor_1)
    tensor_2 = np.asarray(tensor_2)
    if tensor_1.shape != tensor_2.shape:
        raise DimensionError(
            f"Cannot compare tensors of shapes {tensor_1.shape} and {tensor_2.shape}."
        )
    return bool(np.all(np.abs(tensor_1 - tensor_2) <= tolerance))


def is_less_than(column: Array, value: float) -> bool:
    """Return True if any entry is less than or equal to ``value``."""

    return bool(np.any(np.asarray(column) <= value))


def count_nan(tensor: Array) -> int:
    return int(np.count_nonzero(np.isnan(tensor)))


def is_finite(tensor: Array) -> bool:
    return bool(np.all(np.isfinite(tensor)))


__all__ = [
    "NUMERIC_LIMITS_MIN",
    "are_equal",
    "check_columns_number",
    "check_dimensions",
    "check_size",
    "count_nan",
    "divide_columns",
    "fill_submatrix",
    "is_binary",
    "is_constant",
    "is_equal",
    "is_false",
    "is_finite",
    "is_less_than",
    "is_zero",
    "kronecker_product",
    "l1_norm",
    "l1_norm_gradient",
    "l1_norm_hessian",
    "l2_norm",
    "l2_norm_gradient",
    "l2_norm_hessian",
    "multiply_rows",
    "perform_householder_qr_decomposition",
    "scrub_missing_values",
    "sum_diagonal",
]
