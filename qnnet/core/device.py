"""Explicit execution context for intra-operation data parallelism."""

from __future__ import annotations

import concurrent.futures
from typing import List

import numpy as np

from .errors import DimensionError
from .types import Array


class ExecutionContext:
    """Fork-join worker pool used by a single tensor contraction at a time.

    Row blocks of the left operand are dispatched to the pool and joined
    before the call returns. With one worker, or when the operand has fewer
    than ``2 * min_rows_per_task`` rows, the contraction runs inline.
    """

    def __init__(self, workers: int = 1, *, min_rows_per_task: int = 512) -> None:
        if workers < 1:
            raise ValueError("workers must be >= 1")
        if min_rows_per_task < 1:
            raise ValueError("min_rows_per_task must be >= 1")
        self.workers = int(workers)
        self.min_rows_per_task = int(min_rows_per_task)
        self._executor: concurrent.futures.ThreadPoolExecutor | None = None

    def __repr__(self) -> str:
        return (
            f"ExecutionContext(workers={self.workers}, "
            f"min_rows_per_task={self.min_rows_per_task})"
        )

    def __enter__(self) -> "ExecutionContext":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def _pool(self) -> concurrent.futures.ThreadPoolExecutor:
        if self._executor is None:
            self._executor = concurrent.futures.ThreadPoolExecutor(
                max_workers=self.workers, thread_name_prefix="qnnet"
            )
        return self._executor

    def row_blocks(self, rows: int) -> List[slice]:
        """Return the row slices one call would be split into."""

        if self.workers == 1 or rows < 2 * self.min_rows_per_task:
            return [slice(0, rows)]
        tasks = min(self.workers, rows // self.min_rows_per_task)
        bounds = np.linspace(0, rows, tasks + 1).astype(int)
        return [slice(int(lo), int(hi)) for lo, hi in zip(bounds[:-1], bounds[1:])]

    def contract(self, a: Array, b: Array, out: Array | None = None) -> Array:
        """Return ``a @ b``, writing into ``out`` when given."""

        if a.shape[1] != b.shape[0]:
            raise DimensionError(
                f"Cannot contract {a.shape} with {b.shape}: inner dimensions differ."
            )
        expected = (a.shape[0], b.shape[1])
        if out is not None and out.shape != expected:
            raise DimensionError(f"Output buffer has shape {out.shape}, but must be {expected}.")
        blocks = self.row_blocks(a.shape[0])
        if len(blocks) == 1:
            return np.matmul(a, b, out=out)

        result = out if out is not None else np.empty(expected, dtype=np.result_type(a, b))

        def _work(rows: slice) -> None:
            np.matmul(a[rows], b, out=result[rows])

        for future in [self._pool().submit(_work, rows) for rows in blocks]:
            future.result()
        return result

    def contract_transposed(self, a: Array, b: Array) -> Array:
        """Return ``a.T @ b`` as a sum of per-block partial products."""

        if a.shape[0] != b.shape[0]:
            raise DimensionError(
                f"Cannot contract {a.shape}^T with {b.shape}: row counts differ."
            )
        blocks = self.row_blocks(a.shape[0])
        if len(blocks) == 1:
            return a.T @ b
        futures = [self._pool().submit(lambda rows: a[rows].T @ b[rows], rows) for rows in blocks]
        return np.sum([future.result() for future in futures], axis=0)


__all__ = ["ExecutionContext"]
