import numpy as np
import pytest

from qnnet.core.device import ExecutionContext
from qnnet.core.errors import DimensionError


def test_row_blocks_cover_all_rows():
    context = ExecutionContext(3, min_rows_per_task=2)
    blocks = context.row_blocks(10)
    assert len(blocks) == 3
    assert blocks[0].start == 0 and blocks[-1].stop == 10
    assert ExecutionContext(1).row_blocks(10) == [slice(0, 10)]
    assert ExecutionContext(4, min_rows_per_task=8).row_blocks(10) == [slice(0, 10)]


def test_parallel_contractions_match_numpy():
    rng = np.random.default_rng(0)
    a = rng.standard_normal((10, 4))
    b = rng.standard_normal((4, 3))
    c = rng.standard_normal((10, 3))
    with ExecutionContext(3, min_rows_per_task=2) as context:
        np.testing.assert_allclose(context.contract(a, b), a @ b)
        out = np.zeros((10, 3))
        result = context.contract(a, b, out=out)
        assert result is out
        np.testing.assert_allclose(out, a @ b)
        np.testing.assert_allclose(context.contract_transposed(a, c), a.T @ c)


def test_contract_checks_shapes():
    context = ExecutionContext()
    with pytest.raises(DimensionError):
        context.contract(np.ones((2, 3)), np.ones((2, 3)))
    with pytest.raises(DimensionError):
        context.contract(np.ones((2, 3)), np.ones((3, 1)), out=np.zeros((3, 1)))
    with pytest.raises(DimensionError):
        context.contract_transposed(np.ones((2, 3)), np.ones((3, 1)))


def test_invalid_worker_count():
    with pytest.raises(ValueError):
        ExecutionContext(0)
