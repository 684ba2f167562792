"""Tests for the pivoted QR factorization and its permutation bookkeeping."""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from blmfit import Permutation, RankRevealingQR


def test_permutation_apply_and_invert():
    perm = Permutation(indices=np.array([2, 0, 1]))
    v = np.array([10.0, 20.0, 30.0])

    assert_allclose(perm.apply(v), [30.0, 10.0, 20.0])
    assert_allclose(perm.invert(perm.apply(v)), v)
    assert_allclose(perm.inverse().apply(perm.apply(v)), v)
    assert len(perm) == 3


def test_identity_permutation():
    v = np.array([1.0, 2.0])
    assert_allclose(Permutation.identity(2).apply(v), v)


@pytest.mark.parametrize("indices", [[0, 0, 1], [1, 2, 3], [[0, 1]]])
def test_invalid_permutation_raises(indices):
    with pytest.raises(ValueError, match="not a permutation"):
        Permutation(indices=np.array(indices))


def test_factorization_reconstructs_pivoted_matrix():
    rng = np.random.default_rng(1)
    J = rng.normal(size=(7, 4))
    qr = RankRevealingQR().factorize(J)

    assert qr.rank == 4
    assert_allclose(qr.q @ qr.r, J[:, qr.permutation.indices], atol=1e-12)
    # largest column norm is pivoted first
    assert qr.permutation.indices[0] == np.argmax(np.linalg.norm(J, axis=0))


def test_qt_apply_is_truncated_to_rank():
    rng = np.random.default_rng(2)
    J = rng.normal(size=(6, 3))
    J[:, 1] = 2.0 * J[:, 0]
    b = rng.normal(size=6)
    qr = RankRevealingQR().factorize(J)

    assert qr.rank == 2
    assert qr.qt_apply(b).shape == (2,)
    assert qr.live_r.shape == (2, 2)
    assert_allclose(qr.qt_apply(b), (qr.q.T @ b)[:2])


@pytest.mark.parametrize("num_zero_columns", [1, 2, 3])
def test_zero_columns_reduce_rank(num_zero_columns):
    rng = np.random.default_rng(3)
    J = rng.normal(size=(8, 5))
    J[:, :num_zero_columns] = 0.0
    qr = RankRevealingQR().factorize(J)

    assert qr.rank <= 5 - num_zero_columns
    assert set(qr.permutation.indices[: qr.rank]).isdisjoint(range(num_zero_columns))


def test_zero_matrix_has_rank_zero():
    qr = RankRevealingQR().factorize(np.zeros((4, 3)))
    assert qr.rank == 0
    assert qr.qt_apply(np.ones(4)).shape == (0,)


def test_rank_bounded_by_rows():
    rng = np.random.default_rng(4)
    qr = RankRevealingQR().factorize(rng.normal(size=(2, 5)))
    assert qr.rank == 2
    assert qr.r.shape == (2, 5)
