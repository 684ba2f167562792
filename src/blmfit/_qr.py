"""Rank-revealing column-pivoted QR factorization.

The trust-region step only uses the leading `rank` columns of the pivoted
factorization; the remaining columns span a numerically singular subspace
and are left out of the step computation.
"""

import dataclasses
import math

import numpy as np
import scipy.linalg as la
from numpy.typing import ArrayLike, NDArray

from blmfit._permutation import Permutation


def rank_tolerance(scale: float, m: int, n: int) -> float:
    """Threshold under which a pivot or column norm counts as zero.

    Scales machine epsilon by the matrix dimensions and by the largest power
    of two below `scale`.
    """
    if scale <= 0.0 or not np.isfinite(scale):
        return 0.0
    base_power = math.floor(math.log2(scale))
    return 20.0 * np.finfo(np.float64).eps * (m + n) * 2.0**base_power


@dataclasses.dataclass(frozen=True)
class PivotedQR:
    """Factorization J[:, permutation.indices] = q @ r with numerical rank."""

    q: NDArray[np.float64]
    r: NDArray[np.float64]
    permutation: Permutation
    rank: int

    @property
    def num_columns(self) -> int:
        return self.r.shape[1]

    @property
    def live_r(self) -> NDArray[np.float64]:
        """Leading rank x rank upper triangle of R."""
        return self.r[: self.rank, : self.rank]

    def qt_apply(self, b: ArrayLike) -> NDArray[np.float64]:
        """Return the first `rank` components of Q^T b."""
        b = np.asarray(b, dtype=np.float64)
        return self.q[:, : self.rank].T @ b

    def rt_apply(self, y: ArrayLike) -> NDArray[np.float64]:
        """Return R^T y restricted to the live rows, in pivot order (length n)."""
        y = np.asarray(y, dtype=np.float64)
        return self.r[: self.rank, :].T @ y


class RankRevealingQR:
    """Column-pivoted Householder QR choosing the largest remaining column first."""

    def factorize(self, matrix: ArrayLike) -> PivotedQR:
        matrix = np.asarray(matrix, dtype=np.float64)
        if matrix.ndim != 2:
            raise ValueError(f"expected a 2-D matrix, got shape {matrix.shape}")

        m, n = matrix.shape
        q, r, pivots = la.qr(matrix, mode="economic", pivoting=True)

        diagonal = np.abs(np.diag(r))
        tol = rank_tolerance(float(diagonal[0]) if diagonal.size else 0.0, m, n)
        # Pivoting keeps |R[k, k]| non-increasing, so the live block is a prefix
        live = diagonal > tol
        rank = int(np.argmin(live)) if not np.all(live) else int(diagonal.size)

        return PivotedQR(q=q, r=r, permutation=Permutation(indices=pivots), rank=rank)
