"""Diagonal parameter scaling for a scale-invariant trust region.

Parameters of a forward model can span many orders of magnitude. The trust
region is measured in the scaled norm |D x|, where D tracks the largest
Jacobian column norm seen so far for each parameter (More, 1978).
"""

from __future__ import annotations

import dataclasses

import numpy as np
from numpy.typing import NDArray

from blmfit._qr import rank_tolerance


def column_norms(jacobian: NDArray[np.float64]) -> NDArray[np.float64]:
    """Euclidean norm of each column of an (m, n) Jacobian."""
    return np.sqrt(np.sum(jacobian**2, axis=0))


@dataclasses.dataclass(frozen=True)
class ColumnNormScaling:
    """Component-wise scaling by running maximum Jacobian column norms.

    scale(x) = D * x
    update(J) = max(D, column_norms(J))
    """

    values: NDArray[np.float64]

    @classmethod
    def from_jacobian(cls, jacobian: NDArray[np.float64]) -> ColumnNormScaling:
        """Initial scaling from the column norms at the starting point.

        Columns whose norm falls below the rank tolerance of the Jacobian are
        floored at that tolerance so D stays strictly positive.
        """
        m, n = jacobian.shape
        norms = column_norms(jacobian)
        nonzero = norms[norms != 0.0]
        floor = rank_tolerance(float(nonzero.max()), m, n) if nonzero.size else 0.0
        return cls(values=np.maximum(norms, floor))

    def update(self, jacobian: NDArray[np.float64]) -> ColumnNormScaling:
        return ColumnNormScaling(values=np.maximum(self.values, column_norms(jacobian)))

    def scale(self, x: NDArray[np.float64]) -> NDArray[np.float64]:
        return self.values * x

    def scaled_norm(self, x: NDArray[np.float64]) -> float:
        return float(np.linalg.norm(self.values * x))
