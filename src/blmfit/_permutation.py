"""Column pivot bookkeeping for the pivoted QR factorization.

The pivoted QR factorization of J satisfies J[:, perm] = Q @ R. Vectors
indexed like the parameters live in "original" order; vectors indexed like
the columns of R live in "pivot" order.
"""

from __future__ import annotations

import dataclasses

import numpy as np
from numpy.typing import ArrayLike, NDArray


@dataclasses.dataclass(frozen=True)
class Permutation:
    """Bijection between original parameter indices and pivot order.

    apply(v)[k] = v[indices[k]]
    invert(w)[indices[k]] = w[k]
    """

    indices: NDArray[np.intp]

    def __post_init__(self) -> None:
        indices = np.asarray(self.indices, dtype=np.intp)
        if indices.ndim != 1 or not np.array_equal(np.sort(indices), np.arange(len(indices))):
            raise ValueError(f"not a permutation: {self.indices!r}")
        object.__setattr__(self, "indices", indices)

    @classmethod
    def identity(cls, n: int) -> Permutation:
        return cls(indices=np.arange(n))

    def __len__(self) -> int:
        return len(self.indices)

    def apply(self, values: ArrayLike) -> NDArray[np.float64]:
        """Reorder a vector from original order into pivot order."""
        values = np.asarray(values, dtype=np.float64)
        return values[self.indices]

    def invert(self, values: ArrayLike) -> NDArray[np.float64]:
        """Reorder a vector from pivot order back into original order."""
        values = np.asarray(values, dtype=np.float64)
        out = np.empty_like(values)
        out[self.indices] = values
        return out

    def inverse(self) -> Permutation:
        """Permutation such that self.inverse().apply == self.invert."""
        return Permutation(indices=np.argsort(self.indices))
