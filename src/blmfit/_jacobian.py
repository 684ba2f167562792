"""Jacobian computation utilities.

This module provides a finite-difference Jacobian for residual functions
that come without an analytical derivative, and the numerical-zero test the
optimizer uses to detect a start point without gradient information.
"""

from typing import Callable, Optional, Tuple

import numpy as np
from numpy.typing import NDArray


def compute_jacobian(
    residual_fn: Callable[[NDArray[np.float64]], NDArray[np.float64]],
    x: NDArray[np.float64],
    jacobian_fn: Optional[Callable[[NDArray[np.float64]], NDArray[np.float64]]] = None,
    epsilon: float = 1e-8,
    f0: Optional[NDArray[np.float64]] = None,
) -> Tuple[NDArray[np.float64], int, int]:
    """Compute the Jacobian matrix of a residual function.

    If jacobian_fn is provided, uses the analytical Jacobian. Otherwise,
    computes a forward-difference approximation column by column.

    Args:
        residual_fn: Function f(x) -> residuals of shape (m,).
        x: Point at which to evaluate the Jacobian. Shape (n,).
        jacobian_fn: Optional analytical Jacobian function J(x) -> (m, n) matrix.
        epsilon: Relative step size for finite differences.
        f0: Residuals already evaluated at x, saves one evaluation.

    Returns:
        Tuple of:
            - J: Jacobian matrix of shape (m, n)
            - nfev: Number of function evaluations used
            - njev: Number of Jacobian evaluations used (1 if analytical, 0 if FD)
    """
    x = np.asarray(x, dtype=np.float64)

    if jacobian_fn is not None:
        J = jacobian_fn(x)
        # Handle sparse matrices (convert to dense)
        if hasattr(J, "toarray"):
            J = J.toarray()
        return np.asarray(J, dtype=np.float64), 0, 1

    nfev = 0
    if f0 is None:
        f0 = np.asarray(residual_fn(x), dtype=np.float64)
        nfev += 1

    m = len(f0)
    n = len(x)
    J = np.zeros((m, n), dtype=np.float64)

    for j in range(n):
        h = epsilon * max(1.0, abs(x[j]))
        x_plus = x.copy()
        x_plus[j] += h
        f_plus = np.asarray(residual_fn(x_plus), dtype=np.float64)
        J[:, j] = (f_plus - f0) / h
        nfev += 1

    return J, nfev, 0


def is_numerically_zero(J: NDArray[np.float64]) -> bool:
    """True if no entry of J exceeds sqrt(machine epsilon) in magnitude."""
    threshold = np.sqrt(np.finfo(np.float64).eps)
    return not bool(np.any(np.abs(J) > threshold))
