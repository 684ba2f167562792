"""Least-squares cost interface consumed by the optimizer.

The optimizer minimizes |f(x)|^2 for any object exposing the residual
vector f(x) and its (m, n) Jacobian. GaussianModelCost is one such object;
ResidualCost adapts a plain residual function.
"""

from typing import Callable, Optional, Protocol

import numpy as np
from numpy.typing import ArrayLike, NDArray

from blmfit._jacobian import compute_jacobian


class LeastSquaresCost(Protocol):
    def evaluate(self, parameters: ArrayLike) -> NDArray[np.float64]: ...

    def jacobian(self, parameters: ArrayLike) -> NDArray[np.float64]: ...


class ResidualCost:
    """Wrap a residual function f(x) -> (m,) and optional Jacobian J(x) -> (m, n).

    Without jacobian_fn the Jacobian is approximated by forward differences,
    reusing the residuals of the last evaluate() call when it was made at the
    same point.
    """

    def __init__(
        self,
        residual_fn: Callable[[NDArray[np.float64]], NDArray[np.float64]],
        jacobian_fn: Optional[Callable[[NDArray[np.float64]], NDArray[np.float64]]] = None,
        callback: Optional[Callable[[NDArray[np.float64], NDArray[np.float64]], None]] = None,
    ):
        self.residual_fn = residual_fn
        self.jacobian_fn = jacobian_fn
        self.callback = callback
        self.nfev = 0
        self.njev = 0
        self._last_x: Optional[NDArray[np.float64]] = None
        self._last_f: Optional[NDArray[np.float64]] = None

    def evaluate(self, parameters: ArrayLike) -> NDArray[np.float64]:
        x = np.array(parameters, dtype=np.float64)
        f = np.atleast_1d(np.asarray(self.residual_fn(x), dtype=np.float64))
        self.nfev += 1
        self._last_x, self._last_f = x, f

        if self.callback is not None:
            self.callback(x, f)

        return f.copy()

    def jacobian(self, parameters: ArrayLike) -> NDArray[np.float64]:
        x = np.asarray(parameters, dtype=np.float64)
        f0 = None
        if self._last_x is not None and np.array_equal(self._last_x, x):
            f0 = self._last_f

        J, nfev, njev = compute_jacobian(self.residual_fn, x, self.jacobian_fn, f0=f0)
        self.nfev += nfev
        self.njev += njev
        return np.atleast_2d(J)
