"""Bounded trust-region Levenberg-Marquardt optimizer.

This module drives one local, bound-constrained least-squares fit:
1. Residual and Jacobian evaluation through a LeastSquaresCost
2. Rank-revealing pivoted QR factorization of the Jacobian
3. Damping search for a bounded step on the trust region boundary
4. Step acceptance, trust region adaptation and stopping tests

BoundedLevenbergMarquardt holds the state of one run; solve() is the
functional entry point of the blmfit package.
"""

from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import numpy as np
from numpy.typing import ArrayLike, NDArray

from blmfit._convergence import check_termination, gain_ratio, shrink_factor, update_radius
from blmfit._cost import LeastSquaresCost, ResidualCost
from blmfit._damping import DampingSearch
from blmfit._jacobian import is_numerically_zero
from blmfit._qr import PivotedQR, RankRevealingQR
from blmfit._scaling import ColumnNormScaling
from blmfit._types import BLMStatus, OptimizerConfig, OptimizeResult


class BoundedLevenbergMarquardt:
    """Minimize |f(x)|^2 subject to lower <= x <= upper.

    Args:
        cost: Object exposing evaluate(x) -> residuals and jacobian(x) -> (m, n).
            Owned by this optimizer for the duration of a run.
        config: Optimizer options. Default OptimizerConfig().
        factorizer: Rank-revealing factorization strategy. Default RankRevealingQR.
        damping_search: Damping search strategy. Default DampingSearch.

    Example:
        >>> import numpy as np
        >>> from blmfit import BoundedLevenbergMarquardt, OptimizerConfig, ResidualCost
        >>> cost = ResidualCost(lambda x: x - np.array([1.0, 2.0]))
        >>> config = OptimizerConfig(upper_bounds=[0.5, 10.0], verbose=-1)
        >>> result = BoundedLevenbergMarquardt(cost, config).optimize([0.0, 0.0])
        >>> print(result.x)  # [0.5, 2.0]
    """

    def __init__(
        self,
        cost: LeastSquaresCost,
        config: Optional[OptimizerConfig] = None,
        factorizer: Optional[RankRevealingQR] = None,
        damping_search: Optional[DampingSearch] = None,
    ):
        self.cost = cost
        self.config = config if config is not None else OptimizerConfig()
        self.factorizer = factorizer if factorizer is not None else RankRevealingQR()
        self.damping_search = damping_search if damping_search is not None else DampingSearch()

        self.current_position: Optional[NDArray[np.float64]] = None
        self.current_value = np.inf
        self.radius = 0.0
        self.lambda_value = 0.0
        self.scaling: Optional[ColumnNormScaling] = None

    def optimize(
        self,
        x0: ArrayLike,
        history: bool = False,
        return_jacobian: bool = False,
    ) -> OptimizeResult:
        """Run the bounded Levenberg-Marquardt iterations from x0.

        Args:
            x0: Initial guess. Array-like of shape (n,). Components outside the
                bounds are clipped onto them.
            history: If True, include per-iteration records in the result.
            return_jacobian: If True, include the Jacobian at the solution.

        Returns:
            OptimizeResult describing the final point and termination reason.

        Raises:
            ValueError: If x0 is empty or the bounds are inconsistent.
            BLMError: Propagated from the cost function; no partial result.
        """
        # =========================================================================
        # Init
        # =========================================================================
        x = np.asarray(x0, dtype=np.float64).copy()
        if x.ndim != 1 or x.size == 0:
            raise ValueError("x0 must be a non-empty 1-D array")

        config = self.config
        verbose = config.verbose
        n = x.size
        lower, upper = config.bounds_for(n)

        clipped = np.clip(x, lower, upper)
        if verbose >= 1 and not np.array_equal(clipped, x):
            print("[BLM] Initial guess outside bounds, clipped onto the box")
        x = clipped

        nfev = 0
        njev = 0
        records: List[Dict[str, Any]] = []

        residuals = self.cost.evaluate(x)
        nfev += 1
        current_cost = float(residuals @ residuals)
        m = residuals.size

        J = self.cost.jacobian(x)
        njev += 1

        self.current_position = x
        self.current_value = current_cost
        self.lambda_value = 0.0

        if is_numerically_zero(J):
            self.radius = 0.0
            return self._finish(BLMStatus.DEGENERATE_JACOBIAN, x, residuals, J, 0,
                                nfev, njev, records, history, return_jacobian)

        if current_cost == 0.0:
            self.radius = 0.0
            return self._finish(BLMStatus.ZERO_RESIDUAL, x, residuals, J, 0,
                                nfev, njev, records, history, return_jacobian)

        scaling = ColumnNormScaling.from_jacobian(J)
        radius = scaling.scaled_norm(x)
        if radius == 0.0:
            radius = 1.0

        qr, qtf = self._factorize(J, residuals)

        if verbose >= 1:
            print(f"[BLM] Starting bounded Levenberg-Marquardt (n={n}, m={m}, "
                  f"maxiter={config.max_iterations})")
            print(f"    Initial cost: {current_cost:.4e}, radius: {radius:.4e}")

        # =========================================================================
        # Iterating
        # =========================================================================
        iteration = 0
        status: Optional[BLMStatus] = None

        while status is None:
            iteration += 1

            lower_permuted = qr.permutation.apply(lower - x)
            upper_permuted = qr.permutation.apply(upper - x)

            solution = self.damping_search.solve(
                qr, qtf, scaling.values, lower_permuted, upper_permuted, radius
            )
            self.lambda_value = solution.lambda_value
            if verbose >= 2:
                print(f"    [BLM] Damping search: lambda={solution.lambda_value:.3e}, "
                      f"|D p|={solution.step_norm:.3e} for radius {radius:.3e}")
            # Rounding in x + (upper - x) must not leave the box
            candidate = np.clip(x + solution.step, lower, upper)
            step = candidate - x

            candidate_residuals = self.cost.evaluate(candidate)
            nfev += 1
            candidate_cost = float(candidate_residuals @ candidate_residuals)
            rejected = candidate_cost > current_cost

            # |f + J p|^2, cost predicted by the linearized model
            linearized = residuals + J @ step
            predicted_cost = float(linearized @ linearized)
            ratio = gain_ratio(current_cost, candidate_cost, predicted_cost)

            mu = None
            if ratio <= 0.25:
                mu = shrink_factor(current_cost, candidate_cost, step, J, residuals)
            radius = update_radius(radius, ratio, mu)

            if verbose >= 1:
                outcome = "rejected" if rejected else "accepted"
                print(f"    [BLM] Iteration {iteration:4d}: cost={candidate_cost:.4e} "
                      f"radius={radius:.3e} lambda={solution.lambda_value:.3e} "
                      f"ratio={ratio:.3f} ({outcome})")

            if history:
                records.append({
                    "iter": iteration,
                    "x": candidate.copy(),
                    "cost": candidate_cost,
                    "accepted": not rejected,
                    "ratio": ratio,
                    "radius": radius,
                    "lambda": solution.lambda_value,
                    "step_norm": solution.step_norm,
                    "rank": qr.rank,
                })

            if not rejected:
                residuals = candidate_residuals
                J = self.cost.jacobian(candidate)
                njev += 1
                scaling = scaling.update(J)
                qr, qtf = self._factorize(J, residuals)

            status = check_termination(
                iteration,
                config.max_iterations,
                radius,
                scaling.scaled_norm(candidate),
                current_cost,
                candidate_cost,
                config.value_tolerance,
                config.cost_tolerance,
            )

            if not rejected:
                x = candidate
                current_cost = candidate_cost
                if current_cost == 0.0 and status is None:
                    status = BLMStatus.ZERO_RESIDUAL

            self.current_position = x
            self.current_value = current_cost
            self.radius = radius

        self.scaling = scaling
        return self._finish(status, x, residuals, J, iteration,
                            nfev, njev, records, history, return_jacobian)

    def _factorize(
        self,
        J: NDArray[np.float64],
        residuals: NDArray[np.float64],
    ) -> Tuple[PivotedQR, NDArray[np.float64]]:
        qr = self.factorizer.factorize(J)
        qtf = qr.qt_apply(residuals)
        if self.config.verbose >= 2:
            print(f"    [BLM] Jacobian rank {qr.rank}/{qr.num_columns}")
        return qr, qtf

    def _finish(
        self,
        status: BLMStatus,
        x: NDArray[np.float64],
        residuals: NDArray[np.float64],
        J: NDArray[np.float64],
        nit: int,
        nfev: int,
        njev: int,
        records: List[Dict[str, Any]],
        history: bool,
        return_jacobian: bool,
    ) -> OptimizeResult:
        cost = float(residuals @ residuals)

        if self.config.verbose >= 0:
            state = "CONVERGED" if status.success else "NOT CONVERGED"
            print(f"[BLM] {state}: {status.message}")
            print(f"    Cost: {cost:.4e}, iterations: {nit}")
            print(f"    Evaluations: {nfev} function, {njev} Jacobian")

        return OptimizeResult(
            x=x.copy(),
            success=status.success,
            status=status,
            message=status.message,
            fun=residuals.copy(),
            cost=cost,
            nfev=nfev,
            njev=njev,
            nit=nit,
            radius=self.radius,
            lambda_value=self.lambda_value,
            history=records if history else None,
            jac=J.copy() if return_jacobian else None,
        )


def solve(
    cost: Union[LeastSquaresCost, Callable[[NDArray[np.float64]], NDArray[np.float64]]],
    x0: ArrayLike,
    *,
    jacobian_fn: Optional[Callable[[NDArray[np.float64]], NDArray[np.float64]]] = None,
    bounds: Optional[Tuple[ArrayLike, ArrayLike]] = None,
    maxiter: int = 500,
    value_tol: float = 1e-8,
    cost_tol: float = 1e-8,
    verbose: int = 0,
    callback: Optional[Callable[[NDArray[np.float64], NDArray[np.float64]], None]] = None,
    history: bool = False,
    return_jacobian: bool = False,
    damping_search: Optional[DampingSearch] = None,
) -> OptimizeResult:
    """Fit parameters by bounded Levenberg-Marquardt least squares.

    Args:
        cost: Either a cost object with evaluate(x) -> residuals and
            jacobian(x) -> (m, n) matrix (e.g. GaussianModelCost), or a
            residual function f(x) -> (m,).
        x0: Initial guess. Array-like of shape (n,).
        jacobian_fn: Optional analytical Jacobian J(x) -> (m, n), used when
            cost is a residual function. If None, finite differences are used.
        bounds: Optional (lower, upper) bounds tuple.
        maxiter: Maximum number of iterations. Default 500.
        value_tol: Step-size stopping threshold. Default 1e-8.
        cost_tol: Relative cost decrease stopping threshold. Default 1e-8.
        verbose: Verbosity level:
            -1: Silent (no output)
             0: Final summary only (default)
             1: Per-iteration output
             2: Full debug (factorization rank)
        callback: Optional function called with (x, f) at each evaluation,
            used when cost is a residual function.
        history: If True, include per-iteration records in the result.
        return_jacobian: If True, include the final Jacobian in the result.
        damping_search: Optional damping search strategy.

    Returns:
        OptimizeResult with fields:
            x: Solution vector
            success: True if a convergence criterion stopped the run
            status: BLMStatus termination reason
            fun: Residual vector at solution
            cost: Sum of squared residuals
            nfev, njev, nit: Evaluation and iteration counts

    Raises:
        ValueError: If x0 is empty, bounds have wrong shape, or jacobian_fn /
            callback is given together with a cost object.

    Example:
        >>> import numpy as np
        >>> from blmfit import solve
        >>> def line(x):
        ...     t = np.linspace(0.0, 1.0, 5)
        ...     return x[0] + x[1] * t - (1.0 + 2.0 * t)
        >>> result = solve(line, [0.0, 0.0], bounds=([-5.0, -5.0], [5.0, 1.5]))
        >>> print(result.x[1])  # 1.5
    """
    if hasattr(cost, "evaluate") and hasattr(cost, "jacobian"):
        if jacobian_fn is not None or callback is not None:
            raise ValueError(
                "jacobian_fn and callback apply to residual functions only, "
                "not to cost objects"
            )
    else:
        cost = ResidualCost(cost, jacobian_fn=jacobian_fn, callback=callback)

    lower, upper = bounds if bounds is not None else (None, None)
    config = OptimizerConfig(
        lower_bounds=lower,
        upper_bounds=upper,
        max_iterations=maxiter,
        value_tolerance=value_tol,
        cost_tolerance=cost_tol,
        verbose=verbose,
    )

    optimizer = BoundedLevenbergMarquardt(cost, config, damping_search=damping_search)
    return optimizer.optimize(x0, history=history, return_jacobian=return_jacobian)
