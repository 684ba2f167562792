"""Damping parameter search for the bounded Levenberg-Marquardt step.

For a fixed damping value lambda the bounded step solves

    min |R p + Q^T f|^2 + lambda |D p|^2   subject to   lower <= p <= upper

on the live (rank) columns of the pivoted QR factorization. The search picks
lambda so that the scaled step length |D p| matches the trust region radius.
If the undamped bounded step already lies within the trust region, lambda is
zero and the step is the bounded Gauss-Newton step.

Both the bounded linear least-squares solver and the 1-D minimizer over
lambda are injected strategies (BoundedSubproblem, ScalarMinimizer).
"""

from typing import Callable, NamedTuple, Optional, Protocol

import numpy as np
from numpy.typing import NDArray
from scipy.optimize import lsq_linear, minimize_scalar

from blmfit._qr import PivotedQR


class DampingSolution(NamedTuple):
    """Outcome of the damping search.

    Attributes:
        lambda_value: Selected damping parameter (>= 0).
        step: Bounded step in original parameter order. Shape (n,).
        step_norm: Scaled step length |D step|.
    """

    lambda_value: float
    step: NDArray[np.float64]
    step_norm: float


class BoundedSubproblem(Protocol):
    """Bounded linear least-squares solver for a fixed damping value."""

    def solve(
        self,
        r_live: NDArray[np.float64],
        qtf: NDArray[np.float64],
        d_live: NDArray[np.float64],
        lower: NDArray[np.float64],
        upper: NDArray[np.float64],
        lambda_value: float,
    ) -> NDArray[np.float64]: ...


class ScalarMinimizer(Protocol):
    """Derivative-free minimizer of a function of one bounded variable."""

    def minimize(
        self,
        objective: Callable[[float], float],
        lower: float,
        upper: float,
        initial: float,
        xtol_rel: float,
        ftol_rel: float,
        max_evaluations: int,
    ) -> float: ...


class BVLSSubproblem:
    """Bounded-variable least squares on the lambda-augmented triangular system."""

    def solve(self, r_live, qtf, d_live, lower, upper, lambda_value):
        rank = len(qtf)
        if rank == 0:
            return np.zeros(0)

        A = r_live
        b = -qtf
        if lambda_value > 0.0:
            A = np.vstack([r_live, np.sqrt(lambda_value) * np.diag(d_live)])
            b = np.concatenate([b, np.zeros(rank)])

        res = lsq_linear(A, b, bounds=(lower, upper), method="bvls")
        return np.clip(res.x, lower, upper)


class BrentScalarMinimizer:
    """Bounded Brent search on [lower, upper] (scipy.optimize.minimize_scalar).

    Brent's bounded method brackets the whole interval, so the initial guess
    and the value tolerance are not used.
    """

    def minimize(self, objective, lower, upper, initial, xtol_rel, ftol_rel, max_evaluations):
        width = upper - lower
        if width <= 0.0:
            return float(lower)

        res = minimize_scalar(
            objective,
            bounds=(lower, upper),
            method="bounded",
            options={"xatol": xtol_rel * width, "maxiter": max_evaluations},
        )
        return float(np.clip(res.x, lower, upper))


class DampingSearch:
    """Select lambda so the bounded step length matches the trust region radius.

    Args:
        subproblem: Bounded linear least-squares strategy. Default BVLSSubproblem.
        minimizer: 1-D bounded minimizer over lambda. Default BrentScalarMinimizer.
        xtol_rel: Relative tolerance on lambda. Default 1e-3.
        ftol_rel: Relative tolerance on the squared radius mismatch. Default 1e-3.
        max_evaluations: Evaluation cap of the 1-D search. Default 500.
    """

    def __init__(
        self,
        subproblem: Optional[BoundedSubproblem] = None,
        minimizer: Optional[ScalarMinimizer] = None,
        xtol_rel: float = 1e-3,
        ftol_rel: float = 1e-3,
        max_evaluations: int = 500,
    ):
        self.subproblem = subproblem if subproblem is not None else BVLSSubproblem()
        self.minimizer = minimizer if minimizer is not None else BrentScalarMinimizer()
        self.xtol_rel = xtol_rel
        self.ftol_rel = ftol_rel
        self.max_evaluations = max_evaluations

    def solve(
        self,
        qr: PivotedQR,
        qtf: NDArray[np.float64],
        scaling: NDArray[np.float64],
        lower_permuted: NDArray[np.float64],
        upper_permuted: NDArray[np.float64],
        radius: float,
    ) -> DampingSolution:
        """Compute the damping value and bounded step for one iteration.

        Args:
            qr: Pivoted QR factorization of the Jacobian.
            qtf: First qr.rank components of Q^T f.
            scaling: Scaling vector D in original order. Shape (n,).
            lower_permuted: Lower bounds relative to the current point, pivot order.
            upper_permuted: Upper bounds relative to the current point, pivot order.
            radius: Trust region radius.

        Returns:
            DampingSolution with the step in original parameter order.
        """
        rank = qr.rank
        n = qr.num_columns
        permutation = qr.permutation
        d_permuted = permutation.apply(scaling)

        r_live = qr.live_r
        d_live = d_permuted[:rank]
        lower_live = lower_permuted[:rank]
        upper_live = upper_permuted[:rank]

        def step_at(lambda_value: float) -> NDArray[np.float64]:
            step_permuted = np.zeros(n)
            step_permuted[:rank] = self.subproblem.solve(
                r_live, qtf, d_live, lower_live, upper_live, lambda_value
            )
            return step_permuted

        def radius_gap(lambda_value: float) -> float:
            return float(np.linalg.norm(d_permuted * step_at(lambda_value))) - radius

        undamped = step_at(0.0)
        undamped_norm = float(np.linalg.norm(d_permuted * undamped))
        if undamped_norm - radius <= 0.0:
            return DampingSolution(0.0, permutation.invert(undamped), undamped_norm)

        # More's upper bound |D^-1 J^T f| / radius, evaluated in pivot order
        gradient = qr.rt_apply(qtf)
        upper_lambda = float(np.linalg.norm(gradient / d_permuted)) / radius

        lambda_value = self.minimizer.minimize(
            lambda lam: radius_gap(lam) ** 2,
            0.0,
            upper_lambda,
            upper_lambda / 2.0,
            self.xtol_rel,
            self.ftol_rel,
            self.max_evaluations,
        )

        step_permuted = step_at(lambda_value)
        step_norm = float(np.linalg.norm(d_permuted * step_permuted))
        return DampingSolution(lambda_value, permutation.invert(step_permuted), step_norm)
