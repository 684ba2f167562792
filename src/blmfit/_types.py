"""Public type definitions for the blmfit package.

This module defines the core data structures shared by the optimizer:
- OptimizerConfig: Options recognized by BoundedLevenbergMarquardt
- OptimizeResult: Immutable result container returned by solve()
- BLMStatus: Termination reason of an optimization run
- Acquisition: Convenience descriptor for one measurement setting
"""

from dataclasses import dataclass, field, fields
from enum import IntEnum
from typing import Any, Dict, Iterator, List, NamedTuple, Optional, Tuple

import numpy as np
from numpy.typing import ArrayLike, NDArray


class BLMStatus(IntEnum):
    """Termination reason of a bounded Levenberg-Marquardt run."""

    DEGENERATE_JACOBIAN = 0  # Initial Jacobian numerically zero
    ZERO_RESIDUAL = 1  # Exact fit reached
    STEP_TOLERANCE = 2  # Trust region smaller than value_tolerance * |D x|
    COST_TOLERANCE = 3  # Relative cost decrease below cost_tolerance
    MAX_ITERATIONS = 4  # Iteration cap reached

    @property
    def message(self) -> str:
        """Get descriptive message for this status code."""
        messages = {
            self.DEGENERATE_JACOBIAN: "Jacobian is numerically zero at the initial point",
            self.ZERO_RESIDUAL: "Residual vector is exactly zero",
            self.STEP_TOLERANCE: "Trust region radius is below value_tolerance relative to the scaled parameters",
            self.COST_TOLERANCE: "Relative decrease of the cost is below cost_tolerance",
            self.MAX_ITERATIONS: "Maximum number of iterations reached",
        }
        return messages[self]

    @property
    def success(self) -> bool:
        """Check if this status indicates convergence."""
        return self != BLMStatus.MAX_ITERATIONS


class Acquisition(NamedTuple):
    """Acquisition setting of one measurement (e.g. diffusion b-value and gradient direction)."""

    b_value: float
    gradient: Tuple[float, float, float] = (0.0, 0.0, 1.0)


@dataclass(frozen=True)
class OptimizerConfig:
    """Options of the bounded Levenberg-Marquardt optimizer.

    Attributes:
        lower_bounds: Per-parameter lower bounds. Default None (-inf).
        upper_bounds: Per-parameter upper bounds. Default None (+inf).
        max_iterations: Maximum number of iterations. Default 500.
        value_tolerance: Step-size stopping threshold; the run stops once the
            trust region radius drops below value_tolerance * |D x|. Default 1e-8.
        cost_tolerance: Relative cost decrease stopping threshold. Default 1e-8.
        verbose: Verbosity level (-1=silent, 0=summary, 1=iterations, 2=debug).
    """

    lower_bounds: Optional[ArrayLike] = None
    upper_bounds: Optional[ArrayLike] = None
    max_iterations: int = 500
    value_tolerance: float = 1e-8
    cost_tolerance: float = 1e-8
    verbose: int = 0

    def __post_init__(self) -> None:
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {self.max_iterations}")
        if self.value_tolerance <= 0.0:
            raise ValueError(f"value_tolerance must be positive, got {self.value_tolerance}")
        if self.cost_tolerance <= 0.0:
            raise ValueError(f"cost_tolerance must be positive, got {self.cost_tolerance}")

    def bounds_for(self, n: int) -> Tuple[NDArray[np.float64], NDArray[np.float64]]:
        """Return (lower, upper) bound arrays of length n, validated."""
        lower = _as_bound(self.lower_bounds, n, -np.inf, "lower_bounds")
        upper = _as_bound(self.upper_bounds, n, np.inf, "upper_bounds")

        if np.any(lower >= upper):
            raise ValueError("each lower bound must be strictly less than its upper bound")

        return lower, upper


def _as_bound(value: Optional[ArrayLike], n: int, fill: float, name: str) -> NDArray[np.float64]:
    if value is None:
        return np.full(n, fill)

    bound = np.asarray(value, dtype=np.float64)
    if bound.ndim == 0:
        return np.full(n, float(bound))
    if bound.shape != (n,):
        raise ValueError(f"{name} must have shape ({n},) to match x0, got {bound.shape}")
    return bound.copy()


@dataclass(frozen=True)
class OptimizeResult:
    """Result of blmfit.solve() - immutable container with dict-like access.

    Attributes:
        x: Solution vector. Shape (n,).
        success: True if the run stopped on a convergence criterion.
        status: Termination reason.
        message: Human-readable description of the termination reason.
        fun: Residual vector at the solution. Shape (m,).
        cost: Sum of squared residuals at the solution.
        nfev: Number of residual evaluations.
        njev: Number of Jacobian evaluations.
        nit: Number of iterations performed.
        radius: Final trust region radius.
        lambda_value: Damping parameter of the last iteration.
        history: Optional list of per-iteration records.
        jac: Optional Jacobian at the solution. Shape (m, n).
    """

    x: NDArray[np.float64]
    success: bool
    status: BLMStatus
    message: str
    fun: NDArray[np.float64]
    cost: float
    nfev: int
    njev: int
    nit: int
    radius: float = field(default=0.0)
    lambda_value: float = field(default=0.0)
    history: Optional[List[Dict[str, Any]]] = None
    jac: Optional[NDArray[np.float64]] = None

    def __getitem__(self, key: str) -> object:
        """Enable dict-style access: result['x']."""
        return getattr(self, key)

    def keys(self) -> List[str]:
        """Return list of field names for dict-like iteration."""
        return [f.name for f in fields(self)]

    def __iter__(self) -> Iterator[str]:
        """Iterate over field names."""
        return iter(self.keys())

    def __contains__(self, key: str) -> bool:
        """Check if key is a valid field name."""
        return key in self.keys()
