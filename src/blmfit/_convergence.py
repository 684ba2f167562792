"""Trust region bookkeeping: gain ratio, radius update and stopping tests.

All costs here are squared residual norms |f|^2. The stopping tests follow
More, "The Levenberg-Marquardt algorithm: implementation and theory"
(1978), equations 8.3 and 8.4.
"""

from typing import Optional

import numpy as np
from numpy.typing import NDArray

from blmfit._types import BLMStatus


def gain_ratio(
    current_cost: float,
    candidate_cost: float,
    predicted_cost: float,
) -> float:
    """Ratio of actual to predicted relative reduction of the cost.

    Returns 0 for a rejected step (candidate_cost > current_cost) or when the
    linear model predicts no reduction.
    """
    if candidate_cost > current_cost:
        return 0.0

    denominator = 1.0 - predicted_cost / current_cost
    if denominator <= 0.0:
        return 0.0

    return (1.0 - candidate_cost / current_cost) / denominator


def shrink_factor(
    current_cost: float,
    candidate_cost: float,
    step: NDArray[np.float64],
    jacobian: NDArray[np.float64],
    residuals: NDArray[np.float64],
) -> float:
    """Factor in [0.1, 0.5] applied to the radius after a poor step.

    When the cost increased, mu comes from the minimizer of a quadratic
    interpolating the cost along the step, using the directional derivative
    gamma = step . J^T f / |f|^2 clipped to [-1, 0].
    """
    if candidate_cost > 100.0 * current_cost:
        return 0.1

    if candidate_cost <= current_cost:
        return 0.5

    gamma = float(step @ (jacobian.T @ residuals)) / current_cost
    gamma = min(0.0, max(-1.0, gamma))

    mu = 0.5 * gamma / (gamma + 0.5 * (1.0 - candidate_cost / current_cost))
    return min(0.5, max(0.1, mu))


def update_radius(radius: float, ratio: float, mu: Optional[float] = None) -> float:
    """Grow the radius on good agreement, shrink it by mu on poor agreement."""
    if ratio >= 0.75:
        return 2.0 * radius
    if ratio <= 0.25:
        return (0.5 if mu is None else mu) * radius
    return radius


def check_termination(
    iteration: int,
    max_iterations: int,
    radius: float,
    scaled_x_norm: float,
    current_cost: float,
    candidate_cost: float,
    value_tolerance: float,
    cost_tolerance: float,
) -> Optional[BLMStatus]:
    """Return the termination status of this iteration, or None to continue.

    The iteration cap applies from the first iteration on; the convergence
    tests are skipped on the first iteration.
    """
    if iteration >= max_iterations:
        return BLMStatus.MAX_ITERATIONS

    if iteration == 1:
        return None

    if radius < value_tolerance * scaled_x_norm:
        return BLMStatus.STEP_TOLERANCE

    relative_decrease = (current_cost - candidate_cost) / current_cost
    if 0.0 <= relative_decrease < cost_tolerance:
        return BLMStatus.COST_TOLERANCE

    return None
