"""Pytest fixtures, benchmark residuals and forward models for blmfit testing.

This module provides:
- Benchmark residual functions (with analytical Jacobians) for the optimizer
- Expected solutions and starting points for each benchmark
- Small forward signal models for GaussianModelCost

The optimizer minimizes the sum of squared residuals, so each benchmark is
expressed in residual form where ||residual(x*)||^2 = 0 at the known minimum.
"""

import numpy as np
from numpy.typing import NDArray

from blmfit import Acquisition


# =============================================================================
# Pytest Configuration
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "robustness: mark test as robustness/edge case test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow (run on limited CI matrix)"
    )

# =============================================================================
# Benchmark Residual Functions
# =============================================================================


def rosenbrock_residual(x: NDArray[np.float64]) -> NDArray[np.float64]:
    """2D Rosenbrock in residual form.

    f(x,y) = (1-x)^2 + 100(y-x^2)^2 expressed as residuals
    [10*(y - x^2), 1 - x]. Minimum at (1, 1).
    """
    return np.array([10.0 * (x[1] - x[0] ** 2), 1.0 - x[0]])


def rosenbrock_jacobian(x: NDArray[np.float64]) -> NDArray[np.float64]:
    return np.array([[-20.0 * x[0], 10.0], [-1.0, 0.0]])


def himmelblau_residual(x: NDArray[np.float64]) -> NDArray[np.float64]:
    """Himmelblau's function in residual form (2D).

    f(x,y) = (x^2 + y - 11)^2 + (x + y^2 - 7)^2, one of four minima at (3, 2).
    """
    return np.array([x[0] ** 2 + x[1] - 11.0, x[0] + x[1] ** 2 - 7.0])


def himmelblau_jacobian(x: NDArray[np.float64]) -> NDArray[np.float64]:
    return np.array([[2.0 * x[0], 1.0], [1.0, 2.0 * x[1]]])


def booth_residual(x: NDArray[np.float64]) -> NDArray[np.float64]:
    """Booth's function in residual form (2D).

    f(x,y) = (x + 2y - 7)^2 + (2x + y - 5)^2. Minimum at (1, 3).
    """
    return np.array([x[0] + 2.0 * x[1] - 7.0, 2.0 * x[0] + x[1] - 5.0])


def booth_jacobian(x: NDArray[np.float64]) -> NDArray[np.float64]:
    return np.array([[1.0, 2.0], [2.0, 1.0]])


DECAY_TIMES = np.linspace(0.0, 3.0, 12)


def decay_residual(x: NDArray[np.float64]) -> NDArray[np.float64]:
    """Exponential decay a * exp(-k t) fitted to exact data with a=2, k=1.5."""
    return x[0] * np.exp(-x[1] * DECAY_TIMES) - 2.0 * np.exp(-1.5 * DECAY_TIMES)


def decay_jacobian(x: NDArray[np.float64]) -> NDArray[np.float64]:
    e = np.exp(-x[1] * DECAY_TIMES)
    return np.column_stack([e, -x[0] * DECAY_TIMES * e])


LINE_TIMES = np.linspace(0.0, 1.0, 5)


def line_residual(x: NDArray[np.float64]) -> NDArray[np.float64]:
    """Straight line x0 + x1 t fitted to 1 + 2 t."""
    return x[0] + x[1] * LINE_TIMES - (1.0 + 2.0 * LINE_TIMES)


def line_jacobian(x: NDArray[np.float64]) -> NDArray[np.float64]:
    return np.column_stack([np.ones_like(LINE_TIMES), LINE_TIMES])


# =============================================================================
# Expected Solutions
# =============================================================================

ROSENBROCK_SOLUTION = np.array([1.0, 1.0])
HIMMELBLAU_SOLUTION = np.array([3.0, 2.0])
BOOTH_SOLUTION = np.array([1.0, 3.0])
DECAY_SOLUTION = np.array([2.0, 1.5])


# =============================================================================
# Starting Points
# =============================================================================

ROSENBROCK_X0 = np.array([0.0, 0.0])
HIMMELBLAU_X0 = np.array([2.0, 1.5])  # Start closer to (3, 2) minimum
BOOTH_X0 = np.array([0.0, 0.0])
DECAY_X0 = np.array([1.0, 0.5])


# =============================================================================
# Forward Signal Models
# =============================================================================


class LinearSignalModel:
    """predicted_i = features[i] . x, acquisitions are row indices."""

    def __init__(self, features):
        self.features = np.asarray(features, dtype=np.float64)
        self.parameters = None

    def set_parameters(self, parameters):
        self.parameters = np.asarray(parameters, dtype=np.float64)

    def predicted_signal(self, acquisition):
        return float(self.features[acquisition] @ self.parameters)

    def signal_gradient(self, acquisition):
        return self.features[acquisition].copy()


class ConstantSignalModel:
    """Signal that does not depend on the parameters (zero gradient)."""

    def __init__(self, value, num_parameters):
        self.value = value
        self.num_parameters = num_parameters

    def set_parameters(self, parameters):
        pass

    def predicted_signal(self, acquisition):
        return self.value

    def signal_gradient(self, acquisition):
        return np.zeros(self.num_parameters)


class MonoExponentialModel:
    """Diffusion decay exp(-b * d), with d = x[0] * 1e-3 mm^2/s."""

    def __init__(self):
        self.diffusivity = 0.0

    def set_parameters(self, parameters):
        self.diffusivity = float(parameters[0]) * 1e-3

    def predicted_signal(self, acquisition):
        return float(np.exp(-acquisition.b_value * self.diffusivity))

    def signal_gradient(self, acquisition):
        value = self.predicted_signal(acquisition)
        return np.array([-acquisition.b_value * 1e-3 * value])


B_VALUES = [0.0, 500.0, 1000.0, 1500.0, 2000.0, 3000.0]
DWI_ACQUISITIONS = [Acquisition(b_value=b) for b in B_VALUES]
DWI_NOISE = np.array([0.5, -0.3, 0.4, -0.6, 0.2, -0.1])
DWI_OBSERVED = 100.0 * np.exp(-np.array(B_VALUES) * 1e-3) + DWI_NOISE
