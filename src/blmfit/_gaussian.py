"""Gaussian -2 log-likelihood cost over a forward signal model.

The observed signal is modelled as b0 * predicted + Gaussian noise of
variance sigma^2. Both nuisance parameters have closed-form maximum
likelihood estimates given the predicted signal, so the cost function
profiles them out at every evaluation:

    b0      = <observed, predicted> / |predicted|^2
    sigma^2 = (|observed|^2 - b0^2 |predicted|^2) / N

Two regimes turn these estimates into a scalar cost:
- CONDITIONAL: profiled likelihood, the nuisance estimates are plugged in.
- MARGINAL: b0 and sigma^2 are integrated out under a noninformative prior.

Only the conditional regime defines the residual Jacobian used by the
Levenberg-Marquardt optimizer.
"""

import dataclasses
import enum
import math
import warnings
from typing import Any, Optional, Protocol, Sequence

import numpy as np
from numpy.typing import ArrayLike, NDArray
from scipy.special import gammaln

from blmfit._errors import (
    DegenerateSignalError,
    DegenerateVarianceError,
    StaleEvaluationWarning,
    UnsupportedCombinationError,
)

# Below these the predicted signal or the noise variance is considered collapsed
MIN_PREDICTED_SQUARED_NORM = 1e-4
MIN_SIGMA_SQUARE = 1e-4


class ResidualModel(Protocol):
    """Forward model producing a predicted signal for one acquisition."""

    def set_parameters(self, parameters: NDArray[np.float64]) -> None: ...

    def predicted_signal(self, acquisition: Any) -> float: ...

    def signal_gradient(self, acquisition: Any) -> NDArray[np.float64]: ...


class LikelihoodRegime(enum.Enum):
    """How the amplitude and noise variance nuisance parameters are handled."""

    CONDITIONAL = "conditional"
    MARGINAL = "marginal"


@dataclasses.dataclass(frozen=True)
class NuisanceEstimate:
    """Nuisance state tied to one evaluated parameter point."""

    b0: float
    sigma_square: float
    predicted_squared_norm: float
    num_measurements: int


def neg2_log_likelihood(estimate: NuisanceEstimate, regime: LikelihoodRegime) -> float:
    """Return -2 log L for a nuisance estimate.

    Conditional: N (1 + log(2 pi sigma^2)).
    Marginal: -2 log 2 + (N - 1) log pi - 2 log Gamma((N + 1) / 2)
              + (N + 1) log N + log |predicted|^2 + (N + 1) log sigma^2.
    """
    n = estimate.num_measurements
    if regime is LikelihoodRegime.MARGINAL:
        return (
            -2.0 * math.log(2.0)
            + (n - 1.0) * math.log(math.pi)
            - 2.0 * float(gammaln((n + 1.0) / 2.0))
            + (n + 1.0) * math.log(n)
            + math.log(estimate.predicted_squared_norm)
            + (n + 1.0) * math.log(estimate.sigma_square)
        )

    return n * (1.0 + math.log(2.0 * math.pi * estimate.sigma_square))


class GaussianModelCost:
    """Residuals, -2 log-likelihood and Jacobian of a forward model fit.

    Args:
        model: Forward model (see ResidualModel).
        observed: Observed signal values. Shape (N,).
        acquisitions: One acquisition descriptor per observed value.
        regime: Likelihood regime. Default CONDITIONAL.
        initial_sigma_square: Noise variance assumed before the first
            evaluation. Default 1.0.

    The instance holds the nuisance estimates of the last evaluated point and
    is not meant to be shared between optimization runs.
    """

    def __init__(
        self,
        model: ResidualModel,
        observed: ArrayLike,
        acquisitions: Sequence[Any],
        regime: LikelihoodRegime = LikelihoodRegime.CONDITIONAL,
        initial_sigma_square: float = 1.0,
    ):
        observed = np.asarray(observed, dtype=np.float64)
        if observed.ndim != 1 or observed.size == 0:
            raise ValueError("observed must be a non-empty 1-D array")
        if len(acquisitions) != observed.size:
            raise ValueError(
                f"got {observed.size} observed values but {len(acquisitions)} acquisitions"
            )

        self.model = model
        self.observed = observed
        self.acquisitions = list(acquisitions)
        self.regime = LikelihoodRegime(regime)

        self._sigma_square = float(initial_sigma_square)
        self._b0 = 0.0
        self._predicted_squared_norm = 0.0
        self._predicted = np.zeros_like(observed)
        self._residuals = np.zeros_like(observed)
        self._tested_parameters: Optional[NDArray[np.float64]] = None
        self.predicted_jacobian_products: Optional[NDArray[np.float64]] = None

    @property
    def num_measurements(self) -> int:
        return self.observed.size

    @property
    def estimate(self) -> NuisanceEstimate:
        return NuisanceEstimate(
            b0=self._b0,
            sigma_square=self._sigma_square,
            predicted_squared_norm=self._predicted_squared_norm,
            num_measurements=self.num_measurements,
        )

    @property
    def predicted(self) -> NDArray[np.float64]:
        return self._predicted.copy()

    def evaluate(self, parameters: ArrayLike) -> NDArray[np.float64]:
        """Residual vector b0 * predicted - observed at `parameters`.

        Raises:
            DegenerateSignalError: |predicted|^2 < 1e-4.
            DegenerateVarianceError: carried noise variance < 1e-4.
        """
        parameters = np.array(parameters, dtype=np.float64)
        self.model.set_parameters(parameters)

        predicted = np.empty_like(self.observed)
        observed_squared_norm = 0.0
        predicted_squared_norm = 0.0
        observed_predicted_product = 0.0

        for i, acquisition in enumerate(self.acquisitions):
            value = float(self.model.predicted_signal(acquisition))
            observed_squared_norm += self.observed[i] * self.observed[i]
            predicted_squared_norm += value * value
            observed_predicted_product += self.observed[i] * value
            predicted[i] = value

        # State is committed only once both checks pass
        if predicted_squared_norm < MIN_PREDICTED_SQUARED_NORM:
            raise DegenerateSignalError(
                f"null predicted signal vector (squared norm {predicted_squared_norm:.3e})"
            )

        if self._sigma_square < MIN_SIGMA_SQUARE:
            raise DegenerateVarianceError(
                f"estimated noise variance too low ({self._sigma_square:.3e})"
            )

        self._predicted = predicted
        self._predicted_squared_norm = predicted_squared_norm
        self._b0 = observed_predicted_product / predicted_squared_norm
        self._residuals = self._b0 * predicted - self.observed

        n = self.num_measurements
        self._sigma_square = (
            observed_squared_norm - self._b0 * self._b0 * predicted_squared_norm
        ) / n

        self._tested_parameters = parameters
        return self._residuals.copy()

    def current_cost_value(self) -> float:
        """-2 log-likelihood at the last evaluated point."""
        return neg2_log_likelihood(self.estimate, self.regime)

    def value(self, parameters: ArrayLike) -> float:
        """Evaluate at `parameters` and return the -2 log-likelihood."""
        self.evaluate(parameters)
        return self.current_cost_value()

    def jacobian(self, parameters: ArrayLike) -> NDArray[np.float64]:
        """Jacobian of the residuals, shape (N, P).

        The amplitude b0 is held fixed during differentiation:
        J[i, j] = b0 * predicted[i] * g[i, j] - observed[i] * g[i, j].

        Raises:
            UnsupportedCombinationError: marginal regime.
        """
        if self.regime is LikelihoodRegime.MARGINAL:
            raise UnsupportedCombinationError(
                "marginal estimation does not define a Levenberg-Marquardt Jacobian"
            )

        return self._derivative_matrix(parameters)

    def gradient(self, parameters: ArrayLike) -> NDArray[np.float64]:
        """Gradient of the -2 log-likelihood at `parameters`, in either regime."""
        return self.aggregated_gradient(self._derivative_matrix(parameters))

    def _derivative_matrix(self, parameters: ArrayLike) -> NDArray[np.float64]:
        parameters = np.asarray(parameters, dtype=np.float64)
        if self._tested_parameters is None or not np.array_equal(
            self._tested_parameters, parameters
        ):
            warnings.warn(
                "Jacobian not requested at the last evaluated point, evaluating residuals first",
                StaleEvaluationWarning,
                stacklevel=3,
            )
            self.evaluate(parameters)
        else:
            # A failed evaluation may have moved the model elsewhere
            self.model.set_parameters(self._tested_parameters)

        n_params = parameters.size
        jacobian = np.zeros((self.num_measurements, n_params))
        products = np.zeros(n_params)

        for i, acquisition in enumerate(self.acquisitions):
            gradient = np.asarray(self.model.signal_gradient(acquisition), dtype=np.float64)
            jacobian[i, :] = (
                self._b0 * self._predicted[i] * gradient - self.observed[i] * gradient
            )
            products += self._predicted[i] * gradient

        self.predicted_jacobian_products = products
        return jacobian

    def aggregated_gradient(self, jacobian: ArrayLike) -> NDArray[np.float64]:
        """Gradient of the -2 log-likelihood from a Jacobian returned by jacobian()."""
        jacobian = np.asarray(jacobian, dtype=np.float64)
        n = jacobian.shape[0]
        column_sums = jacobian.sum(axis=0)

        if self.regime is LikelihoodRegime.MARGINAL:
            if self.predicted_jacobian_products is None:
                raise UnsupportedCombinationError(
                    "marginal gradient needs the predicted/Jacobian products, use gradient()"
                )
            return 2.0 * (
                self.predicted_jacobian_products / self._predicted_squared_norm
                + (n + 1.0) * self._b0 * column_sums / (n * self._sigma_square)
            )

        return 2.0 * self._b0 * column_sums / self._sigma_square
