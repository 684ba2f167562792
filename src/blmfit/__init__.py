"""blmfit: bounded Levenberg-Marquardt least-squares fitting with Gaussian model costs."""

try:
    from blmfit._version import __version__
except ImportError:
    __version__ = "0.1.0"

from blmfit._core import BoundedLevenbergMarquardt, solve
from blmfit._cost import LeastSquaresCost, ResidualCost
from blmfit._damping import (
    BoundedSubproblem,
    BrentScalarMinimizer,
    BVLSSubproblem,
    DampingSearch,
    DampingSolution,
    ScalarMinimizer,
)
from blmfit._errors import (
    BLMError,
    DegenerateSignalError,
    DegenerateVarianceError,
    StaleEvaluationWarning,
    UnsupportedCombinationError,
)
from blmfit._gaussian import (
    GaussianModelCost,
    LikelihoodRegime,
    NuisanceEstimate,
    ResidualModel,
    neg2_log_likelihood,
)
from blmfit._permutation import Permutation
from blmfit._qr import PivotedQR, RankRevealingQR
from blmfit._types import Acquisition, BLMStatus, OptimizeResult, OptimizerConfig

__all__ = [
    "__version__",
    "solve",
    "BoundedLevenbergMarquardt",
    "OptimizerConfig",
    "OptimizeResult",
    "BLMStatus",
    "Acquisition",
    "LeastSquaresCost",
    "ResidualCost",
    "GaussianModelCost",
    "LikelihoodRegime",
    "NuisanceEstimate",
    "ResidualModel",
    "neg2_log_likelihood",
    "RankRevealingQR",
    "PivotedQR",
    "Permutation",
    "DampingSearch",
    "DampingSolution",
    "BoundedSubproblem",
    "BVLSSubproblem",
    "ScalarMinimizer",
    "BrentScalarMinimizer",
    "BLMError",
    "DegenerateSignalError",
    "DegenerateVarianceError",
    "UnsupportedCombinationError",
    "StaleEvaluationWarning",
]
