"""Exceptions and warnings raised by the blmfit package.

Fatal conditions derive from BLMError and abort the current evaluation or
optimization run without a partial result. StaleEvaluationWarning is
corrective: the cost function recovers by itself and only reports it.
"""


class BLMError(Exception):
    """Base class for all blmfit errors."""


class DegenerateSignalError(BLMError):
    """Squared norm of the predicted signal vector is below 1e-4."""


class DegenerateVarianceError(BLMError):
    """Estimated noise variance is below 1e-4."""


class UnsupportedCombinationError(BLMError):
    """Derivative requested in a regime that does not define one."""


class StaleEvaluationWarning(UserWarning):
    """Derivative requested at a point other than the last evaluated one."""
