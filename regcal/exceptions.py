"""
Errors and warning conditions raised by RegCal

Fatal conditions derive from RegCalError; non-fatal ones derive from
WarningCondition (a UserWarning) and are attached to results.
"""

import numpy as np


class RegCalError(Exception):
    """Base class for all RegCal errors"""


class ConfigurationError(RegCalError, ValueError):
    """Malformed rep/evar/rvar alignment, missing columns or bad model setup"""


class SingularMatrixError(RegCalError, np.linalg.LinAlgError):
    """A covariance matrix needed for the correction cannot be inverted"""

    def __init__(self, message: str, matrix: str = 'total'):
        super().__init__(message)
        self.matrix = matrix


class NonConvergenceError(RegCalError, RuntimeError):
    """The naive model fit did not converge"""


class InsufficientBootstrapSamplesError(RegCalError, RuntimeError):
    """Too many bootstrap resamples failed to reach the requested count"""

    def __init__(self, message: str, iteration: int = -1, n_discarded: int = 0):
        super().__init__(message)
        self.iteration = iteration
        self.n_discarded = n_discarded


class BootstrapAborted(RegCalError, RuntimeError):
    """The bootstrap run was aborted between iterations"""


class WarningCondition(UserWarning):
    """Base class for non-fatal conditions attached to results"""


class NonPSDBetweenWarning(WarningCondition):
    """Between-person covariance (total - within) is not positive semi-definite"""


class NearSingularWarning(WarningCondition):
    """Total covariance is badly conditioned"""


class ApproximationWarning(WarningCondition):
    """Correction is an approximation for this model family"""


class BootstrapDiscardWarning(WarningCondition):
    """Some bootstrap resamples were discarded and redrawn"""
