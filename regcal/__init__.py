"""
RegCal - Regression Calibration for Covariate Measurement Error

A Python package for correcting linear, logistic and Cox regression
coefficients for measurement error in continuous covariates, using a
reliability study with replicate measurements.
"""

from .core import RegCal, RegCalResult, regcal
from .params import (MODEL_FAMILIES, BootstrapParameters, CalibrationParameters,
                     CoefficientEstimate, FamilyParameters, ModelSpec)
from .covariance import CovarianceTriple, estimate_covariances, replicate_layout
from .correction import CORRECTORS, RegressionCalibration
from .estimation import NaiveFitter, StatsmodelsFitter
from .bootstrap import BootstrapEngine, BootstrapResult
from .cleaner import DataCleaner
from .formula import parse_formula
from .exceptions import (RegCalError, ConfigurationError, SingularMatrixError,
                         NonConvergenceError, InsufficientBootstrapSamplesError,
                         BootstrapAborted, WarningCondition, NonPSDBetweenWarning,
                         NearSingularWarning, ApproximationWarning,
                         BootstrapDiscardWarning)

__version__ = "1.0.0"
__all__ = [
    "RegCal",
    "RegCalResult",
    "regcal",
    "MODEL_FAMILIES",
    "FamilyParameters",
    "BootstrapParameters",
    "CalibrationParameters",
    "CoefficientEstimate",
    "ModelSpec",
    "CovarianceTriple",
    "estimate_covariances",
    "replicate_layout",
    "CORRECTORS",
    "RegressionCalibration",
    "NaiveFitter",
    "StatsmodelsFitter",
    "BootstrapEngine",
    "BootstrapResult",
    "DataCleaner",
    "parse_formula",
    "RegCalError",
    "ConfigurationError",
    "SingularMatrixError",
    "NonConvergenceError",
    "InsufficientBootstrapSamplesError",
    "BootstrapAborted",
    "WarningCondition",
    "NonPSDBetweenWarning",
    "NearSingularWarning",
    "ApproximationWarning",
    "BootstrapDiscardWarning",
]
