"""
Parameters and data containers shared across RegCal

- Model family configurations (linear, logistic, cox)
- Bootstrap and calibration settings
- Model specifications and coefficient estimates
"""

import multiprocessing
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd

from .exceptions import ConfigurationError
from .formula import parse_formula


@dataclass(frozen=True)
class FamilyParameters:
    """Model-family specific settings"""
    name: str
    n_outcomes: int  # 1, or 2 for (time, event)
    has_intercept: bool
    approximate: bool  # Correction is approximate rather than exact


# Model family configurations
MODEL_FAMILIES = {
    'linear': FamilyParameters(
        name='linear',
        n_outcomes=1,
        has_intercept=True,
        approximate=False
    ),
    'logistic': FamilyParameters(
        name='logistic',
        n_outcomes=1,
        has_intercept=True,
        approximate=True
    ),
    'cox': FamilyParameters(
        name='cox',
        n_outcomes=2,
        has_intercept=False,
        approximate=True
    ),
}


def get_family(family: str) -> FamilyParameters:
    """Look up a model family by name (case-insensitive)"""
    key = str(family).lower()
    if key not in MODEL_FAMILIES:
        raise ConfigurationError(
            f"Unknown model family: {family}. Available: {list(MODEL_FAMILIES.keys())}"
        )
    return MODEL_FAMILIES[key]


@dataclass
class BootstrapParameters:
    """Settings for the bootstrap engine"""
    n_boot: int = 500
    seed: Optional[int] = None
    max_retries: int = 10  # Redraws allowed per iteration before giving up
    level: float = 0.95  # Confidence level for percentile intervals
    n_jobs: Optional[int] = None  # Worker threads; None -> min(cpu_count, 4)

    def __post_init__(self):
        if self.n_boot < 0:
            raise ConfigurationError(f"n_boot must be >= 0, got {self.n_boot}")
        if self.max_retries < 0:
            raise ConfigurationError(f"max_retries must be >= 0, got {self.max_retries}")
        if not 0 < self.level < 1:
            raise ConfigurationError(f"level must be in (0, 1), got {self.level}")
        if self.n_jobs is not None and self.n_jobs < 1:
            raise ConfigurationError(f"n_jobs must be >= 1, got {self.n_jobs}")

    @property
    def workers(self) -> int:
        if self.n_jobs is None:
            return min(multiprocessing.cpu_count(), 4)
        return self.n_jobs


@dataclass
class CalibrationParameters:
    """Numerical thresholds for the covariance estimator and corrector"""
    near_singular_cond: float = 1e8  # Condition number flagged as near-singular
    psd_tolerance: float = 1e-10  # Relative eigenvalue tolerance for PSD checks
    min_reliability_subjects: int = 2


@dataclass(frozen=True)
class ModelSpec:
    """
    Immutable description of the outcome model

    Parameters
    ----------
    family : str
        'linear', 'logistic' or 'cox'
    outcomes : tuple of str
        Outcome column, or (time, event) columns for cox
    covariates : tuple of str
        All covariates in formula order
    evar : tuple of str
        Error-prone covariates (subset of covariates)
    """
    family: str
    outcomes: Tuple[str, ...]
    covariates: Tuple[str, ...]
    evar: Tuple[str, ...]

    def __post_init__(self):
        params = get_family(self.family)
        object.__setattr__(self, 'family', params.name)
        object.__setattr__(self, 'outcomes', tuple(self.outcomes))
        object.__setattr__(self, 'covariates', tuple(self.covariates))
        object.__setattr__(self, 'evar', tuple(self.evar))

        if len(self.outcomes) != params.n_outcomes:
            raise ConfigurationError(
                f"{params.name} model needs {params.n_outcomes} outcome variable(s), "
                f"got {list(self.outcomes)}"
            )
        if not self.evar:
            raise ConfigurationError("At least one error-prone covariate (evar) is required")
        if len(set(self.evar)) != len(self.evar):
            raise ConfigurationError(f"Duplicate names in evar: {list(self.evar)}")
        missing = [v for v in self.evar if v not in self.covariates]
        if missing:
            raise ConfigurationError(f"evar not among model covariates: {missing}")

    @classmethod
    def from_formula(cls, family: str, formula: str, evar: List[str]) -> 'ModelSpec':
        outcomes, covariates = parse_formula(formula)
        return cls(family=family, outcomes=outcomes, covariates=covariates, evar=evar)

    @property
    def params(self) -> FamilyParameters:
        return MODEL_FAMILIES[self.family]

    @property
    def error_free(self) -> Tuple[str, ...]:
        """Covariates measured without error, in formula order"""
        return tuple(c for c in self.covariates if c not in self.evar)

    @property
    def coef_names(self) -> List[str]:
        """Coefficient names in estimation order"""
        names = list(self.covariates)
        if self.params.has_intercept:
            names.insert(0, 'Intercept')
        return names

    @property
    def columns(self) -> List[str]:
        """Main-data columns used by the model"""
        return list(self.outcomes) + list(self.covariates)


@dataclass
class CoefficientEstimate:
    """Coefficient vector with optional covariance matrix"""
    names: List[str]
    coef: np.ndarray
    vcov: Optional[np.ndarray] = None
    converged: bool = True

    def __post_init__(self):
        self.names = list(self.names)
        self.coef = np.asarray(self.coef, dtype=float)
        if self.coef.shape != (len(self.names),):
            raise ValueError(
                f"Coefficient vector has shape {self.coef.shape}, expected ({len(self.names)},)"
            )
        if self.vcov is not None:
            self.vcov = np.asarray(self.vcov, dtype=float)

    @property
    def params(self) -> pd.Series:
        return pd.Series(self.coef, index=self.names)

    @property
    def se(self) -> Optional[pd.Series]:
        if self.vcov is None:
            return None
        return pd.Series(np.sqrt(np.diag(self.vcov)), index=self.names)

    def index(self, names) -> List[int]:
        """Positions of the given coefficient names"""
        return [self.names.index(n) for n in names]


@dataclass
class Replicates:
    """Reliability-data column layout: one list of replicate columns per evar"""
    rep: int
    evar: List[str]
    columns: List[List[str]] = field(default_factory=list)

    @property
    def flat(self) -> List[str]:
        return [c for cols in self.columns for c in cols]
