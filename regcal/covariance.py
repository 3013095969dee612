"""
Covariance decomposition of error-prone covariates

Splits the observed covariance of the error-prone covariates into
within-person (measurement error) and between-person (true signal) parts:

- Within: ANOVA estimator from the replicate measurements of the
  reliability dataset
- Total: sample covariance of the single observations in the main dataset
- Between: Total - Within
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Union

import numpy as np
import pandas as pd
from scipy import linalg

from .exceptions import (ConfigurationError, SingularMatrixError,
                         NonPSDBetweenWarning, NearSingularWarning,
                         WarningCondition)
from .params import CalibrationParameters, ModelSpec, Replicates


def replicate_layout(rep: int,
                     evar: Sequence[str],
                     rvar: Union[Sequence[str], Sequence[Sequence[str]]]) -> Replicates:
    """
    Validate and group the reliability columns by error-prone variable

    Parameters
    ----------
    rep : int
        Number of replicate measurements per variable (>= 2)
    evar : list of str
        Error-prone covariate names
    rvar : list of str, or list of lists
        Reliability column names. Either flat in variable-major,
        replicate-minor order (x1_r1, x1_r2, x2_r1, x2_r2, ...) or
        one list of replicate columns per evar entry.

    Returns
    -------
    Replicates
        Column layout, one list of `rep` columns per variable
    """
    evar = list(evar)
    if isinstance(rep, bool) or not isinstance(rep, (int, np.integer)):
        raise ConfigurationError(f"rep must be an integer, got {rep!r}")
    rep = int(rep)
    if rep < 2:
        raise ConfigurationError(
            f"At least 2 replicates per variable are required, got rep={rep}"
        )
    if not evar:
        raise ConfigurationError("evar is empty")

    rvar = list(rvar)
    nested = bool(rvar) and all(not isinstance(r, str) for r in rvar)

    if nested:
        if len(rvar) != len(evar):
            raise ConfigurationError(
                f"rvar has {len(rvar)} groups but evar has {len(evar)} variables"
            )
        columns = [list(group) for group in rvar]
        for var, group in zip(evar, columns):
            if len(group) != rep:
                raise ConfigurationError(
                    f"Variable '{var}' has {len(group)} replicate columns, expected rep={rep}"
                )
    else:
        if any(not isinstance(r, str) for r in rvar):
            raise ConfigurationError("rvar must be all column names or all lists of column names")
        if len(rvar) != rep * len(evar):
            raise ConfigurationError(
                f"rvar has {len(rvar)} columns; expected rep x len(evar) = "
                f"{rep} x {len(evar)} = {rep * len(evar)}"
            )
        columns = [rvar[i * rep:(i + 1) * rep] for i in range(len(evar))]

    flat = [c for group in columns for c in group]
    if len(set(flat)) != len(flat):
        raise ConfigurationError(f"Duplicate reliability columns in rvar: {flat}")

    return Replicates(rep=rep, evar=evar, columns=columns)


def require_invertible(matrix: np.ndarray, name: str) -> None:
    """Raise SingularMatrixError if `matrix` is rank deficient or non-finite"""
    if not np.all(np.isfinite(matrix)):
        raise SingularMatrixError(f"{name} matrix contains non-finite values", matrix=name)
    rank = np.linalg.matrix_rank(matrix)
    if rank < matrix.shape[0]:
        raise SingularMatrixError(
            f"{name} matrix is singular (rank {rank} < {matrix.shape[0]}); "
            f"drop a redundant variable or reparametrize",
            matrix=name
        )


@dataclass
class CovarianceTriple:
    """
    Total, within and between covariance of the error-prone covariates

    Besides the three matrices the triple carries the main-data moments
    needed to calibrate against error-free covariates.
    """
    evar: List[str]
    total: np.ndarray
    within: np.ndarray
    between: np.ndarray
    mean: np.ndarray  # Main-data means of evar
    error_free: List[str]
    error_free_mean: np.ndarray
    cross: np.ndarray  # Cov(evar, error_free), shape (p, q)
    error_free_cov: np.ndarray  # Cov(error_free), shape (q, q)
    n_main: int = 0
    n_reliability: int = 0

    def attenuation(self) -> np.ndarray:
        """Attenuation matrix Lambda = Between . Total^-1"""
        require_invertible(self.total, 'total')
        # Total is symmetric, so B T^-1 = (T^-1 B)^T
        return np.linalg.solve(self.total, self.between).T

    def joint(self) -> np.ndarray:
        """Covariance of the stacked (error-prone, error-free) covariates"""
        return np.block([
            [self.total, self.cross],
            [self.cross.T, self.error_free_cov]
        ])

    def as_frames(self) -> Dict[str, pd.DataFrame]:
        """Total, within and between as DataFrames labelled by evar"""
        return {
            name: pd.DataFrame(getattr(self, name), index=self.evar, columns=self.evar)
            for name in ('total', 'within', 'between')
        }

    def diagnose(self, params: Optional[CalibrationParameters] = None) -> List[WarningCondition]:
        """Non-fatal data-quality conditions of the decomposition"""
        params = params or CalibrationParameters()
        found = []

        scale = max(1.0, float(np.abs(self.total).max()))
        eig_between = linalg.eigvalsh(self.between)
        if eig_between.min() < -params.psd_tolerance * scale:
            found.append(NonPSDBetweenWarning(
                f"Between-person covariance is not positive semi-definite "
                f"(smallest eigenvalue {eig_between.min():.4g}); "
                f"within-person error exceeds total variation for {self._worst_variable()}"
            ))

        cond = np.linalg.cond(self.total)
        if np.isfinite(cond) and cond > params.near_singular_cond:
            found.append(NearSingularWarning(
                f"Total covariance is near-singular (condition number {cond:.3g})"
            ))

        return found

    def _worst_variable(self) -> str:
        ratio = np.diag(self.between) / np.where(np.diag(self.total) > 0, np.diag(self.total), 1.0)
        return f"'{self.evar[int(np.argmin(ratio))]}'"


def within_covariance(reliability: pd.DataFrame, layout: Replicates) -> np.ndarray:
    """
    Pooled within-person covariance from replicate measurements

    For variables j, k:
        W_jk = sum_i sum_r (x_ijr - xbar_ij)(x_ikr - xbar_ik) / (n * (rep - 1))

    Parameters
    ----------
    reliability : pd.DataFrame
        Reliability data without missing values in the replicate columns
    layout : Replicates
        Replicate columns grouped by variable

    Returns
    -------
    np.ndarray
        Symmetric (p, p) matrix
    """
    n = len(reliability)
    # Shape (n, p, rep)
    values = np.stack(
        [reliability[cols].to_numpy(dtype=float) for cols in layout.columns],
        axis=1
    )
    deviations = values - values.mean(axis=2, keepdims=True)
    within = np.einsum('ijr,ikr->jk', deviations, deviations) / (n * (layout.rep - 1))
    return (within + within.T) / 2


def estimate_covariances(main: pd.DataFrame,
                         reliability: pd.DataFrame,
                         spec: ModelSpec,
                         layout: Replicates,
                         params: Optional[CalibrationParameters] = None) -> CovarianceTriple:
    """
    Estimate the covariance triple from main and reliability data

    Both frames must already be restricted to complete cases.

    Returns
    -------
    CovarianceTriple
    """
    params = params or CalibrationParameters()
    evar = list(spec.evar)
    error_free = list(spec.error_free)

    if list(layout.evar) != evar:
        raise ConfigurationError(
            f"Replicate layout is for {layout.evar}, model evar is {evar}"
        )
    if len(main) < 2:
        raise ConfigurationError(f"Main data needs at least 2 rows, has {len(main)}")
    if len(reliability) < params.min_reliability_subjects:
        raise ConfigurationError(
            f"Reliability data needs at least {params.min_reliability_subjects} subjects, "
            f"has {len(reliability)}"
        )

    within = within_covariance(reliability, layout)

    observed = main[evar + error_free].to_numpy(dtype=float)
    joint = np.atleast_2d(np.cov(observed, rowvar=False, ddof=1))
    means = observed.mean(axis=0)

    p = len(evar)
    total = joint[:p, :p]
    between = total - within

    return CovarianceTriple(
        evar=evar,
        total=total,
        within=within,
        between=between,
        mean=means[:p],
        error_free=error_free,
        error_free_mean=means[p:],
        cross=joint[:p, p:],
        error_free_cov=joint[p:, p:],
        n_main=len(main),
        n_reliability=len(reliability),
    )
