"""
Regression-calibration coefficient correction

One corrector per model family, all sharing the contract

    correct(naive, triple) -> corrected

The calibration model is the best linear predictor of the true covariates X
given the observed error-prone covariates W and the error-free covariates Z:

    E[X | W, Z] = a + Lambda_W W + Lambda_Z Z

with [Lambda_W Lambda_Z] = [Between  Cov(W, Z)] . Cov([W, Z])^-1. Without
error-free covariates Lambda_W is the attenuation matrix Between . Total^-1.
Naive coefficients on (W, Z) relate to the true ones by

    beta_W = Lambda_W' beta_X
    beta_Z = beta_Z,true + Lambda_Z' beta_X
    alpha  = alpha_true + a' beta_X

which is inverted to obtain the corrected estimates.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np

from .covariance import CovarianceTriple, require_invertible
from .exceptions import ApproximationWarning, ConfigurationError
from .params import CoefficientEstimate, FamilyParameters, MODEL_FAMILIES


@dataclass
class Calibration:
    """Coefficients of the calibration model E[X | W, Z]"""
    intercept: np.ndarray  # a, shape (p,)
    slopes: np.ndarray  # Lambda_W, shape (p, p)
    error_free: np.ndarray  # Lambda_Z, shape (p, q)


class RegressionCalibration:
    """
    Base corrector

    Subclasses only differ in their family parameters (intercept handling)
    and in whether the correction is exact.
    """

    family: FamilyParameters = MODEL_FAMILIES['linear']

    def calibration(self, triple: CovarianceTriple) -> Calibration:
        """
        Fit the calibration model from the covariance triple

        Raises
        ------
        SingularMatrixError
            If Total, the joint covariate covariance or Lambda_W is singular
        """
        p = len(triple.evar)
        require_invertible(triple.total, 'total')

        if triple.error_free:
            joint = triple.joint()
            require_invertible(joint, 'joint covariate')
            cov_xv = np.hstack([triple.between, triple.cross])
            lam = np.linalg.solve(joint, cov_xv.T).T
        else:
            lam = triple.attenuation()

        slopes = lam[:, :p]
        error_free = lam[:, p:]
        means = np.concatenate([triple.mean, triple.error_free_mean])
        intercept = triple.mean - lam @ means

        require_invertible(slopes, 'calibration slope')
        return Calibration(intercept=intercept, slopes=slopes, error_free=error_free)

    def correct(self, naive: CoefficientEstimate,
                triple: CovarianceTriple,
                calibration: Optional[Calibration] = None) -> CoefficientEstimate:
        """
        Correct naive coefficients for measurement error

        Parameters
        ----------
        naive : CoefficientEstimate
            Coefficients from the model fitted on observed covariates
        triple : CovarianceTriple
            Covariance decomposition for the same data
        calibration : Calibration, optional
            Precomputed calibration model for `triple`

        Returns
        -------
        CoefficientEstimate
            Corrected point estimates (no covariance matrix)
        """
        missing = [n for n in list(triple.evar) + list(triple.error_free)
                   if n not in naive.names]
        if self.family.has_intercept and 'Intercept' not in naive.names:
            missing.insert(0, 'Intercept')
        if missing:
            raise ConfigurationError(f"Naive estimate lacks coefficients for {missing}")

        cal = calibration or self.calibration(triple)
        coef = naive.coef.copy()

        idx_w = naive.index(triple.evar)
        beta_x = np.linalg.solve(cal.slopes.T, naive.coef[idx_w])
        coef[idx_w] = beta_x

        if triple.error_free:
            idx_z = naive.index(triple.error_free)
            coef[idx_z] = naive.coef[idx_z] - cal.error_free.T @ beta_x

        if self.family.has_intercept:
            idx_a = naive.names.index('Intercept')
            coef[idx_a] = naive.coef[idx_a] - cal.intercept @ beta_x

        return CoefficientEstimate(names=naive.names, coef=coef)

    def caveat(self) -> Optional[ApproximationWarning]:
        return None


class LinearCalibration(RegressionCalibration):
    """Exact under the classical measurement-error model"""

    family = MODEL_FAMILIES['linear']


class LogisticCalibration(RegressionCalibration):
    """Approximate: valid for rare outcomes and moderate measurement error"""

    family = MODEL_FAMILIES['logistic']

    def caveat(self) -> Optional[ApproximationWarning]:
        return ApproximationWarning(
            "Logistic regression calibration is an approximation; it assumes a rare "
            "outcome and measurement error that is not severe"
        )


class CoxCalibration(RegressionCalibration):
    """Corrects log-hazard ratios; the baseline hazard is left uncorrected"""

    family = MODEL_FAMILIES['cox']

    def caveat(self) -> Optional[ApproximationWarning]:
        return ApproximationWarning(
            "Cox regression calibration is an approximation; it assumes a rare event "
            "and modest measurement error, and the baseline hazard is not corrected"
        )


CORRECTORS = {
    'linear': LinearCalibration(),
    'logistic': LogisticCalibration(),
    'cox': CoxCalibration(),
}


def get_corrector(family: str) -> RegressionCalibration:
    key = str(family).lower()
    if key not in CORRECTORS:
        raise ConfigurationError(
            f"No corrector for family: {family}. Available: {list(CORRECTORS.keys())}"
        )
    return CORRECTORS[key]
