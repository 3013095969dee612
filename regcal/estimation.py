"""
Naive model fitting for RegCal

Fits the outcome model on the observed (error-prone) covariates:
- Linear regression (OLS)
- Logistic regression
- Cox proportional hazards regression

Any object with a `fit(spec, data) -> CoefficientEstimate` method can be used
in place of StatsmodelsFitter, e.g. to plug in another modelling library or
synthetic estimates in tests.
"""

import numpy as np
import pandas as pd
import statsmodels.api as sm
from statsmodels.tools.sm_exceptions import PerfectSeparationError

from .exceptions import ConfigurationError, NonConvergenceError
from .params import CoefficientEstimate, ModelSpec


class NaiveFitter:
    """Interface for naive model fitters"""

    def fit(self, spec: ModelSpec, data: pd.DataFrame) -> CoefficientEstimate:
        raise NotImplementedError


class StatsmodelsFitter(NaiveFitter):
    """
    Naive fitter backed by statsmodels

    Parameters
    ----------
    maxiter : int, default 100
        Maximum iterations for the logistic and Cox fits
    score_tol : float, default 1e-6
        Largest per-observation score accepted at a Cox solution
    """

    def __init__(self, maxiter: int = 100, score_tol: float = 1e-6):
        self.maxiter = maxiter
        self.score_tol = score_tol

    def fit(self, spec: ModelSpec, data: pd.DataFrame) -> CoefficientEstimate:
        """
        Fit the model in `spec` on complete-case `data`

        Returns
        -------
        CoefficientEstimate
            Coefficients ordered as spec.coef_names, with covariance matrix

        Raises
        ------
        NonConvergenceError
            If the iterative fit fails or produces non-finite estimates
        """
        X = data[list(spec.covariates)].to_numpy(dtype=float)
        fit_method = getattr(self, f'_fit_{spec.family}')

        try:
            # Overflow in a diverging fit shows up as non-finite estimates below
            with np.errstate(over='ignore', divide='ignore', invalid='ignore'):
                params, vcov, converged = fit_method(spec, data, X)
        except (np.linalg.LinAlgError, PerfectSeparationError) as e:
            raise NonConvergenceError(f"{spec.family} fit failed: {e}") from e

        if not converged:
            raise NonConvergenceError(
                f"{spec.family} fit did not converge within {self.maxiter} iterations"
            )
        if not (np.all(np.isfinite(params)) and np.all(np.isfinite(vcov))):
            raise NonConvergenceError(f"{spec.family} fit returned non-finite estimates")

        return CoefficientEstimate(
            names=spec.coef_names,
            coef=params,
            vcov=vcov,
            converged=True
        )

    def _fit_linear(self, spec, data, X):
        y = data[spec.outcomes[0]].to_numpy(dtype=float)
        result = sm.OLS(y, sm.add_constant(X, has_constant='add')).fit()
        return np.asarray(result.params), np.asarray(result.cov_params()), True

    def _fit_logistic(self, spec, data, X):
        y = data[spec.outcomes[0]].to_numpy(dtype=float)
        if not np.isin(y, [0.0, 1.0]).all():
            raise ConfigurationError(
                f"Logistic outcome '{spec.outcomes[0]}' must be coded 0/1"
            )
        model = sm.Logit(y, sm.add_constant(X, has_constant='add'))
        model.raise_on_perfect_prediction = True
        result = model.fit(disp=0, maxiter=self.maxiter, warn_convergence=False)
        converged = bool(result.mle_retvals.get('converged', True))
        return np.asarray(result.params), np.asarray(result.cov_params()), converged

    def _fit_cox(self, spec, data, X):
        time_var, event_var = spec.outcomes
        time = data[time_var].to_numpy(dtype=float)
        event = data[event_var].to_numpy(dtype=float)
        if not np.isin(event, [0.0, 1.0]).all():
            raise ConfigurationError(f"Event indicator '{event_var}' must be coded 0/1")
        if event.sum() == 0:
            raise NonConvergenceError("Cox fit has no events")

        model = sm.PHReg(time, X, status=event)
        result = model.fit(disp=False, maxiter=self.maxiter, warn_convergence=False)
        # PHRegResults does not keep the optimizer's convergence flag
        score = np.asarray(model.score(np.asarray(result.params)))
        converged = bool(np.all(np.isfinite(score))) and (
            np.abs(score).max() <= self.score_tol * len(time)
        )
        return np.asarray(result.params), np.asarray(result.cov_params()), converged
