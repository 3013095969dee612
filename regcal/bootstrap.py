"""
Nonparametric bootstrap for corrected coefficients

Each iteration resamples the main and reliability datasets independently
(with replacement, same sizes), reruns the full correction pipeline and
records the corrected coefficients. Standard errors are the sample standard
deviation of the draws; confidence intervals use the percentile method.

Iterations are independent and run on a thread pool. Every iteration draws
from its own child SeedSequence, so results do not depend on the number of
workers or on scheduling order.
"""

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

import numpy as np
import pandas as pd

from .exceptions import (BootstrapAborted, ConfigurationError,
                         InsufficientBootstrapSamplesError, NonConvergenceError,
                         SingularMatrixError)
from .params import BootstrapParameters


# Failures that discard a single resample instead of aborting the run
RESAMPLE_ERRORS = (NonConvergenceError, SingularMatrixError, ConfigurationError)


@dataclass
class BootstrapResult:
    """Aggregated bootstrap distribution of the corrected coefficients"""
    names: List[str]
    draws: np.ndarray  # Shape (B, K)
    standard_error: np.ndarray
    confidence_interval: np.ndarray  # Shape (K, 2)
    vcov: np.ndarray
    level: float
    n_discarded: int = 0

    @property
    def n_boot(self) -> int:
        return self.draws.shape[0]

    def se_series(self) -> pd.Series:
        return pd.Series(self.standard_error, index=self.names)

    def ci_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.confidence_interval, index=self.names,
                            columns=['lower', 'upper'])


def summarize_draws(draws: np.ndarray, level: float = 0.95
                    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Standard errors, percentile intervals and covariance of bootstrap draws

    Parameters
    ----------
    draws : np.ndarray
        Bootstrap draws of shape (B, K)
    level : float, default 0.95
        Confidence level

    Returns
    -------
    se : np.ndarray
        Sample standard deviations (ddof=1); NaN when B == 1
    ci : np.ndarray
        (K, 2) array of lower/upper percentiles
    vcov : np.ndarray
        (K, K) sample covariance; NaN when B == 1
    """
    draws = np.atleast_2d(np.asarray(draws, dtype=float))
    B, K = draws.shape
    if not np.isfinite(draws).all():
        raise ValueError("Non-finite bootstrap draws")

    alpha = 1 - level
    ci = np.percentile(draws, [100 * alpha / 2, 100 * (1 - alpha / 2)], axis=0).T

    if B < 2:
        return np.full(K, np.nan), ci, np.full((K, K), np.nan)

    se = np.std(draws, axis=0, ddof=1)
    vcov = np.atleast_2d(np.cov(draws, rowvar=False, ddof=1))
    return se, ci, vcov


class BootstrapEngine:
    """
    Runs the correction pipeline on bootstrap resamples

    Parameters
    ----------
    params : BootstrapParameters
        Iteration count, seed, retry bound, confidence level and workers

    Failure policy
    --------------
    A resample whose pipeline raises NonConvergenceError, SingularMatrixError
    or ConfigurationError is discarded and redrawn from the same iteration's
    random stream. After `max_retries` redraws the iteration gives up and the
    run fails with InsufficientBootstrapSamplesError.
    """

    def __init__(self, params: Optional[BootstrapParameters] = None):
        self.params = params or BootstrapParameters()
        self._abort = threading.Event()

    def abort(self):
        """Stop the bootstrap before its next iteration; the engine stays aborted"""
        self._abort.set()

    def run(self,
            pipeline: Callable[[pd.DataFrame, pd.DataFrame], np.ndarray],
            main: pd.DataFrame,
            reliability: pd.DataFrame,
            names: List[str]) -> BootstrapResult:
        """
        Run B bootstrap iterations

        Parameters
        ----------
        pipeline : callable
            Takes (main, reliability) resamples and returns the corrected
            coefficient vector
        main, reliability : pd.DataFrame
            Complete-case datasets; never modified
        names : list of str
            Coefficient names, in the order returned by `pipeline`

        Returns
        -------
        BootstrapResult
        """
        n_boot = self.params.n_boot
        if n_boot < 1:
            raise ConfigurationError(f"Bootstrap needs n_boot >= 1, got {n_boot}")

        streams = np.random.SeedSequence(self.params.seed).spawn(n_boot)
        draws = np.empty((n_boot, len(names)))
        discarded = np.zeros(n_boot, dtype=int)

        workers = min(self.params.workers, n_boot)
        if workers == 1:
            for i, stream in enumerate(streams):
                draws[i], discarded[i] = self._iterate(i, stream, pipeline, main, reliability)
        else:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = {
                    executor.submit(self._iterate, i, stream, pipeline, main, reliability): i
                    for i, stream in enumerate(streams)
                }
                try:
                    for future in as_completed(futures):
                        i = futures[future]
                        draws[i], discarded[i] = future.result()
                except BaseException:
                    # Stop queued iterations before propagating
                    self._abort.set()
                    for future in futures:
                        future.cancel()
                    raise

        se, ci, vcov = summarize_draws(draws, self.params.level)
        return BootstrapResult(
            names=list(names),
            draws=draws,
            standard_error=se,
            confidence_interval=ci,
            vcov=vcov,
            level=self.params.level,
            n_discarded=int(discarded.sum())
        )

    def _iterate(self, i: int, stream: np.random.SeedSequence, pipeline,
                 main: pd.DataFrame, reliability: pd.DataFrame) -> Tuple[np.ndarray, int]:
        """One bootstrap iteration with bounded redraws"""
        rng = np.random.default_rng(stream)
        n_main, n_rel = len(main), len(reliability)
        last_error = None

        for attempt in range(self.params.max_retries + 1):
            if self._abort.is_set():
                raise BootstrapAborted(f"Bootstrap aborted before iteration {i + 1}")

            main_idx = rng.integers(0, n_main, size=n_main)
            rel_idx = rng.integers(0, n_rel, size=n_rel)
            try:
                coef = pipeline(
                    main.iloc[main_idx].reset_index(drop=True),
                    reliability.iloc[rel_idx].reset_index(drop=True)
                )
            except RESAMPLE_ERRORS as e:
                last_error = e
                continue
            return np.asarray(coef, dtype=float), attempt

        raise InsufficientBootstrapSamplesError(
            f"Bootstrap iteration {i + 1} failed on {self.params.max_retries + 1} "
            f"consecutive resamples; last error: {last_error}",
            iteration=i + 1,
            n_discarded=self.params.max_retries + 1
        )
