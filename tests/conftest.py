"""
Shared synthetic data for RegCal tests
"""

import numpy as np
import pandas as pd
import pytest


def simulate(n=1000, n_rel=500, rep=2, within=0.5, between=1.0, slope=1.0,
             gamma=0.5, family='linear', error_free=True, seed=42):
    """
    Create main and reliability data under the classical error model

    Main data holds the observed x = X + U, an error-free covariate z
    correlated with X, and the outcome. Reliability data holds `rep`
    replicates x_1..x_rep of independent subjects.

    Returns
    -------
    main : pd.DataFrame
    reliability : pd.DataFrame
    rvar : list of str
    """
    rng = np.random.default_rng(seed)

    true_x = rng.normal(0, np.sqrt(between), n)
    z = 0.5 * true_x + rng.normal(0, 1, n)
    main = pd.DataFrame({'x': true_x + rng.normal(0, np.sqrt(within), n)})
    if error_free:
        main['z'] = z
    lin = slope * true_x + (gamma * z if error_free else 0.0)

    if family == 'linear':
        main['y'] = 1.0 + lin + rng.normal(0, 1, n)
    elif family == 'logistic':
        prob = 1 / (1 + np.exp(-(-2.0 + lin)))
        main['y'] = rng.binomial(1, prob)
    elif family == 'cox':
        event_time = rng.exponential(1 / np.exp(lin))
        censor_time = rng.exponential(2.0, n)
        main['time'] = np.minimum(event_time, censor_time)
        main['event'] = (event_time <= censor_time).astype(int)
    else:
        raise ValueError(family)

    rel_x = rng.normal(0, np.sqrt(between), n_rel)
    rvar = [f'x_{r}' for r in range(1, rep + 1)]
    reliability = pd.DataFrame({
        col: rel_x + rng.normal(0, np.sqrt(within), n_rel) for col in rvar
    })

    return main, reliability, rvar


@pytest.fixture
def linear_data():
    return simulate(n=1000, n_rel=500, rep=2)


@pytest.fixture
def two_evar_data():
    """Two correlated error-prone covariates plus one error-free covariate"""
    rng = np.random.default_rng(7)
    n, n_rel, rep = 800, 300, 3

    true_cov = np.array([[1.0, 0.4], [0.4, 2.0]])
    err_cov = np.array([[0.3, 0.1], [0.1, 0.6]])

    true_x = rng.multivariate_normal([1.0, -1.0], true_cov, n)
    observed = true_x + rng.multivariate_normal([0, 0], err_cov, n)
    z = 0.3 * true_x[:, 0] + rng.normal(0, 1, n)
    main = pd.DataFrame({'a': observed[:, 0], 'b': observed[:, 1], 'z': z})
    main['y'] = 0.5 + 1.0 * true_x[:, 0] - 0.5 * true_x[:, 1] + 0.8 * z + rng.normal(0, 1, n)

    rel_x = rng.multivariate_normal([1.0, -1.0], true_cov, n_rel)
    reliability = pd.DataFrame()
    for r in range(1, rep + 1):
        noisy = rel_x + rng.multivariate_normal([0, 0], err_cov, n_rel)
        reliability[f'a_{r}'] = noisy[:, 0]
        reliability[f'b_{r}'] = noisy[:, 1]

    rvar = [f'a_{r}' for r in range(1, rep + 1)] + [f'b_{r}' for r in range(1, rep + 1)]
    return main, reliability, rep, rvar
