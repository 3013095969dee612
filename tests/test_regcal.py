"""
End-to-end tests for RegCal
"""

import numpy as np
import pandas as pd
import pytest
from regcal import (ApproximationWarning, BootstrapDiscardWarning, CoefficientEstimate,
                    ConfigurationError, InsufficientBootstrapSamplesError, ModelSpec,
                    NaiveFitter, NonConvergenceError, RegCal, SingularMatrixError,
                    StatsmodelsFitter, regcal)

from conftest import simulate


class FixedFitter(NaiveFitter):
    """Returns the same naive estimate for any data"""

    def __init__(self, coef):
        self.coef = coef

    def fit(self, spec, data):
        return CoefficientEstimate(spec.coef_names, self.coef)


class RecordingFitter(StatsmodelsFitter):
    def __init__(self):
        super().__init__()
        self.calls = 0

    def fit(self, spec, data):
        self.calls += 1
        return super().fit(spec, data)


class FailingFitter(NaiveFitter):
    """Fails on resamples whose outcome mean exceeds the full-data mean"""

    def __init__(self, threshold):
        self.threshold = threshold

    def fit(self, spec, data):
        if data['y'].mean() > self.threshold:
            raise NonConvergenceError("simulated failure")
        return StatsmodelsFitter().fit(spec, data)


class FirstCallOnlyFitter(NaiveFitter):
    """Fits the full data, then fails on every bootstrap resample"""

    def __init__(self):
        self.first = True

    def fit(self, spec, data):
        if self.first:
            self.first = False
            return StatsmodelsFitter().fit(spec, data)
        raise NonConvergenceError("resample failed")


class TestLinear:

    def test_attenuated_slope_recovered(self):
        # Within 0.5, between 1.0, true slope 1.0
        main, reliability, rvar = simulate(n=5000, n_rel=2000, rep=3, error_free=False, seed=11)
        result = regcal('linear', 'y ~ x', main, reliability, rep=3, evar=['x'], rvar=rvar)

        assert result.uncorrected.params['x'] == pytest.approx(2 / 3, abs=0.05)
        assert result.corrected.params['x'] == pytest.approx(1.0, abs=0.05)

    def test_with_error_free_covariate(self, linear_data):
        main, reliability, rvar = linear_data
        result = regcal('linear', 'y ~ x + z', main, reliability, rep=2, evar=['x'], rvar=rvar)

        assert result.corrected.names == ['Intercept', 'x', 'z']
        # Naive fit over-credits z, which is correlated with the true x
        assert result.uncorrected.params['z'] > result.corrected.params['z']
        assert result.corrected.params['x'] == pytest.approx(1.0, abs=0.25)
        assert result.corrected.params['z'] == pytest.approx(0.5, abs=0.15)
        assert result.corrected.params['Intercept'] == pytest.approx(1.0, abs=0.15)

    def test_no_measurement_error(self):
        main, reliability, rvar = simulate(within=0.0, n_rel=200)
        result = regcal('linear', 'y ~ x + z', main, reliability, rep=2, evar=['x'], rvar=rvar)

        np.testing.assert_allclose(result.within.to_numpy(), 0.0)
        np.testing.assert_allclose(result.corrected.coef, result.uncorrected.coef,
                                   rtol=1e-8, atol=1e-10)

    def test_result_structure(self, linear_data):
        main, reliability, rvar = linear_data
        result = regcal('linear', 'y ~ x + z', main, reliability, rep=2, evar=['x'], rvar=rvar)

        assert result.uncorrected.vcov.shape == (3, 3)
        assert result.corrected.vcov is None
        assert result.standard_error is None
        assert result.confidence_interval is None
        assert not result.bootstrapped
        assert result.warnings == []

        for name in ('total', 'within', 'between'):
            matrix = getattr(result, name)
            assert list(matrix.index) == ['x']
            assert list(matrix.columns) == ['x']
        np.testing.assert_allclose(result.total, result.within + result.between)

        table = result.to_frame()
        assert list(table.index) == ['Intercept', 'x', 'z']
        assert 'corrected_b' in table.columns
        assert 'corrected_se' not in table.columns

    def test_bootstrap(self, linear_data):
        main, reliability, rvar = linear_data
        result = regcal('linear', 'y ~ x + z', main, reliability, rep=2, evar=['x'], rvar=rvar,
                        bootstrap=True, boot=60, seed=3, n_jobs=2)

        assert result.bootstrapped
        assert result.n_boot == 60
        assert result.draws.shape == (60, 3)
        assert list(result.standard_error.index) == ['Intercept', 'x', 'z']
        assert (result.standard_error > 0).all()
        assert (result.confidence_interval['lower'] < result.confidence_interval['upper']).all()
        assert result.corrected.vcov.shape == (3, 3)
        np.testing.assert_allclose(np.sqrt(np.diag(result.corrected.vcov)), result.standard_error)

        table = result.to_frame()
        for col in ('corrected_se', 'ci_lower', 'ci_upper'):
            assert col in table.columns

    def test_bootstrap_reproducible(self, linear_data):
        main, reliability, rvar = linear_data
        kwargs = dict(rep=2, evar=['x'], rvar=rvar, bootstrap=True, boot=20, seed=9)
        a = regcal('linear', 'y ~ x', main, reliability, n_jobs=1, **kwargs)
        b = regcal('linear', 'y ~ x', main, reliability, n_jobs=3, **kwargs)
        pd.testing.assert_frame_equal(a.draws, b.draws)

    def test_zero_boot_skips_bootstrap(self, linear_data):
        main, reliability, rvar = linear_data
        result = regcal('linear', 'y ~ x', main, reliability, rep=2, evar=['x'], rvar=rvar,
                        bootstrap=True, boot=0)
        assert result.standard_error is None

    def test_bootstrap_se_shrinks_with_sample_size(self):
        def mean_se(n):
            ses = []
            for seed in range(3):
                main, reliability, rvar = simulate(n=n, n_rel=2000, rep=3,
                                                   error_free=False, seed=seed)
                result = regcal('linear', 'y ~ x', main, reliability, rep=3, evar=['x'],
                                rvar=rvar, bootstrap=True, boot=40, seed=seed)
                ses.append(result.standard_error['x'])
            return np.mean(ses)

        assert mean_se(3200) < 0.6 * mean_se(200)

    def test_synthetic_naive_fit(self):
        main, reliability, rvar = simulate(error_free=False)
        result = regcal('linear', 'y ~ x', main, reliability, rep=2, evar=['x'], rvar=rvar,
                        fitter=FixedFitter([0.0, 1.0]))

        lam = result.between.iloc[0, 0] / result.total.iloc[0, 0]
        assert result.corrected.params['x'] == pytest.approx(1.0 / lam)


class TestOtherFamilies:

    def test_logistic(self):
        main, reliability, rvar = simulate(n=3000, n_rel=500, family='logistic',
                                           error_free=False, slope=0.7)
        with pytest.warns(ApproximationWarning):
            result = regcal('logistic', 'y ~ x', main, reliability, rep=2, evar=['x'], rvar=rvar)

        lam = result.between.iloc[0, 0] / result.total.iloc[0, 0]
        assert result.corrected.params['x'] == pytest.approx(result.uncorrected.params['x'] / lam)
        assert abs(result.corrected.params['x']) > abs(result.uncorrected.params['x'])
        assert any(isinstance(w, ApproximationWarning) for w in result.warnings)

    def test_logistic_outcome_must_be_binary(self, linear_data):
        main, reliability, rvar = linear_data
        with pytest.raises(ConfigurationError, match='0/1'):
            regcal('logistic', 'y ~ x', main, reliability, rep=2, evar=['x'], rvar=rvar)

    def test_cox(self):
        main, reliability, rvar = simulate(n=1500, n_rel=500, family='cox', slope=0.5)
        with pytest.warns(ApproximationWarning, match='baseline hazard'):
            result = regcal('cox', 'Surv(time, event) ~ x + z', main, reliability,
                            rep=2, evar=['x'], rvar=rvar)

        assert result.uncorrected.names == ['x', 'z']
        assert result.corrected.names == ['x', 'z']
        assert abs(result.corrected.params['x']) > abs(result.uncorrected.params['x'])
        assert result.corrected.params['x'] == pytest.approx(0.5, abs=0.25)

    def test_cox_bootstrap(self):
        main, reliability, rvar = simulate(n=400, n_rel=200, family='cox', error_free=False)
        with pytest.warns(ApproximationWarning):
            result = regcal('cox', 'Surv(time, event) ~ x', main, reliability,
                            rep=2, evar=['x'], rvar=rvar, bootstrap=True, boot=20, seed=1)
        assert result.standard_error.index.tolist() == ['x']


class TestErrors:

    def test_rvar_mismatch_before_any_work(self, linear_data):
        main, reliability, rvar = linear_data
        fitter = RecordingFitter()
        with pytest.raises(ConfigurationError):
            regcal('linear', 'y ~ x', main, reliability, rep=3, evar=['x'],
                   rvar=rvar + ['x_1', 'x_2'], fitter=fitter)
        assert fitter.calls == 0

    def test_missing_reliability_column(self, linear_data):
        main, reliability, _ = linear_data
        with pytest.raises(ConfigurationError, match='reliability'):
            RegCal(main, reliability, rep=2, evar=['x'], rvar=['x_1', 'x_9'])

    def test_missing_main_column(self, linear_data):
        main, reliability, rvar = linear_data
        with pytest.raises(ConfigurationError, match='main'):
            regcal('linear', 'y ~ x + bmi', main, reliability, rep=2, evar=['x'], rvar=rvar)

    def test_evar_not_in_formula(self, linear_data):
        main, reliability, rvar = linear_data
        with pytest.raises(ConfigurationError):
            regcal('linear', 'y ~ z', main, reliability, rep=2, evar=['x'], rvar=rvar)

    def test_model_spec_evar_mismatch(self, linear_data):
        main, reliability, rvar = linear_data
        spec = ModelSpec('linear', ['y'], ['x', 'z'], ['z'])
        with pytest.raises(ConfigurationError, match='does not match'):
            RegCal(main, reliability, rep=2, evar=['x'], rvar=rvar).estimate(spec, display=False)

    def test_singular_total(self):
        main, reliability, rvar = simulate(n_rel=100, error_free=False)
        main['x_copy'] = main['x']
        reliability['c_1'] = reliability['x_1']
        reliability['c_2'] = reliability['x_2']
        fitter = RecordingFitter()

        with pytest.raises(SingularMatrixError, match='total'):
            regcal('linear', 'y ~ x + x_copy', main, reliability, rep=2, evar=['x', 'x_copy'],
                   rvar=rvar + ['c_1', 'c_2'], fitter=fitter)
        assert fitter.calls == 0

    def test_too_few_rows(self):
        main, reliability, rvar = simulate(n=3, n_rel=20)
        with pytest.raises(ConfigurationError, match='parameters'):
            regcal('linear', 'y ~ x + z', main.iloc[:2], reliability, rep=2, evar=['x'], rvar=rvar)

    def test_missing_rows_dropped(self, linear_data):
        main, reliability, rvar = linear_data
        main = main.copy()
        reliability = reliability.copy()
        main.loc[:9, 'x'] = np.nan
        reliability.loc[:4, 'x_2'] = np.nan

        result = regcal('linear', 'y ~ x + z', main, reliability, rep=2, evar=['x'], rvar=rvar)
        assert result.n_main == len(main) - 10
        assert result.n_reliability == len(reliability) - 5
        assert np.isfinite(result.corrected.coef).all()
        # Caller data untouched
        assert main['x'].isna().sum() == 10

    def test_full_sample_non_convergence(self, linear_data):
        main, reliability, rvar = linear_data
        with pytest.raises(NonConvergenceError):
            regcal('linear', 'y ~ x', main, reliability, rep=2, evar=['x'], rvar=rvar,
                   fitter=FailingFitter(threshold=-np.inf))

    def test_cox_non_convergence_is_fatal_on_full_sample(self):
        main, reliability, rvar = simulate(n=500, n_rel=200, family='cox')
        with pytest.raises(NonConvergenceError):
            regcal('cox', 'Surv(time, event) ~ x + z', main, reliability, rep=2,
                   evar=['x'], rvar=rvar, fitter=StatsmodelsFitter(maxiter=1))

    def test_bootstrap_discards_failed_resamples(self, linear_data):
        main, reliability, rvar = linear_data
        fitter = FailingFitter(threshold=main['y'].mean() + 0.02)
        with pytest.warns(BootstrapDiscardWarning):
            result = regcal('linear', 'y ~ x', main, reliability, rep=2, evar=['x'], rvar=rvar,
                            fitter=fitter, bootstrap=True, boot=30, seed=2, max_retries=50)
        assert result.n_boot == 30
        assert result.n_discarded > 0

    def test_bootstrap_failures_exhaust_budget(self, linear_data):
        main, reliability, rvar = linear_data
        with pytest.raises(InsufficientBootstrapSamplesError):
            regcal('linear', 'y ~ x', main, reliability, rep=2, evar=['x'], rvar=rvar,
                   fitter=FirstCallOnlyFitter(), bootstrap=True, boot=10, seed=0,
                   max_retries=2)


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
