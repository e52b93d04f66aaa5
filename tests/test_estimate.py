import pytest
import numpy as np
import pandas as pd
import numpy.testing as npt
import statsmodels.api as sm
from scipy.special import expit
from scipy.stats import t
from sklearn.linear_model import LinearRegression, LogisticRegression
from sklearn.tree import DecisionTreeClassifier

from pytmle import CM, ATE, IATE, NuisanceSpec, NuisanceParameters, tmle, counterfactual_aggregate, TMLEstimator
from pytmle.calc import logit
from pytmle.estimate import TMLEResult
from pytmle.utils import indicator_fns
from pytmle.learners import ConstantRegressor, ConstantClassifier
from pytmle.datasets import linear_continuous_data, joint_treatment_data, missing_outcomes_data


@pytest.fixture
def linear():
    return linear_continuous_data(n=200, seed=123)


@pytest.fixture
def ate_linear():
    return ATE(target='y', treatment={'T': {'case': 1, 'control': 0}}, confounders=['W'])


@pytest.fixture
def iate_4way():
    return IATE(target='y',
                treatment={'t1': {'case': 'CG', 'control': 'CC'},
                           't2': {'case': 'AT', 'control': 'AA'},
                           't3': {'case': 'CC', 'control': 'GG'},
                           't4': {'case': 'TT', 'control': 'AA'}},
                confounders=['w1', 'w2'])


class TestCounterfactualAggregate:

    def test_constant_outcome_model(self, linear, ate_linear):
        res = tmle(ate_linear, NuisanceSpec(Q=ConstantRegressor(), G=ConstantClassifier()), linear, verbosity=0)
        nuisances = NuisanceParameters(H=res.nuisances.H, Q=res.Q)
        npt.assert_array_equal(counterfactual_aggregate(ate_linear, nuisances, linear), np.zeros(200))

    def test_linear_outcome_model(self, linear, ate_linear):
        res = tmle(ate_linear, NuisanceSpec(Q=LinearRegression(), G=LogisticRegression()), linear, verbosity=0)
        nuisances = NuisanceParameters(H=res.nuisances.H, Q=res.Q)
        aggregate = counterfactual_aggregate(ate_linear, nuisances, linear)

        # The encoded treatment column is the indicator of T=0 (the last level is the reference)
        npt.assert_allclose(aggregate, np.repeat(-res.Q.coef_[0], 200), rtol=1e-6)
        npt.assert_allclose(np.mean(aggregate), res.initial_estimate, rtol=1e-8)

    def test_targeted_aggregate(self, linear, ate_linear):
        res = tmle(ate_linear, NuisanceSpec(Q=LinearRegression(), G=LogisticRegression()), linear, verbosity=0)
        aggregate = counterfactual_aggregate(ate_linear, res.nuisances, linear)
        npt.assert_allclose(np.mean(aggregate), res.estimate, rtol=1e-8)

        # The targeting step moves the counterfactual predictions away from the initial outcome regression
        initial = counterfactual_aggregate(ate_linear, NuisanceParameters(H=res.nuisances.H, Q=res.Q), linear)
        assert res.epsilon != 0
        assert not np.allclose(initial, aggregate, rtol=1e-8, atol=0)

    def test_missing_rows_dropped(self, linear, ate_linear):
        res = tmle(ate_linear, NuisanceSpec(Q=ConstantRegressor(), G=ConstantClassifier()), linear, verbosity=0)
        df = linear.copy()
        df.loc[0:9, 'y'] = np.nan
        assert counterfactual_aggregate(ate_linear, res.nuisances, df).shape[0] == 190


class TestTMLE:

    def test_linear_ate(self, linear, ate_linear):
        res = tmle(ate_linear, NuisanceSpec(Q=LinearRegression(), G=LogisticRegression()), linear, verbosity=0)
        # true ATE is 1.5
        npt.assert_allclose(res.estimate, 1.5, atol=0.1)
        npt.assert_allclose(res.mean_inf_curve, 0, atol=1e-8)
        assert res.n == 200
        lcl, ucl = res.confint()
        assert lcl < res.estimate < ucl

    def test_constant_learners_difference_in_means(self, linear, ate_linear):
        res = tmle(ate_linear, NuisanceSpec(Q=ConstantRegressor(), G=ConstantClassifier()), linear, verbosity=0)
        treated = linear['T'] == 1
        expected = np.mean(linear.loc[treated, 'y']) - np.mean(linear.loc[~treated, 'y'])
        npt.assert_allclose(res.estimate, expected, rtol=1e-6)
        npt.assert_allclose(res.initial_estimate, 0, atol=1e-12)

    def test_binary_outcome(self):
        df = joint_treatment_data(n=200, seed=321)
        psi = ATE(target='y', treatment={'t1': {'case': 'CG', 'control': 'CC'}}, confounders=['w1', 'w2'])
        res = tmle(psi, NuisanceSpec(Q=LogisticRegression(), G=LogisticRegression()), df, verbosity=0)
        assert -1 < res.estimate < 1
        npt.assert_allclose(res.mean_inf_curve, 0, atol=1e-5)
        assert res.epsilon is not None

    def test_outcome_predictions_bounded(self):
        # an unpruned tree predicts probabilities of exactly 0 and 1 on its training data
        df = joint_treatment_data(n=200, seed=321)
        psi = ATE(target='y', treatment={'t1': {'case': 'CG', 'control': 'CC'}}, confounders=['w1', 'w2'])
        res = tmle(psi, NuisanceSpec(Q=DecisionTreeClassifier(random_state=0), G=LogisticRegression()), df,
                   verbosity=0)
        assert np.isfinite(res.initial_estimate)
        assert np.isfinite(res.estimate)
        assert np.isfinite(res.stderror)
        assert np.all(np.isfinite(res.inf_curve))
        npt.assert_allclose(res.mean_inf_curve, 0, atol=1e-4)

    def test_error_bound(self):
        df = joint_treatment_data(n=200, seed=321)
        psi = ATE(target='y', treatment={'t1': {'case': 'CG', 'control': 'CC'}}, confounders=['w1', 'w2'])
        with pytest.raises(ValueError):
            tmle(psi, NuisanceSpec(Q=LogisticRegression(), G=LogisticRegression()), df, bound=1.5, verbosity=0)

    def test_float_coded_treatment(self, linear, ate_linear):
        res = tmle(ate_linear, NuisanceSpec(Q=LinearRegression(), G=LogisticRegression()), linear, verbosity=0)
        df = linear.copy()
        df['T'] = pd.Categorical(linear['T'].astype(float), categories=[0.0, 1.0])
        res_float = tmle(ate_linear, NuisanceSpec(Q=LinearRegression(), G=LogisticRegression()), df, verbosity=0)
        assert res_float.epsilon != 0
        npt.assert_allclose(res_float.estimate, res.estimate, rtol=1e-8)
        npt.assert_allclose(res_float.stderror, res.stderror, rtol=1e-8)
        npt.assert_allclose(res_float.initial_estimate, res.initial_estimate, rtol=1e-8)
        assert res_float.parameter is ate_linear

    def test_iate_4way(self, iate_4way):
        df = joint_treatment_data(n=100, seed=123)
        res = tmle(iate_4way, NuisanceSpec(Q=ConstantClassifier(), G=ConstantClassifier()), df, verbosity=0)

        # The signs of the 16 assignments sum to zero
        npt.assert_allclose(res.initial_estimate, 0, atol=1e-12)
        npt.assert_allclose(res.mean_inf_curve, 0, atol=1e-6)
        assert res.n == 100

        # Reference values with constant learners: Q is the outcome frequency, G the joint treatment frequencies
        y = np.asarray(df['y'].astype(bool), dtype=float)
        labels = df[['t1', 't2', 't3', 't4']].astype(str).agg('_&_'.join, axis=1)
        freq = labels.value_counts(normalize=True)
        indicators = indicator_fns(iate_4way)
        offset = np.repeat(logit(np.mean(y)), 100)
        cov = np.array([indicators.get(lb, 0) / freq[lb] for lb in labels])
        glm = sm.GLM(y, cov.reshape(-1, 1), offset=offset, family=sm.families.family.Binomial()).fit()
        eps = glm.params[0]
        estimate = 0
        for lb, sign in indicators.items():
            estimate += sign * expit(offset[0] + eps * sign / max(freq.get(lb, 0), 1e-8))
        ic = cov * (y - expit(offset + eps * cov))
        npt.assert_allclose(res.epsilon, eps, atol=1e-8)
        npt.assert_allclose(res.estimate, estimate, atol=1e-8)
        npt.assert_allclose(res.stderror, np.sqrt(np.var(ic, ddof=1) / 100), atol=1e-8)

        lcl, ucl = res.confint()
        q = t.ppf(0.975, df=99)
        npt.assert_allclose(lcl, res.estimate - q * res.stderror)
        npt.assert_allclose(ucl, res.estimate + q * res.stderror)
        npt.assert_allclose(res.pvalue(), 2 * t.sf(np.abs(res.estimate / res.stderror), df=99))

    def test_iate_ignores_other_levels(self, iate_4way):
        df = joint_treatment_data(n=100, seed=123)
        res = tmle(iate_4way, NuisanceSpec(Q=ConstantClassifier(), G=ConstantClassifier()), df, verbosity=0)
        # rows with TT for t2 or CG for t3 are outside of the contrast
        outside = ((df['t2'] == 'TT') | (df['t3'] == 'CG')).to_numpy()
        assert outside.any()
        npt.assert_allclose(res.inf_curve[outside], res.inf_curve[outside][0])

    def test_missing_values_dropped(self, linear, ate_linear):
        df = linear.copy()
        df.loc[0:4, 'y'] = np.nan
        df.loc[10:14, 'W'] = np.nan
        res = tmle(ate_linear, NuisanceSpec(Q=LinearRegression(), G=LogisticRegression()), df, verbosity=0)
        assert res.n == 190
        assert res.nuisances.n_rows['Q'] == 190

    def test_warn_unobserved_assignment(self, linear):
        df = linear.copy()
        df['T'] = pd.Categorical(df['T'].astype(int), categories=[0, 1, 2])
        psi = ATE(target='y', treatment={'T': {'case': 2, 'control': 0}}, confounders=['W'])
        with pytest.warns(UserWarning, match="no observation has them"):
            tmle(psi, NuisanceSpec(Q=LinearRegression(), G=ConstantClassifier()), df, verbosity=0)

    def test_error_missing_column(self, linear):
        psi = ATE(target='y', treatment={'T': {'case': 1, 'control': 0}}, confounders=['W', 'V'])
        with pytest.raises(ValueError, match="not in the data set"):
            tmle(psi, NuisanceSpec(Q=LinearRegression(), G=LogisticRegression()), linear, verbosity=0)

    def test_error_unknown_level(self, linear):
        psi = ATE(target='y', treatment={'T': {'case': 2, 'control': 0}}, confounders=['W'])
        with pytest.raises(ValueError, match="not a level"):
            tmle(psi, NuisanceSpec(Q=LinearRegression(), G=LogisticRegression()), linear, verbosity=0)

    def test_error_bad_outcome_model(self, linear, ate_linear):
        class NoXY:
            def fit(self, a, b):
                return self

        with pytest.raises(TypeError, match="'fit' function"):
            tmle(ate_linear, NuisanceSpec(Q=NoXY(), G=LogisticRegression()), linear, verbosity=0)

    def test_error_not_a_parameter(self, linear):
        with pytest.raises(ValueError):
            tmle({'target': 'y'}, NuisanceSpec(Q=LinearRegression(), G=LogisticRegression()), linear)


class TestNuisanceReuse:

    @pytest.fixture
    def spec(self):
        return NuisanceSpec(Q=LinearRegression(), G=LogisticRegression())

    def test_reuse_across_parameters(self, linear, ate_linear, spec, capsys):
        nuisances = NuisanceParameters()
        tmle(ate_linear, spec, linear, nuisances=nuisances, verbosity=1)
        Q, G = nuisances.Q, nuisances.G
        captured = capsys.readouterr()
        assert "Fitting outcome model (Q)" in captured.out

        psi = CM(target='y', treatment={'T': 1}, confounders=['W'])
        tmle(psi, spec, linear, nuisances=nuisances, verbosity=1)
        assert nuisances.Q is Q
        assert nuisances.G is G
        captured = capsys.readouterr()
        assert "Reusing previous outcome model (Q)" in captured.out
        assert "Reusing previous treatment model (G)" in captured.out
        assert "Fitting fluctuation (F)" in captured.out

    def test_new_target_refits_outcome_model(self, linear, ate_linear, spec):
        df = linear.copy()
        df['y2'] = df['y'] * 2
        nuisances = NuisanceParameters()
        tmle(ate_linear, spec, df, nuisances=nuisances, verbosity=0)
        Q, G = nuisances.Q, nuisances.G

        tmle(ate_linear.with_target('y2'), spec, df, nuisances=nuisances, verbosity=0)
        assert nuisances.Q is not Q
        assert nuisances.G is G

    def test_new_rows_refit(self, linear, ate_linear, spec):
        nuisances = NuisanceParameters()
        tmle(ate_linear, spec, linear, nuisances=nuisances, verbosity=0)
        Q, G = nuisances.Q, nuisances.G

        tmle(ate_linear, spec, linear.iloc[:150], nuisances=nuisances, verbosity=0)
        assert nuisances.Q is not Q
        assert nuisances.G is not G
        assert nuisances.n_rows['G'] == 150

    def test_new_learner_refit(self, linear, ate_linear, spec):
        nuisances = NuisanceParameters()
        tmle(ate_linear, spec, linear, nuisances=nuisances, verbosity=0)
        G = nuisances.G

        tmle(ate_linear, NuisanceSpec(Q=LinearRegression(), G=LogisticRegression(C=0.5)), linear,
             nuisances=nuisances, verbosity=0)
        assert nuisances.G is not G

    def test_previous_result_keeps_its_fits(self, linear, ate_linear, spec):
        nuisances = NuisanceParameters()
        first = tmle(ate_linear, spec, linear, nuisances=nuisances, verbosity=0)
        tmle(CM(target='y', treatment={'T': 0}, confounders=['W']), spec, linear, nuisances=nuisances, verbosity=0)
        assert first.F is not nuisances.F
        assert first.Q is nuisances.Q

    def test_silent(self, linear, ate_linear, spec, capsys):
        tmle(ate_linear, spec, linear, verbosity=0)
        assert capsys.readouterr().out == ''


class TestTMLEstimator:

    @pytest.fixture
    def queries(self):
        return [ATE(target=None, treatment={'t': {'case': 1, 'control': 0}}),
                CM(target=None, treatment={'t': 1}),
                CM(target=None, treatment={'t': 0})]

    def test_missing_outcomes(self, queries):
        T, W, Y = missing_outcomes_data()
        est = TMLEstimator(Q=ConstantRegressor(), G=ConstantClassifier(), parameters=queries)
        est.fit(T, W, Y)
        assert est.n_rows == {'y1': 90, 'y2': 80}
        assert len(est.results['y1']) == 3
        assert [r.n for r in est.results['y2']] == [80, 80, 80]
        assert est.results['y1'][0].parameter.target == 'y1'
        assert est.results['y1'][0].parameter.confounders == ['w1', 'w2']

    def test_nuisances_not_shared_between_targets(self, queries):
        T, W, Y = missing_outcomes_data()
        est = TMLEstimator(Q=ConstantRegressor(), G=ConstantClassifier(), parameters=queries).fit(T, W, Y)
        assert est.nuisances['y1'] is not est.nuisances['y2']
        assert est.nuisances['y1'].G is not est.nuisances['y2'].G

    def test_single_outcome_vector(self, linear):
        query = ATE(target=None, treatment={'T': {'case': 1, 'control': 0}})
        est = TMLEstimator(Q=LinearRegression(), G=LogisticRegression(), parameters=query)
        est.fit(linear[['T']], linear[['W']], linear['y'].to_numpy())
        assert list(est.results.keys()) == ['y']
        npt.assert_allclose(est.results['y'][0].estimate, 1.5, atol=0.1)

    def test_error_treatment_order(self):
        df = joint_treatment_data()
        query = ATE(target=None, treatment={'t2': {'case': 'AT', 'control': 'AA'},
                                            't1': {'case': 'CG', 'control': 'CC'}})
        est = TMLEstimator(Q=ConstantClassifier(), G=ConstantClassifier(), parameters=query)
        with pytest.raises(ValueError, match="ordering"):
            est.fit(df[['t1', 't2']], df[['w1', 'w2']], df[['y']])

    def test_error_summary_before_fit(self, queries):
        with pytest.raises(ValueError):
            TMLEstimator(Q=ConstantRegressor(), G=ConstantClassifier(), parameters=queries).summary()

    def test_summary(self, queries, capsys):
        T, W, Y = missing_outcomes_data()
        TMLEstimator(Q=ConstantRegressor(), G=ConstantClassifier(), parameters=queries).fit(T, W, Y).summary()
        out = capsys.readouterr().out
        assert out.count('Targeted Minimum Loss-Based Estimator') == 6


class TestTMLEResult:

    @pytest.fixture
    def result(self):
        return TMLEResult(estimate=0.5, inf_curve=[1.0, -2.0, 0.5, 1.5, -1.0], label='example')

    def test_stderror(self, result):
        npt.assert_allclose(result.stderror, np.sqrt(np.var([1.0, -2.0, 0.5, 1.5, -1.0], ddof=1) / 5))
        npt.assert_allclose(result.var(), result.stderror ** 2)

    def test_pvalue(self, result):
        npt.assert_allclose(result.pvalue(), 2 * t.sf(0.5 / result.stderror, df=4))
        assert result.pvalue(test='z') < result.pvalue(test='t')
        with pytest.raises(ValueError):
            result.pvalue(test='chi2')

    def test_confint(self, result):
        lcl, ucl = result.confint(alpha=0.1)
        npt.assert_allclose(ucl - 0.5, 0.5 - lcl)
        npt.assert_allclose(ucl - lcl, 2 * t.ppf(0.95, df=4) * result.stderror)

    def test_name(self, result):
        assert result.name() == 'example'
        assert TMLEResult(estimate=0, inf_curve=[0, 1]).name() == 'Composite'

    def test_error_too_few_observations(self):
        with pytest.raises(ValueError):
            TMLEResult(estimate=0, inf_curve=[1.0])

    def test_summary(self, result, capsys):
        result.summary()
        out = capsys.readouterr().out
        assert 'example' in out
        assert 'Standard error' in out
