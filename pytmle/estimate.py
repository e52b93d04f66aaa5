import warnings
import numpy as np
import pandas as pd

from pytmle.calc import one_sample_pvalue, one_sample_confint
from pytmle.fluctuation import Fluctuation, fluctuation_input
from pytmle.nuisance import (NuisanceSpec, NuisanceParameters, encoder_key, outcome_key, treatment_key,
                             requires_refit, fit_encoder, fit_outcome_model, fit_treatment_model)
from pytmle.parameters import Parameter
from pytmle.treatment import joint_treatment, counterfactual_treatment, treatment_levels, align_levels
from pytmle.utils import (check_input_data, nomissing, indicator_fns, compute_covariate, outcome_type,
                          binary_outcome, expected_value, compute_offset)


def _log_fit_(verbosity, name):
    if verbosity >= 1:
        print('-> Fitting ' + name)


def _log_reuse_(verbosity, name):
    if verbosity >= 1:
        print('-> Reusing previous ' + name)


def design_matrix(H, T, W):
    """Design matrix of the outcome regression, the encoded treatments followed by the confounders"""
    return pd.concat([H.transform(T), W], axis=1)


def _columns_(parameter):
    return [parameter.target] + parameter.treatments() + list(parameter.confounders)


def _counterfactual_prediction_(parameter, nuisances, T, W, kind, threshold, bound):
    X = design_matrix(nuisances.H, T, W)
    prediction = expected_value(nuisances.Q, X, kind, bound=bound)
    if nuisances.F is None:
        return prediction
    offset = compute_offset(prediction, kind)
    covariate = compute_covariate(joint_treatment(T), W, parameter, nuisances.G, threshold=threshold)
    return nuisances.F.predict_mean(fluctuation_input(covariate, offset))


def counterfactual_aggregate(parameter, nuisances, dataset, threshold=1e-8, bound=0.0005):
    r"""Row-wise plug-in estimate of the parameter. For each treatment assignment of the indicator map, every row
    is set to that assignment, the outcome is predicted, and the predictions are summed with the indicator signs.
    For the ATE this is

    .. math::

        \bar{Q}^*(case, W_i) - \bar{Q}^*(control, W_i)

    Predictions come from the fluctuated model when the fluctuation has been fit, and from the initial outcome
    regression otherwise.

    Parameters
    ----------
    parameter : CM, ATE, IATE
        Parameter of interest
    nuisances : NuisanceParameters
        Container with at least H, Q (and G when F is fit)
    dataset : DataFrame
        Data set containing the target, treatment, and confounder columns. Rows with missing values in those
        columns are ignored
    threshold : float, optional
        Lower bound applied to the predicted treatment densities. Default is 1e-8
    bound : float, list, optional
        Bounds applied to the predicted probabilities of a binary outcome, see `probability_bounds`. Default is
        0.0005

    Returns
    -------
    numpy.array
    """
    data = nomissing(dataset, _columns_(parameter))
    T = data[parameter.treatments()]
    W = data[list(parameter.confounders)]
    kind = outcome_type(data[parameter.target])
    parameter = align_levels(parameter, T)

    aggregate = np.zeros(data.shape[0])
    # keys are the assignments themselves (identity join)
    for assignment, sign in indicator_fns(parameter, join=tuple).items():
        cfT = counterfactual_treatment(assignment, T)
        aggregate += sign * _counterfactual_prediction_(parameter, nuisances, cfT, W, kind, threshold, bound)
    return aggregate


def tmle(parameter, nuisance_spec, dataset, nuisances=None, threshold=1e-8, bound=0.0005, verbosity=1):
    """Targeted minimum loss-based estimation of a CM, ATE, or IATE parameter.

    The procedure is:

    1. Rows with a missing target, treatment, or confounder are dropped
    2. The treatment encoder (H), the outcome regression (Q) and the treatment mechanism (G) are fit, unless the
       nuisances already hold a fit for the same learner, variables, and rows, in which case they are reused
    3. The clever covariate and the offset are calculated, then the fluctuation (F) is fit
    4. The estimate is the mean of the counterfactual aggregate through F. Its standard error is derived from the
       empirical variance of the efficient influence curve

    Note
    ----
    `nuisances` is updated in place. Pass the same instance to successive calls to reuse the nuisance fits that are
    shared between parameters (for instance several treatment contrasts for the same target)

    Parameters
    ----------
    parameter : CM, ATE, IATE
        Parameter of interest
    nuisance_spec : NuisanceSpec
        Learners for Q and G
    dataset : DataFrame
        Data set containing the target, treatment, and confounder columns
    nuisances : NuisanceParameters, optional
        Previously fit nuisance parameters. Default is None, which starts from an empty container
    threshold : float, optional
        Lower bound applied to the predicted treatment densities. Default is 1e-8
    bound : float, list, optional
        Bounds applied to the predicted probabilities of a binary outcome before the logit transformation, so that
        learners predicting exactly 0 or 1 (e.g. decision trees) give a finite offset. See `probability_bounds`.
        Default is 0.0005
    verbosity : int, optional
        0 is silent, 1 reports which nuisance parameters are fit or reused. Default is 1

    Returns
    -------
    TMLEResult

    Examples
    --------
    >>> from sklearn.linear_model import LinearRegression, LogisticRegression
    >>> from pytmle import ATE, NuisanceSpec, tmle
    >>> psi = ATE(target='y', treatment={'t': {'case': 1, 'control': 0}}, confounders=['w'])
    >>> result = tmle(psi, NuisanceSpec(Q=LinearRegression(), G=LogisticRegression()), df)
    >>> result.summary()
    """
    if not isinstance(parameter, Parameter):
        raise ValueError("parameter must be a CM, ATE, or IATE")
    if not isinstance(nuisance_spec, NuisanceSpec):
        raise ValueError("nuisance_spec must be a NuisanceSpec")
    if nuisances is None:
        nuisances = NuisanceParameters()

    # Structural checks happen before any model is fit
    missing = [c for c in _columns_(parameter) if c not in dataset.columns]
    if missing:
        raise ValueError("The following columns are not in the data set: " + str(missing))
    check_input_data(dataset[parameter.treatments()], dataset[list(parameter.confounders)],
                     dataset[[parameter.target]], [parameter])

    data = nomissing(dataset, _columns_(parameter))
    n = data.shape[0]
    T = data[parameter.treatments()]
    W = data[list(parameter.confounders)]
    kind = outcome_type(data[parameter.target])
    y = binary_outcome(data[parameter.target]) if kind == 'binary' else np.asarray(data[parameter.target], dtype=float)
    # Levels of the parameter that are not levels of the treatment columns raise here, before any fit
    aligned = align_levels(parameter, T)
    jointT = joint_treatment(T)
    observed_labels = set(jointT.astype(str))
    unobserved = [label for label in indicator_fns(aligned) if label not in observed_labels]
    if unobserved:
        warnings.warn("The following treatment assignments are levels of the treatment columns but no observation "
                      "has them: " + str(unobserved) + ". Their predicted densities are floored at the threshold "
                      "and their counterfactual predictions rely on the outcome model alone", UserWarning)

    # Treatment encoder
    key = encoder_key(nuisance_spec, parameter) + (tuple(tuple(treatment_levels(T[c])) for c in T.columns), )
    refit_h = requires_refit(nuisances.H_key, key)
    if refit_h:
        _log_fit_(verbosity, 'treatment encoder (H)')
        nuisances.H = fit_encoder(nuisance_spec.H, T)
        nuisances.H_key = key
        nuisances.n_rows['H'] = n
    else:
        _log_reuse_(verbosity, 'treatment encoder (H)')

    # Outcome regression
    X = design_matrix(nuisances.H, T, W)
    key = outcome_key(nuisance_spec, parameter, data.index)
    if refit_h or requires_refit(nuisances.Q_key, key):
        _log_fit_(verbosity, 'outcome model (Q)')
        nuisances.Q = fit_outcome_model(nuisance_spec.Q, X, y.astype(int) if kind == 'binary' else y)
        nuisances.Q_key = key
        nuisances.n_rows['Q'] = n
    else:
        _log_reuse_(verbosity, 'outcome model (Q)')

    # Treatment mechanism
    key = treatment_key(nuisance_spec, parameter, data.index)
    if requires_refit(nuisances.G_key, key):
        _log_fit_(verbosity, 'treatment model (G)')
        nuisances.G = fit_treatment_model(nuisance_spec.G, W, jointT)
        nuisances.G_key = key
        nuisances.n_rows['G'] = n
    else:
        _log_reuse_(verbosity, 'treatment model (G)')

    # The fluctuation is specific to the parameter, it is always fit
    nuisances.F = None
    initial_estimate = np.mean(counterfactual_aggregate(aligned, nuisances, data, threshold=threshold, bound=bound))

    offset = compute_offset(expected_value(nuisances.Q, X, kind, bound=bound), kind)
    covariate = compute_covariate(jointT, W, aligned, nuisances.G, threshold=threshold)
    Xfluct = fluctuation_input(covariate, offset)
    _log_fit_(verbosity, 'fluctuation (F)')
    nuisances.F = Fluctuation(kind).fit(Xfluct, y)
    nuisances.n_rows['F'] = n

    aggregate = counterfactual_aggregate(aligned, nuisances, data, threshold=threshold, bound=bound)
    estimate = np.mean(aggregate)
    observed = nuisances.F.predict_mean(Xfluct)
    inf_curve = covariate * (y - observed) + aggregate - estimate

    return TMLEResult(estimate=estimate, inf_curve=inf_curve, parameter=parameter,
                      initial_estimate=initial_estimate, nuisances=nuisances)


class TMLEResult:
    """Results of TMLE (or of a composition of TMLE results).

    Parameters
    ----------
    estimate : float
        Point estimate
    inf_curve : numpy.array
        Efficient influence curve evaluated at each observation
    parameter : Parameter, optional
        Estimated parameter
    initial_estimate : float, optional
        Plug-in estimate from the initial outcome regression (before the targeting step)
    nuisances : NuisanceParameters, optional
        Nuisance parameters the estimate was computed from
    label : str, optional
        Name used by `summary()`
    """
    def __init__(self, estimate, inf_curve, parameter=None, initial_estimate=None, nuisances=None, label=None):
        self.estimate = float(estimate)
        self.inf_curve = np.asarray(inf_curve, dtype=float)
        self.n = self.inf_curve.shape[0]
        if self.n < 2:
            raise ValueError("At least two observations are needed to estimate the variance of the influence curve")
        self.stderror = np.sqrt(self.var())
        self.mean_inf_curve = float(np.mean(self.inf_curve))
        self.parameter = parameter
        self.initial_estimate = initial_estimate
        self.nuisances = nuisances
        self.label = label
        # References to the fits the estimate came from. The container itself may be updated by later calls
        if nuisances is not None:
            self.Q = nuisances.Q
            self.G = nuisances.G
            self.F = nuisances.F
        else:
            self.Q, self.G, self.F = None, None, None

    @property
    def epsilon(self):
        if self.F is None:
            return None
        return self.F.epsilon

    def var(self):
        """Variance of the estimate, var(IC) / n"""
        return np.var(self.inf_curve, ddof=1) / self.n

    def pvalue(self, test='t'):
        """Two-sided p-value for the null hypothesis that the parameter is zero.

        Parameters
        ----------
        test : str, optional
            't' for a one-sample t-test (n-1 degrees of freedom) or 'z' for the normal approximation. Default is 't'
        """
        return one_sample_pvalue(self.estimate, self.stderror, self.n, test=test)

    def confint(self, alpha=0.05, test='t'):
        """Two-sided (1 - alpha) confidence interval, see `pvalue()` for `test`"""
        return one_sample_confint(self.estimate, self.stderror, self.n, alpha=alpha, test=test)

    def name(self):
        if self.label is not None:
            return self.label
        if self.parameter is not None:
            return type(self.parameter).__name__
        return 'Composite'

    def summary(self, decimal=3, alpha=0.05, test='t'):
        """Prints a summary of the estimate

        Parameters
        ----------
        decimal : int, optional
            Number of decimal places to display. Default is 3
        alpha : float, optional
            Alpha for the confidence interval. Default is 0.05
        test : str, optional
            Test used for the p-value and confidence interval. Default is 't'
        """
        print('======================================================================')
        print('            Targeted Minimum Loss-Based Estimator                     ')
        print('======================================================================')
        fmt = 'Parameter:        {:<15} No. Observations:     {:<20}'
        print(fmt.format(self.name(), self.n))
        if self.parameter is not None:
            fmt = 'Target:           {:<15} Treatment(s):         {:<20}'
            print(fmt.format(str(self.parameter.target), ', '.join(str(t) for t in self.parameter.treatments())))
        print('======================================================================')
        lcl, ucl = self.confint(alpha=alpha, test=test)
        print('Estimate:           ', round(self.estimate, decimal))
        if self.initial_estimate is not None:
            print('Initial estimate:   ', round(float(self.initial_estimate), decimal))
        print('Standard error:     ', round(float(self.stderror), decimal))
        print(str(round(100 * (1 - alpha), 1)) + '% two-sided CI: (' + str(round(lcl, decimal)), ',',
              str(round(ucl, decimal)) + ')')
        print('P-value:            ', round(float(self.pvalue(test=test)), decimal))
        print('Mean influence curve:', '{:.2e}'.format(self.mean_inf_curve))
        print('======================================================================')

    def __repr__(self):
        return ('TMLEResult(' + self.name() + ', estimate=' + str(self.estimate) + ', stderror=' +
                str(self.stderror) + ')')


class TMLEstimator:
    """Estimates one or several treatment contrasts for each of several outcome columns. Each outcome is estimated
    on the rows where that outcome, the treatments, and the confounders are observed. Nuisance parameters are
    shared between the contrasts of an outcome but never between outcomes.

    Parameters
    ----------
    Q :
        Learner for the outcome regression (see `NuisanceSpec`)
    G :
        Learner for the treatment mechanism (see `NuisanceSpec`)
    parameters : Parameter, list
        Treatment contrasts. The target and confounders are assigned at `fit()`, so the target may be None
    threshold : float, optional
        Lower bound applied to the predicted treatment densities. Default is 1e-8
    bound : float, list, optional
        Bounds applied to the predicted probabilities of binary outcomes. Default is 0.0005

    Examples
    --------
    >>> from sklearn.dummy import DummyClassifier, DummyRegressor
    >>> est = TMLEstimator(Q=DummyRegressor(), G=DummyClassifier(),
    >>>                    parameters=ATE(target=None, treatment={'t': {'case': 1, 'control': 0}}))
    >>> est.fit(T, W, Y)
    >>> est.results['y1'][0].estimate
    """
    def __init__(self, Q, G, parameters, threshold=1e-8, bound=0.0005):
        self.spec = NuisanceSpec(Q=Q, G=G)
        if isinstance(parameters, Parameter):
            parameters = [parameters]
        self.parameters = list(parameters)
        self.threshold = threshold
        self.bound = bound

        self.results = {}
        self.nuisances = {}
        self.n_rows = {}

    def fit(self, T, W, Y, verbosity=0):
        """Runs TMLE for every outcome column and every parameter

        Parameters
        ----------
        T : DataFrame
            Treatment columns. Column order must match the order of the treatments in the parameters
        W : DataFrame
            Confounder columns
        Y : DataFrame, Series, array
            Outcome column(s). A vector is treated as a single outcome named 'y'
        verbosity : int, optional
            Verbosity passed to `tmle()`. Default is 0
        """
        T, W, Y = check_input_data(T, W, Y, self.parameters)
        dataset = pd.concat([T.reset_index(drop=True), W.reset_index(drop=True), Y.reset_index(drop=True)], axis=1)

        for target in Y.columns:
            if verbosity >= 1:
                print('Estimating parameters for target: ' + str(target))
            nuisances = NuisanceParameters()
            results = []
            for query in self.parameters:
                parameter = query.with_target(target, confounders=list(W.columns))
                results.append(tmle(parameter, self.spec, dataset, nuisances=nuisances,
                                    threshold=self.threshold, bound=self.bound, verbosity=verbosity))
            self.results[target] = results
            self.nuisances[target] = nuisances
            self.n_rows[target] = nuisances.n_rows['Q']
        return self

    def summary(self, decimal=3, alpha=0.05, test='t'):
        if not self.results:
            raise ValueError("fit() must be called before summary()")
        for target in self.results:
            for result in self.results[target]:
                result.summary(decimal=decimal, alpha=alpha, test=test)
