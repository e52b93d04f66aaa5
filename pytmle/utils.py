import itertools
import numpy as np
import pandas as pd

from pytmle.calc import logit, plateau, probability_bounds
from pytmle.parameters import CM, ATE, IATE
from pytmle.treatment import joint_name


def check_input_data(T, W, Y, parameters=()):
    """Background function that checks the treatments, confounders, and outcomes before any model is fit. A single
    outcome vector is converted into a table with a single column named 'y'.

    Parameters
    ----------
    T : DataFrame
        Treatment columns
    W : DataFrame
        Confounder columns
    Y : DataFrame, Series, array
        Outcome column(s)
    parameters : list, optional
        Parameters (or treatment queries) that will be estimated from T

    Returns
    -------
    T, W, Y as DataFrames
    """
    if not isinstance(T, pd.DataFrame):
        raise ValueError("T must be a pandas DataFrame")
    if not isinstance(W, pd.DataFrame):
        raise ValueError("W must be a pandas DataFrame")
    if not isinstance(Y, pd.DataFrame):
        Y = pd.DataFrame({'y': np.asarray(Y)}, index=T.index if len(T.index) == len(Y) else None)

    if not (T.shape[0] == W.shape[0] == Y.shape[0]):
        raise ValueError("T, W and Y must have the same number of observations (rows)")

    # Column labels must be pairwise disjoint
    for (name_a, a), (name_b, b) in ((('T', T), ('W', W)), (('W', W), ('Y', Y)), (('T', T), ('Y', Y))):
        shared = [c for c in a.columns if c in set(b.columns)]
        if shared:
            raise ValueError(name_a + " and " + name_b + " share some column names: " + str(shared))

    # Treatment names and their ordering must match T
    for parameter in parameters:
        if parameter.treatments() != list(T.columns):
            raise ValueError("The variables in T and one of the parameters seem to differ, please use the same "
                             "variable names. \n Hint: The ordering in the parameters and T should match.")

    return T, W, Y


def nomissing(table, columns):
    """Subset of `table[columns]` with no missing values in any of the columns"""
    missing = [c for c in columns if c not in table.columns]
    if missing:
        raise ValueError("The following columns are not in the data set: " + str(missing))
    return table.loc[:, list(columns)].dropna()


###############################################################################
# Indicators and clever covariate

def _cm_indicators(parameter, join):
    return {join(parameter.case()): 1}


def _ate_indicators(parameter, join):
    return {join(parameter.case()): 1,
            join(parameter.control()): -1}


def _iate_indicators(parameter, join):
    levels = list(parameter.treatment.values())
    k = len(levels)
    indicators = {}
    for is_case in itertools.product((True, False), repeat=k):
        assignment = tuple(lv['case'] if c else lv['control'] for lv, c in zip(levels, is_case))
        indicators[join(assignment)] = (-1) ** (k - sum(is_case))
    return indicators


_INDICATORS = {CM: _cm_indicators,
               ATE: _ate_indicators,
               IATE: _iate_indicators}


def indicator_fns(parameter, join=joint_name):
    """Signed indicator map of the parameter, from joint treatment label to weight.

    * CM: the case assignment has weight 1
    * ATE: the case assignment has weight 1 and the control assignment weight -1
    * IATE: each of the 2^k case/control assignments has weight (-1)^(k - number of case levels)

    Parameters
    ----------
    parameter : CM, ATE, IATE
        Parameter of interest
    join : function, optional
        Function building a joint label from a tuple of levels. Default is `joint_name`

    Returns
    -------
    dict
    """
    try:
        builder = _INDICATORS[type(parameter)]
    except KeyError:
        raise ValueError("Indicators are only defined for CM, ATE and IATE parameters, not " +
                         type(parameter).__name__)
    return builder(parameter, join)


def indicator_values(indicators, jointT):
    """Weight of each observation. Joint labels that are not in `indicators` get a weight of zero, these rows are
    outside of the contrast
    """
    labels = pd.Series(np.asarray(jointT).astype(str))
    return np.asarray(labels.map(indicators).fillna(0), dtype=float)


def compute_covariate(jointT, W, parameter, G, threshold=0.005):
    r"""Calculates the 'clever covariate' of the parameter

    .. math::

        H(T, W) = \frac{I(T, W)}{\max(g(T|W), \delta)}

    where :math:`I` are the signed indicators of the parameter and :math:`\delta` is the threshold. Truncating the
    density keeps the inverse probability weights bounded under near positivity violations.

    Parameters
    ----------
    jointT : Series
        Joint treatment labels
    W : DataFrame
        Confounders
    parameter : CM, ATE, IATE
        Parameter of interest
    G : JointTreatmentClassifier
        Fitted treatment mechanism
    threshold : float, optional
        Lower bound applied to the predicted densities. Default is 0.005
    """
    covariate = indicator_values(indicator_fns(parameter, joint_name), jointT)
    density = plateau(np.asarray(G.predict_density(W, jointT), dtype=float), threshold)
    return covariate / density


###############################################################################
# Outcomes and offset

def outcome_type(y):
    """'binary' for categorical, boolean, or string outcomes with at most two levels and 'continuous' for numeric
    outcomes
    """
    if (isinstance(y.dtype, pd.CategoricalDtype) or pd.api.types.is_bool_dtype(y) or
            pd.api.types.is_object_dtype(y) or pd.api.types.is_string_dtype(y)):
        if len(_binary_levels_(y)) > 2:
            raise ValueError("Unsupported outcome type: the outcome '" + str(y.name) + "' has more than two levels. "
                             "Only binary and continuous outcomes are supported")
        return 'binary'
    elif pd.api.types.is_numeric_dtype(y):
        return 'continuous'
    else:
        raise ValueError("Unsupported outcome type for '" + str(y.name) + "': " + str(y.dtype))


def _binary_levels_(y):
    if isinstance(y.dtype, pd.CategoricalDtype):
        return list(y.cat.categories)
    if pd.api.types.is_bool_dtype(y):
        return [False, True]
    return sorted(pd.unique(y.dropna()))


def binary_outcome(y):
    """Float 0/1 coding of a binary outcome, where 1 is the second level"""
    levels = _binary_levels_(y)
    if len(levels) < 2:
        return np.zeros(y.shape[0], dtype=float)
    return np.asarray(y == levels[1], dtype=float)


def expected_value(Q, X, kind, bound=None):
    """Predicted mean of the outcome from a fitted outcome model. For binary outcomes this is the predicted
    probability of the second level, optionally bounded to [bound, 1 - bound] (see `probability_bounds`) so that
    its logit is finite
    """
    X = np.asarray(X)
    if kind == 'binary' and hasattr(Q, 'predict_proba'):
        pred = np.asarray(Q.predict_proba(X), dtype=float)
        if pred.ndim == 2:
            classes = list(getattr(Q, 'classes_', [0, 1]))
            pred = pred[:, classes.index(1)] if 1 in classes else np.zeros(X.shape[0])
        return pred if bound is None else probability_bounds(pred.copy(), bounds=bound)
    elif hasattr(Q, 'predict'):
        return np.asarray(Q.predict(X), dtype=float)
    else:
        raise ValueError("The outcome model must have 'predict' or 'predict_proba' attribute")


_OFFSETS = {'binary': logit,
            'continuous': lambda v: v}


def compute_offset(prediction, kind):
    """Offset of the fluctuation submodel, on the scale of the outcome's natural link. The logit of the predicted
    probability for binary outcomes and the predicted mean for continuous outcomes
    """
    try:
        link = _OFFSETS[kind]
    except KeyError:
        raise ValueError("Unsupported outcome type for the offset: '" + str(kind) + "'")
    return link(np.asarray(prediction, dtype=float))
