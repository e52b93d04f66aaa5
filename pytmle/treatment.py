import copy
import numpy as np
import pandas as pd
from sklearn.preprocessing import OneHotEncoder

# Separator used to build joint treatment labels. Treatment level names are expected to not contain it
JOINT_SEPARATOR = "_&_"


def joint_name(values):
    """Joint label of a single treatment assignment, e.g. ('CC', 'AT') -> 'CC_&_AT'"""
    return JOINT_SEPARATOR.join(str(v) for v in values)


def joint_treatment(T):
    """Collapses the treatment columns into a single categorical joint treatment. Columns are joined in the order
    they appear in T

    Parameters
    ----------
    T : DataFrame
        Treatment columns

    Returns
    -------
    pandas.Series of categorical joint labels, indexed like T
    """
    labels = [joint_name(row) for row in T.itertuples(index=False, name=None)]
    return pd.Series(pd.Categorical(labels), index=T.index, name='joint_treatment')


def treatment_levels(column):
    """Levels of a treatment column. The categories for categorical columns, the sorted unique values otherwise"""
    if isinstance(column.dtype, pd.CategoricalDtype):
        return list(column.cat.categories)
    return sorted(pd.unique(column.dropna()))


def _match_level_(value, levels, name):
    for level in levels:
        if level == value:
            return level
    raise ValueError("'" + str(value) + "' is not a level of treatment '" + str(name) + "'. Levels are " +
                     str(levels))


def align_levels(parameter, T):
    """Copy of the parameter where every case / control level is replaced by the equal level of the treatment column
    in T. Joint labels are then built from the data's own values, so that for instance a level given as 1 matches a
    column coded 1.0.

    Parameters
    ----------
    parameter : CM, ATE, IATE
        Parameter of interest
    T : DataFrame
        Observed treatment columns

    Returns
    -------
    Parameter
    """
    treatment = {}
    for name, spec in parameter.treatment.items():
        levels = treatment_levels(T[name])
        if isinstance(spec, dict):
            treatment[name] = dict((k, _match_level_(v, levels, name)) for k, v in spec.items())
        else:
            treatment[name] = _match_level_(spec, levels, name)
    aligned = copy.copy(parameter)
    aligned.treatment = treatment
    return aligned


def counterfactual_treatment(values, T):
    """Treatment table where every row of T is set to the assignment `values`. Categorical levels of the original
    columns are kept so that encoders fitted on T apply to the counterfactual table.

    Parameters
    ----------
    values : tuple
        One level per treatment column, in the column order of T
    T : DataFrame
        Observed treatment columns

    Returns
    -------
    DataFrame
    """
    if len(values) != T.shape[1]:
        raise ValueError("The counterfactual assignment has " + str(len(values)) + " values but T has " +
                         str(T.shape[1]) + " columns")
    cf = pd.DataFrame(index=T.index)
    for value, name in zip(values, T.columns):
        levels = treatment_levels(T[name])
        if value not in levels:
            raise ValueError("'" + str(value) + "' is not a level of treatment '" + str(name) + "'. Levels are " +
                             str(levels))
        cf[name] = pd.Categorical(np.repeat([value], T.shape[0]), categories=levels)
    return cf


class TreatmentEncoder:
    """One-hot encoding of the treatment columns, used to build the design matrix of the outcome regression. The
    last level of each treatment column is dropped (it is the reference level). This is a thin wrapper around
    sklearn's `OneHotEncoder` where the categories are fixed at `fit()`, so that counterfactual treatment tables
    (where a single level is observed) produce the same columns.

    Encoded columns are named `<treatment>__<level>`

    Examples
    --------
    >>> enc = TreatmentEncoder().fit(T)
    >>> enc.transform(T)
    """
    def __init__(self):
        self.treatments = None
        self.categories = None
        self._encoder = None

    def fit(self, T):
        self.treatments = list(T.columns)
        self.categories = [treatment_levels(T[name]) for name in self.treatments]
        if any(len(levels) == 0 for levels in self.categories):
            raise ValueError("Each treatment column must have at least one level")
        self._encoder = OneHotEncoder(categories=[np.asarray(levels, dtype=object) for levels in self.categories],
                                      drop=[levels[-1] for levels in self.categories],
                                      handle_unknown='error',
                                      sparse_output=False)
        self._encoder.fit(self._as_object_(T))
        return self

    def transform(self, T):
        if self._encoder is None:
            raise ValueError("TreatmentEncoder must be fit before transform")
        if list(T.columns) != self.treatments:
            raise ValueError("The treatment columns " + str(list(T.columns)) + " differ from the columns used to fit "
                             "the encoder " + str(self.treatments))
        return pd.DataFrame(self._encoder.transform(self._as_object_(T)),
                            columns=self.feature_names(),
                            index=T.index)

    def feature_names(self):
        names = []
        for name, levels in zip(self.treatments, self.categories):
            names.extend(str(name) + '__' + str(level) for level in levels[:-1])
        return names

    def get_params(self, deep=True):
        return {}

    def _as_object_(self, T):
        return np.asarray(T.astype(object))


class JointTreatmentClassifier:
    """Treatment mechanism model for one or several categorical treatments. The joint distribution of the
    treatments given the confounders is estimated by fitting a single classifier on the joint treatment label.

    Parameters
    ----------
    model :
        Classifier with the `fit(X, y)` and `predict_proba(X)` attributes (sklearn style). A deep copy is fit

    Examples
    --------
    >>> from sklearn.linear_model import LogisticRegression
    >>> g = JointTreatmentClassifier(LogisticRegression())
    >>> g.fit(W, joint_treatment(T))
    >>> g.predict_density(W, joint_treatment(T))
    """
    def __init__(self, model):
        self.model = model
        self.fitted_model = None
        self.classes_ = None

    def fit(self, X, y):
        fm = copy.deepcopy(self.model)
        try:
            fm.fit(X=np.asarray(X), y=np.asarray(y.astype(str)))
        except TypeError:
            raise TypeError("The treatment model must have the 'fit' function with arguments 'X', 'y'. This "
                            "covers sklearn style classifiers")
        if not hasattr(fm, 'predict_proba'):
            raise ValueError("The treatment model must have the 'predict_proba' attribute")
        self.fitted_model = fm
        self.classes_ = [str(c) for c in fm.classes_]
        return self

    def predict_proba(self, X):
        return np.asarray(self.fitted_model.predict_proba(np.asarray(X)), dtype=float)

    def predict_density(self, X, jointT):
        """Predicted probability of each row's joint treatment label. Labels never observed when fitting get a
        probability of zero
        """
        probs = self.predict_proba(X)
        column = {c: i for i, c in enumerate(self.classes_)}
        density = np.zeros(len(jointT), dtype=float)
        for i, label in enumerate(np.asarray(jointT.astype(str))):
            if label in column:
                density[i] = probs[i, column[label]]
        return density

    def get_params(self, deep=True):
        return {'model': self.model}
