import numpy as np
import pandas as pd
import statsmodels.api as sm
from sklearn.base import BaseEstimator


def _check_xy_(X, y, name):
    if X.shape[0] != y.shape[0]:
        raise ValueError("X and y must have the same number of observations (rows).")
    if pd.isnull(X).any() or pd.isnull(y).any():
        raise ValueError("It looks like there is missing values in X or y. " + name + " does not support "
                         "missing data.")


class ConstantRegressor(BaseEstimator):
    """Empirical mean estimator in the format of SciKit learn. The prediction ignores the covariates, so this is a
    baseline learner for the outcome regression.

    Examples
    --------
    >>> from pytmle.learners import ConstantRegressor
    >>> emp_mean = ConstantRegressor()
    >>> emp_mean.fit(X=X, y=y)
    >>> emp_mean.predict(X=X)
    """

    def __init__(self):
        self.empirical_mean = np.nan

    def fit(self, X, y):
        """Estimate the empirical mean of y. X has no effect on the estimate

        Parameters
        ----------
        X : numpy.array
            Training data
        y : numpy.array
            Target values
        """
        X, y = np.asarray(X), np.asarray(y)
        _check_xy_(X, y, "ConstantRegressor")
        self.empirical_mean = np.mean(y)
        return self

    def predict(self, X):
        """Returns the empirical mean from the fit() step for all observations"""
        return np.array([self.empirical_mean] * np.asarray(X).shape[0])


class ConstantClassifier(BaseEstimator):
    """Empirical class frequencies in the format of SciKit learn. The predicted distribution ignores the
    covariates, so this is a baseline learner for binary outcomes and for the treatment mechanism (under which
    treatments are assumed independent of the confounders).

    Examples
    --------
    >>> from pytmle.learners import ConstantClassifier
    >>> cc = ConstantClassifier().fit(X, y)
    >>> cc.predict_proba(X)
    """

    def __init__(self):
        self.classes_ = None
        self.class_prior_ = None

    def fit(self, X, y):
        X, y = np.asarray(X), np.asarray(y)
        _check_xy_(X, y, "ConstantClassifier")
        self.classes_, counts = np.unique(y, return_counts=True)
        self.class_prior_ = counts / counts.sum()
        return self

    def predict_proba(self, X):
        """Class frequencies from the fit() step, one row per observation. Columns follow `classes_`"""
        return np.tile(self.class_prior_, (np.asarray(X).shape[0], 1))

    def predict(self, X):
        """Most frequent class for all observations"""
        return np.repeat(self.classes_[np.argmax(self.class_prior_)], np.asarray(X).shape[0])


class GLMSL:
    """Generalized Linear Model in the format of SciKit learn. This is a wrapper for the statsmodels `GLM` class,
    which is not natively compatible with the sklearn API. All statsmodels families are supported. For the
    binomial family `predict_proba()` is also available, so the GLM can be used as the outcome regression of a
    binary outcome or as a (single binary) treatment mechanism.

    Parameters
    ----------
    family: statsmodels.families.family
        Family to use for the model. All statsmodels supported families are also supported
    verbose : bool, optional
        Whether to print the fitted model. Default is False

    Examples
    --------
    >>> import statsmodels.api as sm
    >>> from pytmle.learners import GLMSL
    >>> glm = GLMSL(family=sm.families.family.Binomial())
    >>> glm.fit(X, y)
    """
    def __init__(self, family, verbose=False):
        self._family_ = family
        self._verbose_ = verbose

        # Storage items
        self.model = None
        self.classes_ = None

    def fit(self, X, y):
        """Estimate the GLM (an intercept is added)

        Parameters
        ----------
        X : numpy.array
            Training data
        y : numpy.array
            Target values
        """
        X, y = np.asarray(X, dtype=float), np.asarray(y, dtype=float)
        if X.ndim == 1:
            X = X.reshape(-1, 1)
        _check_xy_(X, y, "GLMSL")

        self.model = sm.GLM(y, self._add_intercept_(X), family=self._family_).fit()
        if isinstance(self._family_, sm.families.family.Binomial):
            self.classes_ = np.array([0, 1])
        if self._verbose_:
            print(self.model.summary())
        return self

    def predict(self, X):
        """Predicted mean from the fitted GLM"""
        X = np.asarray(X, dtype=float)
        if X.ndim == 1:
            X = X.reshape(-1, 1)
        return self.model.predict(self._add_intercept_(X))

    def predict_proba(self, X):
        """Predicted probabilities of 0 and 1. Only available for the binomial family"""
        if self.classes_ is None:
            raise ValueError("predict_proba() is only available for the Binomial family")
        p = self.predict(X)
        return np.column_stack([1 - p, p])

    def get_params(self, deep=True):
        """For sklearn.base.clone() compatibility"""
        return {"family": self._family_,
                "verbose": self._verbose_}

    def set_params(self, **parameters):
        """For sklearn.base.clone() compatibility"""
        for parameter, value in parameters.items():
            setattr(self, "_" + parameter + "_", value)
        return self

    @staticmethod
    def _add_intercept_(X):
        return np.hstack([np.zeros([X.shape[0], 1]) + 1, X])
