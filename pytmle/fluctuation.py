import numpy as np
import pandas as pd
import statsmodels.api as sm


def fluctuation_input(covariate, offset):
    """Input of the fluctuation submodel"""
    return pd.DataFrame({'covariate': np.asarray(covariate, dtype=float),
                         'offset': np.asarray(offset, dtype=float)})


class Fluctuation:
    r"""One-dimensional parametric submodel used in the targeting step of TMLE. The submodel is the generalized
    linear model

    .. math::

        g(E(Y | T, W)) = g(\bar{Q}(T, W)) + \epsilon H(T, W)

    where :math:`g` is the link of the outcome (logit for binary outcomes, identity for continuous outcomes),
    :math:`g(\bar{Q})` enters as a fixed offset, and the clever covariate :math:`H` is the only predictor (no
    intercept). Solving the score equation for :math:`\epsilon` sets the empirical mean of the efficient influence
    curve to zero.

    Parameters
    ----------
    kind : str
        Outcome type, either 'binary' or 'continuous'
    """
    def __init__(self, kind):
        if kind == 'binary':
            self.family = sm.families.family.Binomial()
        elif kind == 'continuous':
            self.family = sm.families.family.Gaussian()
        else:
            raise ValueError("Unsupported outcome type for the fluctuation: '" + str(kind) + "'")
        self.kind = kind
        self.model = None

    def fit(self, X, y):
        """Fit the submodel

        Parameters
        ----------
        X : DataFrame
            Fluctuation input, with 'covariate' and 'offset' columns
        y : numpy.array
            Observed outcome (0/1 for binary outcomes)
        """
        self.model = sm.GLM(np.asarray(y, dtype=float),
                            np.asarray(X['covariate'], dtype=float).reshape(-1, 1),
                            offset=np.asarray(X['offset'], dtype=float),
                            family=self.family).fit()
        return self

    @property
    def epsilon(self):
        if self.model is None:
            return None
        return self.model.params[0]

    def predict_mean(self, X):
        """Predicted mean of the outcome under the fluctuated model"""
        if self.model is None:
            raise ValueError("The fluctuation must be fit before generating predictions")
        return np.asarray(self.model.predict(np.asarray(X['covariate'], dtype=float).reshape(-1, 1),
                                             offset=np.asarray(X['offset'], dtype=float)))
