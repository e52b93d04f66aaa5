import copy
import numpy as np

from pytmle.treatment import TreatmentEncoder, JointTreatmentClassifier


class NuisanceSpec:
    """Learners used to estimate the nuisance parameters of TMLE.

    Parameters
    ----------
    Q :
        Learner for the outcome regression E(Y | T, W). Must have the "fit()" and "predict()" attributes, and the
        "predict_proba()" attribute for binary outcomes. SciKit-Learn style models are supported
    G :
        Learner for the treatment mechanism p(T | W). Either a classifier with the "fit()" and "predict_proba()"
        attributes, which is then fit on the joint treatment, or a `JointTreatmentClassifier`
    H : optional
        Treatment encoder used to build the design matrix of Q. Default is `TreatmentEncoder()`

    Examples
    --------
    >>> from sklearn.linear_model import LogisticRegression
    >>> spec = NuisanceSpec(Q=LogisticRegression(), G=LogisticRegression())
    """
    def __init__(self, Q, G, H=None):
        self.Q = Q
        self.G = G if isinstance(G, JointTreatmentClassifier) else JointTreatmentClassifier(G)
        self.H = TreatmentEncoder() if H is None else H


class NuisanceParameters:
    """Container of the fitted nuisance parameters: the treatment encoder (H), the outcome regression (Q), the
    treatment mechanism (G), and the fluctuation (F). Each of H, Q, G is stored along with the key it was fit for,
    so that a later call of `tmle()` with another parameter can reuse the slots that are still valid.

    Note
    ----
    Instances are mutated by `tmle()`. The same instance must not be used by concurrent `tmle()` calls
    """
    def __init__(self, H=None, Q=None, G=None, F=None):
        self.H = H
        self.Q = Q
        self.G = G
        self.F = F
        self.H_key = None
        self.Q_key = None
        self.G_key = None
        self.n_rows = {'H': None, 'Q': None, 'G': None, 'F': None}

    def is_fit(self, slot):
        return getattr(self, slot) is not None

    def __repr__(self):
        fit = [s for s in ('H', 'Q', 'G', 'F') if self.is_fit(s)]
        return 'NuisanceParameters(fit=' + str(fit) + ')'


###############################################################################
# Reuse keys. These are pure functions of the learner, the parameter, and the fitting rows

def learner_key(learner):
    """Identity of a learner: its type and (shallow) hyperparameters"""
    if hasattr(learner, 'get_params'):
        params = learner.get_params(deep=False)
        return type(learner).__name__, tuple(sorted((k, repr(v)) for k, v in params.items()))
    return type(learner).__name__, repr(learner)


def _rows_key_(index):
    return tuple(index)


def encoder_key(spec, parameter):
    return learner_key(spec.H), tuple(parameter.treatments())


def outcome_key(spec, parameter, index):
    return (learner_key(spec.Q), parameter.target, tuple(parameter.treatments()), tuple(parameter.confounders),
            _rows_key_(index))


def treatment_key(spec, parameter, index):
    return learner_key(spec.G), tuple(parameter.treatments()), tuple(parameter.confounders), _rows_key_(index)


def requires_refit(cached_key, current_key):
    """Whether a nuisance slot has to be (re)fit: the slot is empty or was fit for another specification"""
    return cached_key is None or cached_key != current_key


###############################################################################
# Fitting

def fit_encoder(H, T):
    return copy.deepcopy(H).fit(T)


def fit_outcome_model(Q, X, y):
    """Fits a copy of the outcome learner on the design matrix X = [encoded T, W]"""
    fm = copy.deepcopy(Q)
    try:
        fm.fit(X=np.asarray(X), y=np.asarray(y))
    except TypeError:
        raise TypeError("The outcome model must have the 'fit' function with arguments 'X', 'y'. This covers "
                        "sklearn style regressors and classifiers")
    return fm


def fit_treatment_model(G, W, jointT):
    """Fits a copy of the treatment mechanism on the joint treatment"""
    return copy.deepcopy(G).fit(W, jointT)
