"""
_____________________________________________________________________________________________
|                                                                                           |
|       pytmle: targeted minimum loss-based estimation in Python                            |
|                                                                                           |
| Semiparametric, doubly-robust estimation of causal parameters from observational data,    |
| with any SciKit-Learn style learner for the outcome regression and treatment mechanism.   |
|___________________________________________________________________________________________|

CONTENTS

Parameters:
    -Counterfactual Mean (CM), Average Treatment Effect (ATE), Interaction Average Treatment Effect (IATE) for one
     or several categorical treatments

Estimation:
    -TMLE with reusable nuisance parameters, multi-outcome estimation with per-outcome missing data handling,
     influence curve based standard errors, p-values and confidence intervals

Composition:
    -Delta method composition of several estimates (differences, ratios, ...)

Learners:
    -Constant regressor / classifier, statsmodels GLM wrapper
"""
from .version import __version__

from .parameters import Parameter, CM, ATE, IATE, parameter_from_dict
from .treatment import TreatmentEncoder, JointTreatmentClassifier, joint_treatment
from .nuisance import NuisanceSpec, NuisanceParameters
from .estimate import tmle, counterfactual_aggregate, TMLEResult, TMLEstimator
from .compose import compose

import pytmle.calc

import pytmle.learners

import pytmle.datasets
