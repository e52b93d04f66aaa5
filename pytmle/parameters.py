import copy


class Parameter:
    """Base class for the causal parameters estimated by TMLE. A parameter is data only: the name of the target
    (outcome) column, an ordered mapping from treatment column names to the treatment levels of interest, and the
    confounder column names.

    Note
    ----
    The ordering of the treatment mapping matters. It must match the ordering of the treatment columns used at fit
    time, since the joint treatment labels are built column by column.

    Parameters
    ----------
    target : str
        Column label for the outcome
    treatment : dict
        Ordered mapping of treatment column labels to the levels of interest
    confounders : list
        Column labels of the confounders
    """
    def __init__(self, target, treatment, confounders=()):
        if len(treatment) == 0:
            raise ValueError("At least one treatment variable must be specified")
        self.target = target
        self.treatment = dict((name, self._check_levels_(name, levels)) for name, levels in treatment.items())
        if isinstance(confounders, str):
            confounders = [confounders]
        self.confounders = list(confounders)

    def _check_levels_(self, name, levels):
        if not isinstance(levels, dict):
            raise ValueError("The levels of treatment '" + str(name) + "' must be given as a dict with 'case' "
                             "and 'control' keys")
        if ('case' not in levels) or ('control' not in levels):
            raise ValueError("Both 'case' and 'control' levels must be specified for treatment '" + str(name) + "'")
        return {'case': levels['case'], 'control': levels['control']}

    def treatments(self):
        """Ordered treatment column labels"""
        return list(self.treatment.keys())

    def with_target(self, target, confounders=None):
        """Copy of the parameter pointing to another target (and optionally other confounders)"""
        new = copy.copy(self)
        new.treatment = copy.deepcopy(self.treatment)
        new.target = target
        new.confounders = list(self.confounders if confounders is None else confounders)
        return new

    def __eq__(self, other):
        return (type(self) is type(other) and
                self.target == other.target and
                list(self.treatment.items()) == list(other.treatment.items()) and
                self.confounders == other.confounders)

    def __hash__(self):
        return hash((type(self).__name__, self.target, tuple(self.treatment.keys())))

    def __repr__(self):
        return (type(self).__name__ + '(target=' + repr(self.target) + ', treatment=' + repr(self.treatment) +
                ', confounders=' + repr(self.confounders) + ')')


class CM(Parameter):
    r"""Counterfactual mean of the outcome under a fixed joint treatment assignment

    .. math::

        \psi = E[E(Y | T=t, W)]

    Examples
    --------
    >>> from pytmle import CM
    >>> CM(target='y', treatment={'t1': 1, 't2': 'AA'}, confounders=['w1', 'w2'])
    """
    def _check_levels_(self, name, levels):
        if isinstance(levels, dict):
            raise ValueError("A counterfactual mean takes a single level for treatment '" + str(name) + "'")
        return levels

    def case(self):
        return tuple(self.treatment.values())


class ATE(Parameter):
    r"""Average treatment effect between the joint case and the joint control treatment assignments

    .. math::

        \psi = E[E(Y | T=case, W) - E(Y | T=control, W)]

    Examples
    --------
    >>> from pytmle import ATE
    >>> ATE(target='y', treatment={'t': {'case': 1, 'control': 0}}, confounders=['w'])
    """
    def case(self):
        return tuple(levels['case'] for levels in self.treatment.values())

    def control(self):
        return tuple(levels['control'] for levels in self.treatment.values())


class IATE(Parameter):
    r"""Interaction average treatment effect for k treatment variables. For two treatments

    .. math::

        \psi = E[Q(1, 1, W) - Q(1, 0, W) - Q(0, 1, W) + Q(0, 0, W)]

    where 1 and 0 denote the case and control levels. For k treatments the contrast sums over all 2^k case/control
    combinations, each weighted by :math:`(-1)^{k - \#cases}`.

    References
    ----------
    Beentjes SV, Khamseh A. (2020). Higher-order interactions in statistical physics and machine learning: A
    model-independent solution to the inverse problem at equilibrium. Physical Review E, 102(5), 053314.
    """
    pass


_PARAMETER_TYPES = {'CM': CM, 'ATE': ATE, 'IATE': IATE}


def parameter_from_dict(spec):
    """Builds a parameter from a plain mapping, for instance one read from a configuration file.

    Parameters
    ----------
    spec : dict
        Mapping with keys 'type' (one of 'CM', 'ATE', 'IATE'), 'target', 'treatment' and 'confounders'

    Returns
    -------
    Parameter

    Examples
    --------
    >>> parameter_from_dict({'type': 'ATE', 'target': 'y',
    >>>                      'treatment': {'t': {'case': 1, 'control': 0}},
    >>>                      'confounders': ['w']})
    """
    missing = [k for k in ('type', 'target', 'treatment', 'confounders') if k not in spec]
    if missing:
        raise ValueError("The parameter specification is missing the key(s): " + str(missing))
    try:
        cls = _PARAMETER_TYPES[spec['type']]
    except KeyError:
        raise ValueError("Unknown parameter type '" + str(spec['type']) + "'. Options are " +
                         str(list(_PARAMETER_TYPES.keys())))
    return cls(target=spec['target'], treatment=spec['treatment'], confounders=spec['confounders'])
