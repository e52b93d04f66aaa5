import numpy as np
from statsmodels.tools.numdiff import approx_fprime

from pytmle.estimate import TMLEResult


def compose(f, *results, label=None):
    r"""Combines several estimates into a derived estimate with the delta method. For estimates
    :math:`\psi_1, ..., \psi_m` with influence curves stacked in the n by m matrix :math:`IC`

    .. math::

        \hat{\theta} = f(\psi_1, ..., \psi_m)

        Var(\hat{\theta}) = \nabla f^T \Sigma \nabla f / n

    where :math:`\Sigma` is the empirical covariance matrix of the influence curves. The gradient is obtained by
    centered finite differences (`statsmodels.tools.numdiff.approx_fprime`), which is accurate to about 1e-10
    relative error for smooth functions of well-scaled estimates.

    Note
    ----
    The influence curves must be computed over the same rows, in the same order. Results for targets with
    different missing data patterns can not be composed

    Parameters
    ----------
    f : function
        Function of m scalar arguments returning a scalar
    *results : TMLEResult
        Estimates to combine, in the order of the arguments of `f`
    label : str, optional
        Name of the composite estimate, used by `summary()`

    Returns
    -------
    TMLEResult
        Composite result. Its influence curve is :math:`IC \nabla f`, so it can itself be composed

    Examples
    --------
    Difference of two counterfactual means

    >>> ate = compose(lambda x, y: x - y, cm_case, cm_control)

    Ratio of two counterfactual means

    >>> rr = compose(lambda x, y: x / y, cm_case, cm_control)
    """
    if len(results) == 0:
        raise ValueError("At least one estimate must be provided")
    lengths = set(r.inf_curve.shape[0] for r in results)
    if len(lengths) != 1:
        raise ValueError("The influence curves of the estimates have different lengths " +
                         str([r.inf_curve.shape[0] for r in results]) + ". All estimates must be computed over "
                         "the same observations")

    estimates = np.array([r.estimate for r in results], dtype=float)
    inf_curves = np.column_stack([r.inf_curve for r in results])
    n = inf_curves.shape[0]

    estimate = float(f(*estimates))
    gradient = np.atleast_1d(approx_fprime(estimates, lambda x: f(*x), centered=True)).ravel()
    covariance = np.atleast_2d(np.cov(inf_curves, rowvar=False))

    result = TMLEResult(estimate=estimate, inf_curve=inf_curves @ gradient, label=label)
    # Delta method variance, identical to var(IC @ gradient) / n
    result.stderror = np.sqrt(gradient @ covariance @ gradient / n)
    result.gradient = gradient
    result.covariance = covariance
    return result
