import warnings
import numpy as np
from scipy.stats import norm, t


def normal_ppf(z):
    return norm.ppf(z, loc=0, scale=1)


def logit(prob):
    """Logit transformation of probabilities. Input can be a single probability of array of probabilities

    Parameters
    ----------
    prob : float, array
        A single probability or an array of probabilities

    Returns
    -------
    logit-transformed probabilities
    """
    return np.log(prob / (1 - prob))


def probability_bounds(v, bounds):
    """Function to generate bounded values for probabilities. Used to keep predicted outcome probabilities away from
    0 and 1 before the logit transformation. This is available for both symmetric and asymmetric bounds.

    Parameters
    ----------
    v : numpy.array
        Array of values to bound
    bounds : float, list, numpy.array
        Bounds to apply to v. If only a single value is provided, then symmetric bounds are used.

    Returns
    -------
    numpy.array of bounded values
    """
    v = np.asarray(v, dtype=float)
    if isinstance(bounds, float):  # Symmetric bounding
        if bounds < 0 or bounds > 1:
            raise ValueError('Bound value must be between (0, 1)')
        lower, upper = bounds, 1 - bounds

    elif isinstance(bounds, (str, int)):
        raise ValueError('Bounds must either be a float between (0, 1), or a collection of floats between (0, 1)')

    else:  # Asymmetric bounds
        if len(bounds) > 2:
            warnings.warn('It looks like your specified bounds is more than two floats. Only the first two '
                          'specified bounds are used by the bound statement. So only ' +
                          str(bounds[0:2]) + ' will be used', UserWarning)
        if type(bounds[0]) is str or type(bounds[1]) is str:
            raise ValueError('Bounds must be floats between (0, 1)')
        if bounds[0] > bounds[1]:
            raise ValueError('Bound thresholds must be listed in ascending order')
        if bounds[0] < 0 or bounds[1] > 1:
            raise ValueError('Both bound values must be between (0, 1)')
        lower, upper = bounds[0], bounds[1]

    v[v < lower] = lower
    v[v > upper] = upper
    return v


def plateau(v, threshold):
    r"""Floors an array of predicted densities at a threshold. The floor is applied in place, so that the largest
    possible inverse-probability weight is bounded by

    .. math::

        \frac{1}{\max(g, \delta)} \le \frac{1}{\delta}

    Parameters
    ----------
    v : numpy.array
        Array of predicted densities (float dtype)
    threshold : float
        Value of the floor. Must be positive

    Returns
    -------
    numpy.array
        The floored array (same object as `v`)
    """
    if threshold <= 0:
        raise ValueError('The plateau threshold must be positive, however %f is not positive' % threshold)
    np.maximum(v, threshold, out=v)
    return v


def one_sample_pvalue(estimate, std_error, n, test='t'):
    """Two-sided p-value for the null hypothesis that the parameter is zero.

    Parameters
    ----------
    estimate : float
        Point estimate
    std_error : float
        Standard error of the point estimate
    n : int
        Number of observations the influence curve was computed over
    test : str, optional
        Either 't' (one-sample t-test with n-1 degrees of freedom) or 'z' (normal approximation). Default is 't'

    Returns
    -------
    float
    """
    stat = estimate / std_error
    if test == 't':
        return 2 * t.sf(np.abs(stat), df=n - 1)
    elif test == 'z':
        return 2 * norm.sf(np.abs(stat))
    else:
        raise ValueError("Only the 't' and 'z' tests are supported")


def one_sample_confint(estimate, std_error, n, alpha=0.05, test='t'):
    """Two-sided (1 - alpha) confidence interval for the parameter, see `one_sample_pvalue` for the arguments

    Returns
    -------
    tuple
        Lower and upper confidence limits
    """
    if alpha <= 0 or alpha >= 1:
        raise ValueError('alpha must be between (0, 1)')
    if test == 't':
        q = t.ppf(1 - alpha / 2, df=n - 1)
    elif test == 'z':
        q = normal_ppf(1 - alpha / 2)
    else:
        raise ValueError("Only the 't' and 'z' tests are supported")
    return estimate - q * std_error, estimate + q * std_error
