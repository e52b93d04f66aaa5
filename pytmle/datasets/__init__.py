import numpy as np
import pandas as pd


def linear_continuous_data(n=100, seed=123):
    """Simulated data set with a single binary treatment, a single uniform confounder, and a continuous outcome
    that is linear in the treatment, the confounder, and their interaction

        y = 3 W + T + T W + N(0, 0.05)

    The true average treatment effect of T=1 versus T=0 is 1.5

    Parameters
    ----------
    n : int, optional
        Number of observations. Default is 100
    seed : int, optional
        Random seed. Default is 123

    Returns
    -------
    DataFrame with columns y, W, and T (categorical)
    """
    rng = np.random.default_rng(seed)
    w = rng.uniform(size=n)
    t = rng.choice([0, 1], size=n)
    df = pd.DataFrame()
    df['y'] = 3 * w + t + t * w + rng.normal(0, 0.05, size=n)
    df['W'] = w
    df['T'] = pd.Categorical(t, categories=[0, 1])
    return df


def joint_treatment_data(n=100, seed=123):
    """Simulated data set with four categorical treatments (of 2 or 3 levels each), two uniform confounders, and a
    binary outcome drawn independently of everything else with Pr(y=1) = 0.3

    Parameters
    ----------
    n : int, optional
        Number of observations. Default is 100
    seed : int, optional
        Random seed. Default is 123

    Returns
    -------
    DataFrame with columns t1, t2, t3, t4 (categorical), w1, w2, and y (categorical, levels False and True)
    """
    rng = np.random.default_rng(seed)
    df = pd.DataFrame()
    df['t1'] = pd.Categorical(rng.choice(["CG", "CC"], p=[0.7, 0.3], size=n))
    df['t2'] = pd.Categorical(rng.choice(["AT", "AA", "TT"], p=[0.5, 0.4, 0.1], size=n))
    df['t3'] = pd.Categorical(rng.choice(["CC", "GG", "CG"], p=[0.6, 0.2, 0.2], size=n))
    df['t4'] = pd.Categorical(rng.choice(["TT", "AA"], p=[0.6, 0.4], size=n))
    df['w1'] = rng.uniform(size=n)
    df['w2'] = rng.uniform(size=n)
    df['y'] = pd.Categorical(rng.uniform(size=n) < 0.3, categories=[False, True])
    return df


def missing_outcomes_data(n=100, seed=123):
    """Simulated data set with a single binary treatment, two confounders, and two continuous outcomes. The last 10
    values of y1 and the first 20 values of y2 are missing

    Returns
    -------
    T, W, Y DataFrames
    """
    rng = np.random.default_rng(seed)
    T = pd.DataFrame({'t': pd.Categorical(rng.choice([0, 1], size=n), categories=[0, 1])})
    W = pd.DataFrame({'w1': rng.uniform(size=n), 'w2': rng.uniform(size=n)})
    Y = pd.DataFrame({'y1': np.concatenate([rng.uniform(size=n - 10), np.repeat(np.nan, 10)]),
                      'y2': np.concatenate([np.repeat(np.nan, 20), rng.uniform(size=n - 20)])})
    return T, W, Y
