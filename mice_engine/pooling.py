"""
Pooling Engine (Rubin's rules)
==============================

Combines the per-imputation results of a caller's analysis into one
inference:

- pooled estimate Q = mean of the m estimates
- within-imputation variance W = mean of the m variances
- between-imputation variance B = sample variance of the m estimates
- total variance T = W + B + B/m

Degrees of freedom follow Barnard & Rubin (1999) when the complete-data
degrees of freedom are known, and Rubin (1987) otherwise. Confidence
intervals and p-values use Student's t with those degrees of freedom.

References:
    Rubin, D.B. (1987). Multiple Imputation for Nonresponse in Surveys.
    Barnard, J. and Rubin, D.B. (1999). Small-sample degrees of freedom with
    multiple imputation. Biometrika 86(4), 948-955.
"""

import numpy as np
import pandas as pd
from scipy.stats import t as t_dist

from .exceptions import InsufficientImputationsError, PoolingError

# Lower bound on lambda when computing degrees of freedom, as in R's mice
LAMBDA_FLOOR = 1e-4


class AnalysisResult:
    """
    Output of the caller's model on one imputed dataset

    Parameters
    ----------
    coefficients : pandas.Series or array-like
        Point estimates, indexed by coefficient name
    variances : pandas.Series, array-like or 2-D covariance
        Sampling variances of the estimates (the diagonal is taken from a
        covariance matrix)
    df_resid : float, optional
        Complete-data residual degrees of freedom of the model
    """

    def __init__(self, coefficients, variances, df_resid=None):
        coefficients = pd.Series(coefficients, dtype=float)

        if isinstance(variances, pd.DataFrame):
            variances = pd.Series(np.diag(variances.to_numpy(dtype=float)), index=variances.index)
        else:
            array = np.asarray(variances, dtype=float)
            if array.ndim == 2:
                variances = pd.Series(np.diag(array), index=coefficients.index)
            elif not isinstance(variances, pd.Series):
                variances = pd.Series(array, index=coefficients.index)
        variances = variances.astype(float)
        if set(variances.index) == set(coefficients.index):
            variances = variances.reindex(coefficients.index)

        if len(variances) != len(coefficients) or not variances.index.equals(coefficients.index):
            raise PoolingError(
                f"Coefficients {list(coefficients.index)} and variances "
                f"{list(variances.index)} do not line up"
            )

        self.coefficients = coefficients
        self.variances = variances
        self.df_resid = df_resid

    @classmethod
    def coerce(cls, result):
        """Accept an AnalysisResult or a (coefficients, variances[, df]) tuple"""
        if isinstance(result, cls):
            return result
        if isinstance(result, tuple) and len(result) in (2, 3):
            return cls(*result)
        raise PoolingError(
            f"Expected AnalysisResult or (coefficients, variances) pair, "
            f"got {type(result).__name__}"
        )

    def __repr__(self):
        return f"AnalysisResult(coefficients={self.coefficients.to_dict()})"


def rubin_df(m, lambda_):
    """Rubin's (1987) degrees of freedom, (m - 1) / lambda^2"""
    lambda_ = np.maximum(lambda_, LAMBDA_FLOOR)
    return (m - 1) / lambda_ ** 2


def barnard_rubin_df(m, lambda_, dfcom):
    """Barnard-Rubin small-sample degrees of freedom"""
    lambda_ = np.maximum(lambda_, LAMBDA_FLOOR)
    df_old = (m - 1) / lambda_ ** 2
    df_obs = (dfcom + 1) / (dfcom + 3) * dfcom * (1 - lambda_)
    return df_old * df_obs / (df_old + df_obs)


class PooledResult:
    """Per-coefficient pooled inference; every attribute is a pandas Series"""

    def __init__(self, estimate, within, between, m, alpha=0.05, dfcom=None):
        self.m = m
        self.alpha = alpha
        self.dfcom = dfcom

        self.estimate = estimate
        self.within = within
        self.between = between
        self.total = within + between + between / m

        inflation = (1 + 1 / m) * between
        with np.errstate(divide='ignore', invalid='ignore'):
            self.riv = (inflation / within).where(within > 0, np.where(inflation > 0, np.inf, 0.0))
            self.lambda_ = (inflation / self.total).where(self.total > 0, 0.0)

        if dfcom is None or not np.isfinite(dfcom):
            df = rubin_df(m, self.lambda_)
        else:
            df = barnard_rubin_df(m, self.lambda_, dfcom)
        self.df = pd.Series(df, index=estimate.index)

        self.fmi = (self.riv + 2 / (self.df + 3)) / (self.riv + 1)
        self.fmi = self.fmi.where(np.isfinite(self.riv), 1.0)

        self.se = np.sqrt(self.total)
        with np.errstate(divide='ignore', invalid='ignore'):
            self.statistic = self.estimate / self.se
        self.p_value = pd.Series(
            2 * t_dist.sf(np.abs(self.statistic), self.df), index=estimate.index
        )

        critical = t_dist.ppf(1 - alpha / 2, self.df)
        self.ci_lower = self.estimate - critical * self.se
        self.ci_upper = self.estimate + critical * self.se

    @property
    def names(self):
        return list(self.estimate.index)

    def to_frame(self):
        level = int(round((1 - self.alpha) * 100))
        return pd.DataFrame({
            'estimate': self.estimate,
            'std_error': self.se,
            'statistic': self.statistic,
            'df': self.df,
            'p_value': self.p_value,
            f'ci_lower_{level}': self.ci_lower,
            f'ci_upper_{level}': self.ci_upper,
            'within': self.within,
            'between': self.between,
            'total': self.total,
            'riv': self.riv,
            'lambda': self.lambda_,
            'fmi': self.fmi,
        })

    def __repr__(self):
        return f"PooledResult(m={self.m}, coefficients={self.names})"


def _complete_data_df(results, dfcom):
    if dfcom is not None:
        return float(dfcom)
    dfs = [r.df_resid for r in results]
    if any(df is None for df in dfs):
        return None
    return float(min(dfs))


def pool(results, alpha=0.05, dfcom=None):
    """
    Pool analysis results from m imputed datasets with Rubin's rules

    Parameters
    ----------
    results : sequence
        AnalysisResult objects or (coefficients, variances) pairs, one per
        imputed dataset
    alpha : float
        Confidence intervals cover 1 - alpha
    dfcom : float, optional
        Complete-data degrees of freedom. Defaults to the smallest
        `df_resid` of the results when all of them carry one.

    Returns
    -------
    PooledResult
    """
    results = [AnalysisResult.coerce(r) for r in results]
    m = len(results)
    if m < 2:
        raise InsufficientImputationsError(m)
    if not 0 < alpha < 1:
        raise PoolingError(f"alpha must be in (0, 1), got {alpha}")

    names = results[0].coefficients.index
    for index, result in enumerate(results[1:], start=2):
        if not result.coefficients.index.equals(names):
            raise PoolingError(
                f"Result {index} has coefficients {list(result.coefficients.index)}, "
                f"expected {list(names)}"
            )

    estimates = np.vstack([r.coefficients.to_numpy() for r in results])
    variances = np.vstack([r.variances.to_numpy() for r in results])

    if not (np.all(np.isfinite(estimates)) and np.all(np.isfinite(variances))):
        raise PoolingError("Non-finite estimates or variances in analysis results")
    if np.any(variances < 0):
        raise PoolingError("Negative variance in analysis results")

    estimate = pd.Series(estimates.mean(axis=0), index=names)
    within = pd.Series(variances.mean(axis=0), index=names)
    between = pd.Series(estimates.var(axis=0, ddof=1), index=names)

    return PooledResult(
        estimate, within, between, m,
        alpha=alpha,
        dfcom=_complete_data_df(results, dfcom),
    )


def pool_scalar(estimates, variances, alpha=0.05, dfcom=None):
    """Pool a single quantity, e.g. one treatment effect per imputation"""
    results = [
        AnalysisResult(pd.Series([estimate], index=["estimate"]), [variance])
        for estimate, variance in zip(estimates, variances)
    ]
    if len(results) != len(estimates) or len(estimates) != len(variances):
        raise PoolingError("estimates and variances must have the same length")
    return pool(results, alpha=alpha, dfcom=dfcom)
