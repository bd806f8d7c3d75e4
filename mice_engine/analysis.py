"""
Analysis adapters

The engine never chooses the downstream model. `analyze` applies whatever
the caller supplies to every imputed dataset; `ols` and `from_statsmodels`
turn statsmodels fits into AnalysisResult objects ready for pooling.
"""

import statsmodels.formula.api as smf

from .exceptions import PoolingError
from .pooling import AnalysisResult


def from_statsmodels(fitted):
    """AnalysisResult from a fitted statsmodels results object"""
    coefficients = fitted.params
    variances = fitted.bse ** 2
    df_resid = getattr(fitted, 'df_resid', None)
    return AnalysisResult(coefficients, variances, df_resid=df_resid)


def ols(formula):
    """
    Analysis function fitting `formula` by ordinary least squares

    >>> results = analyze(collection, ols("sepal_length ~ sepal_width + species"))
    """
    def fit(frame):
        return from_statsmodels(smf.ols(formula, data=frame).fit())

    fit.__name__ = f"ols[{formula}]"
    return fit


def analyze(collection, fn):
    """
    Apply `fn` to each imputed dataset of `collection`, in imputation order

    `fn` takes a completed DataFrame and returns an AnalysisResult, a fitted
    statsmodels results object or a (coefficients, variances) pair.
    """
    results = []
    for frame in collection:
        outcome = fn(frame)
        if hasattr(outcome, 'params') and hasattr(outcome, 'bse'):
            outcome = from_statsmodels(outcome)
        try:
            results.append(AnalysisResult.coerce(outcome))
        except PoolingError as exc:
            raise PoolingError(
                f"Analysis {getattr(fn, '__name__', fn)!r} returned an unusable result: {exc}"
            ) from exc
    return results
