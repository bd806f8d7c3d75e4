"""
Error Taxonomy for the Imputation Engine
========================================

Three families, all rooted at MiceError:

- ConfigurationError: invalid predictor graph or method choice
- DataError: the data cannot support the configured model
- StatisticalError: degenerate fits and under-replicated pooling

Run-level failures raised by the multiple-imputation driver wrap one of the
above together with the imputation index and the runs that did complete.
"""


class MiceError(Exception):
    """Base class for every error raised by mice_engine"""

    def __init__(self, message, variable=None):
        super().__init__(message)
        self.message = message
        self.variable = variable

    def __str__(self):
        if self.variable is not None:
            return f"{self.message} (variable: {self.variable!r})"
        return self.message

    def __reduce__(self):
        # Picklable across joblib workers: rebuild from constructor arguments
        return self.__class__, (self.message, self.variable)


class ConfigurationError(MiceError):
    pass


class PredictorGraphError(ConfigurationError):
    pass


class UnsupportedMethodError(ConfigurationError):
    def __init__(self, method, variable=None, reason=None):
        message = f"Unsupported imputation method {method!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, variable=variable)
        self.method = method
        self.reason = reason

    def __reduce__(self):
        return self.__class__, (self.method, self.variable, self.reason)


class DataError(MiceError):
    pass


class InsufficientDataError(DataError):
    def __init__(self, variable, n_observed, minimum):
        super().__init__(
            f"Insufficient data: {n_observed} observed rows, need at least {minimum}",
            variable=variable,
        )
        self.n_observed = n_observed
        self.minimum = minimum

    def __reduce__(self):
        return self.__class__, (self.variable, self.n_observed, self.minimum)


class TooManyLevelsError(DataError):
    def __init__(self, variable, n_levels, maximum, method):
        super().__init__(
            f"Method {method!r} supports at most {maximum} levels, got {n_levels}",
            variable=variable,
        )
        self.n_levels = n_levels
        self.maximum = maximum
        self.method = method

    def __reduce__(self):
        return self.__class__, (self.variable, self.n_levels, self.maximum, self.method)


class StatisticalError(MiceError):
    pass


class DegenerateFitError(StatisticalError):
    pass


class InsufficientImputationsError(StatisticalError):
    def __init__(self, m):
        super().__init__(
            f"Insufficient imputations: pooling needs at least 2 results, got {m}"
        )
        self.m = m

    def __reduce__(self):
        return self.__class__, (self.m,)


class PoolingError(StatisticalError):
    pass


class ImputationRunError(MiceError):
    """
    One imputation run failed and the remaining runs were aborted.

    `completed` maps imputation index (0-based) to the ChainResult of every
    run that finished before the failure was detected.
    """

    def __init__(self, index, cause, completed=None):
        super().__init__(
            f"Imputation {index + 1} failed: {cause}",
            variable=getattr(cause, 'variable', None),
        )
        self.index = index
        self.cause = cause
        self.completed = dict(completed or {})

    def __reduce__(self):
        return self.__class__, (self.index, self.cause, self.completed)


class ImputationTimeoutError(MiceError):
    def __init__(self, timeout, completed=None):
        super().__init__(f"Imputation runs exceeded the timeout of {timeout}s")
        self.timeout = timeout
        self.completed = dict(completed or {})

    def __reduce__(self):
        return self.__class__, (self.timeout, self.completed)
