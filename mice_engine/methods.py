"""
Per-Variable Imputation Models
==============================

Each method fits one target variable on its configured predictors, using
only the rows where the target was originally observed, and draws values for
the rows where it was missing.

Implements 5 methods:
1. pmm: Predictive mean matching (continuous)
2. norm: Bayesian linear regression draw (continuous)
3. logreg: Logistic regression, class drawn from P(y=1|x) (binary)
4. polyreg: Multinomial logistic regression (binary / categorical)
5. sample: Random draw from the observed values (any type, no predictors)

All randomness comes from the numpy RandomState passed in by the caller.

References:
    Van Buuren, S. (2018). Flexible Imputation of Missing Data, 2nd ed.,
    Algorithms 3.1 (norm) and 3.3 (pmm).
"""

import warnings
from abc import ABC, abstractmethod
from collections import namedtuple

import numpy as np
from sklearn.exceptions import ConvergenceWarning
from sklearn.linear_model import LogisticRegression

from .dataset import VariableType
from .exceptions import (
    DegenerateFitError,
    InsufficientDataError,
    PredictorGraphError,
    TooManyLevelsError,
    UnsupportedMethodError,
)

RIDGE = 1e-5
DEFAULT_DONORS = 5
DEFAULT_MIN_OBSERVED = 5
DEFAULT_MAX_LEVELS = 50

FitRecord = namedtuple(
    'FitRecord', ['iteration', 'target', 'method', 'predictors', 'n_observed', 'n_missing']
)


class ImputationMethod(ABC):
    """Common fit-and-draw capability shared by all methods"""

    name = None
    supported_types = ()
    allows_empty_predictors = False
    level_limit = None

    def __init__(self, donors=DEFAULT_DONORS, max_levels=DEFAULT_MAX_LEVELS):
        self.donors = donors
        self.max_levels = max_levels

    def supports(self, var_type):
        return var_type in self.supported_types

    def max_levels_for(self):
        if self.level_limit is not None:
            return self.level_limit
        return self.max_levels

    def check(self, variable, dataset):
        """Raise if this method cannot impute `variable` of `dataset`"""
        var_type = dataset.type_of(variable)
        if not self.supports(var_type):
            raise UnsupportedMethodError(
                self.name,
                variable=variable,
                reason=f"not valid for {var_type.value} variables",
            )
        if var_type is not VariableType.CONTINUOUS:
            maximum = self.max_levels_for()
            n_levels = dataset.n_levels(variable)
            if maximum is not None and n_levels > maximum:
                raise TooManyLevelsError(variable, n_levels, maximum, self.name)

    @abstractmethod
    def fit_and_draw(self, y_obs, X_obs, X_mis, random_state, variable=None):
        """
        Fit on observed rows and draw replacements for the missing rows

        Parameters
        ----------
        y_obs : ndarray, shape (n_obs,)
            Observed target values (level codes for categorical targets)
        X_obs : ndarray, shape (n_obs, p)
            Predictor design matrix for the observed rows
        X_mis : ndarray, shape (n_mis, p)
            Predictor design matrix for the missing rows
        random_state : numpy.random.RandomState
            Source of every random draw
        variable : str, optional
            Target name, used in error messages

        Returns
        -------
        ndarray, shape (n_mis,)
            Drawn values on the same scale as y_obs
        """


def _with_intercept(X):
    return np.column_stack([np.ones(X.shape[0]), X])


def norm_draw(y, X, random_state, ridge=RIDGE, variable=None):
    """
    Draw regression parameters from their approximate posterior

    Returns (coef, beta_star, sigma_star) where coef is the least squares
    (ridge) estimate and beta_star, sigma_star one posterior draw.
    """
    xtx = X.T @ X
    penalty = ridge * np.diag(xtx)
    penalty = np.where(penalty > 0, penalty, ridge)

    try:
        v = np.linalg.inv(xtx + np.diag(penalty))
        coef = v @ X.T @ y
        residuals = y - X @ coef
        df = max(len(y) - X.shape[1], 1)
        sigma_star = np.sqrt(np.sum(residuals ** 2) / random_state.chisquare(df))
        chol = np.linalg.cholesky((v + v.T) / 2)
    except np.linalg.LinAlgError as exc:
        raise DegenerateFitError(f"Singular regression fit: {exc}", variable=variable) from exc

    beta_star = coef + (chol @ random_state.normal(size=X.shape[1])) * sigma_star

    if not (np.all(np.isfinite(coef)) and np.all(np.isfinite(beta_star)) and np.isfinite(sigma_star)):
        raise DegenerateFitError("Regression fit produced non-finite parameters", variable=variable)

    return coef, beta_star, sigma_star


class PredictiveMeanMatching(ImputationMethod):
    """
    Predictive mean matching (type 1 matching)

    Observed rows are predicted with the least squares estimate, missing rows
    with a posterior draw. Each missing row picks one of its `donors` nearest
    observed rows in predicted value, uniformly at random, and takes that
    donor's observed value. Imputations are always values that were observed.
    """

    name = 'pmm'
    supported_types = (VariableType.CONTINUOUS,)

    def fit_and_draw(self, y_obs, X_obs, X_mis, random_state, variable=None):
        X_obs = _with_intercept(X_obs)
        X_mis = _with_intercept(X_mis)

        coef, beta_star, _ = norm_draw(y_obs, X_obs, random_state, variable=variable)
        yhat_obs = X_obs @ coef
        yhat_mis = X_mis @ beta_star

        n_obs = len(y_obs)
        k = max(1, min(self.donors, n_obs))

        drawn = np.empty(len(yhat_mis))
        for i, target in enumerate(yhat_mis):
            # Shuffle first so tied distances do not favour early rows
            perm = random_state.permutation(n_obs)
            distance = np.abs(yhat_obs[perm] - target)
            nearest = perm[np.argsort(distance, kind='stable')[:k]]
            drawn[i] = y_obs[nearest[random_state.randint(k)]]

        return drawn


class BayesianNormal(ImputationMethod):
    """Linear regression prediction from a posterior draw plus residual noise"""

    name = 'norm'
    supported_types = (VariableType.CONTINUOUS,)

    def fit_and_draw(self, y_obs, X_obs, X_mis, random_state, variable=None):
        X_obs = _with_intercept(X_obs)
        X_mis = _with_intercept(X_mis)

        _, beta_star, sigma_star = norm_draw(y_obs, X_obs, random_state, variable=variable)
        return X_mis @ beta_star + random_state.normal(size=X_mis.shape[0]) * sigma_star


def _draw_classes(probabilities, classes, random_state):
    """One class per row, drawn from that row's predicted probabilities"""
    cumulative = np.cumsum(probabilities, axis=1)
    u = random_state.random_sample(probabilities.shape[0])
    picks = (cumulative < u[:, None]).sum(axis=1)
    return classes[np.minimum(picks, len(classes) - 1)]


class _LogisticMethod(ImputationMethod):

    def fit_and_draw(self, y_obs, X_obs, X_mis, random_state, variable=None):
        y_obs = y_obs.astype(np.int64)
        classes = np.unique(y_obs)
        if len(classes) < 2:
            raise DegenerateFitError(
                f"Only one observed class ({classes.tolist()}), cannot fit {self.name}",
                variable=variable,
            )

        model = LogisticRegression(max_iter=1000)
        with warnings.catch_warnings():
            warnings.simplefilter('ignore', category=ConvergenceWarning)
            model.fit(X_obs, y_obs)

        probabilities = model.predict_proba(X_mis)
        if not np.all(np.isfinite(probabilities)):
            raise DegenerateFitError("Non-finite class probabilities", variable=variable)

        return _draw_classes(probabilities, model.classes_, random_state).astype(float)


class LogisticRegressionDraw(_LogisticMethod):
    """Binary logistic regression, class drawn from P(y=1|x), never argmax"""

    name = 'logreg'
    supported_types = (VariableType.BINARY,)
    level_limit = 2


class PolytomousRegressionDraw(_LogisticMethod):
    """Multinomial logistic regression, class drawn from P(y=c|x)"""

    name = 'polyreg'
    supported_types = (VariableType.BINARY, VariableType.CATEGORICAL)


class RandomSample(ImputationMethod):
    """Random draw from the observed values; needs no predictors"""

    name = 'sample'
    supported_types = tuple(VariableType)
    allows_empty_predictors = True

    def fit_and_draw(self, y_obs, X_obs, X_mis, random_state, variable=None):
        return random_state.choice(y_obs, size=X_mis.shape[0], replace=True)


METHODS = {
    cls.name: cls
    for cls in (
        PredictiveMeanMatching,
        BayesianNormal,
        LogisticRegressionDraw,
        PolytomousRegressionDraw,
        RandomSample,
    )
}

DEFAULT_METHODS = {
    VariableType.CONTINUOUS: 'pmm',
    VariableType.BINARY: 'logreg',
    VariableType.CATEGORICAL: 'polyreg',
}


def get_method(name, **options):
    try:
        cls = METHODS[name]
    except KeyError:
        raise UnsupportedMethodError(
            name, reason=f"expected one of {sorted(METHODS)}"
        ) from None
    return cls(**options)


def design_matrix(working, dataset, predictors):
    """
    Numeric predictor matrix from the working frame

    Continuous predictors enter as-is. Binary and categorical predictors are
    held as level codes in the working frame and enter as one indicator
    column per level, first level dropped.
    """
    columns = []
    for predictor in predictors:
        values = working[predictor].to_numpy(dtype=float)
        if dataset.is_categorical(predictor):
            n_levels = dataset.n_levels(predictor)
            for level in range(1, n_levels):
                columns.append((values == level).astype(float))
        else:
            columns.append(values)

    if not columns:
        return np.empty((len(working), 0))
    return np.column_stack(columns)


def impute(target, working, dataset, missingness, graph, random_state,
           donors=DEFAULT_DONORS, min_observed=DEFAULT_MIN_OBSERVED,
           max_levels=DEFAULT_MAX_LEVELS, iteration=None):
    """
    Refill the originally-missing cells of one variable

    Parameters
    ----------
    target : str
        Variable to impute
    working : pandas.DataFrame
        Fully populated working copy (floats; level codes for categoricals)
    dataset : Dataset
        Original typed dataset
    missingness : MissingnessMatrix
        Original missing cells
    graph : PredictorGraph
        Predictor sets and methods
    random_state : numpy.random.RandomState

    Returns
    -------
    column : ndarray, shape (n_rows,)
        The target column with its missing rows redrawn
    record : FitRecord
        What was fitted: method, predictors, row counts
    """
    method_name = graph.method(target)
    if method_name is None:
        raise PredictorGraphError("Incomplete variable has no imputation method", variable=target)

    method = get_method(method_name, donors=donors, max_levels=max_levels)
    method.check(target, dataset)

    predictors = graph.predictors(target)
    if not predictors and not method.allows_empty_predictors:
        raise PredictorGraphError(
            f"Empty predictor set and method {method_name!r} needs predictors",
            variable=target,
        )

    observed = missingness.observed_rows(target)
    missing = missingness.missing_rows(target)
    if len(observed) < max(min_observed, 1):
        raise InsufficientDataError(target, len(observed), max(min_observed, 1))

    column = working[target].to_numpy(dtype=float).copy()
    record = FitRecord(
        iteration=iteration,
        target=target,
        method=method_name,
        predictors=tuple(predictors),
        n_observed=len(observed),
        n_missing=len(missing),
    )
    if len(missing) == 0:
        return column, record

    X = design_matrix(working, dataset, predictors)
    try:
        column[missing] = method.fit_and_draw(
            column[observed], X[observed], X[missing], random_state, variable=target
        )
    except (ValueError, np.linalg.LinAlgError) as exc:
        raise DegenerateFitError(f"{method_name} fit failed: {exc}", variable=target) from exc
    return column, record
