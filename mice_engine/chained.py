"""
Chained-Equations Iterator
==========================

One MICE run producing one completed dataset:

1. Fill every missing cell with a placeholder (mean / mode)
2. For each iteration, visit the incomplete variables in order and redraw
   each one's missing cells from its per-variable model, using the current
   state of every other column (Gibbs-style sequential update)
3. After the last iteration, write the draws back into a copy of the input

The iteration count is a budget, not a convergence test. Per-iteration means
and variances of the imputed values are recorded so convergence can be
inspected outside the loop.
"""

import time

import numpy as np
import pandas as pd
from pandas.api import types as ptypes

from .exceptions import ConfigurationError, InsufficientDataError
from .logging_utils import get_logger
from .methods import (
    DEFAULT_DONORS,
    DEFAULT_MAX_LEVELS,
    DEFAULT_MIN_OBSERVED,
    impute,
)
from .missingness import MissingnessMatrix

logger = get_logger(__name__)

ON_INSUFFICIENT = ('raise', 'skip')


class ChainResult:
    """Completed dataset of one run plus its diagnostics"""

    def __init__(self, completed, trace, fit_records, skipped, seed=None, runtime=None):
        self.completed = completed
        self.trace = trace
        self.fit_records = fit_records
        self.skipped = skipped
        self.seed = seed
        self.runtime = runtime

    def trace_frame(self):
        """Chain mean / variance per (iteration, variable), long format"""
        return pd.DataFrame(self.trace, columns=['iteration', 'variable', 'mean', 'variance'])

    def predictors_used(self):
        """Variable -> set of every predictor it was fitted on"""
        used = {}
        for record in self.fit_records:
            used.setdefault(record.target, set()).update(record.predictors)
        return used


def encode_working(dataset):
    """
    Numeric working copy of the dataset

    Continuous variables as floats, binary / categorical variables as level
    codes (float). Missing cells are NaN.
    """
    columns = {}
    for var in dataset.variables:
        series = dataset.frame[var]
        if dataset.is_categorical(var):
            codes = dataset.codes(var, series).astype(float)
            codes[codes < 0] = np.nan
            columns[var] = codes
        else:
            columns[var] = series.to_numpy(dtype=float, na_value=np.nan)
    return pd.DataFrame(columns, columns=dataset.variables)


def placeholder(values, categorical):
    """Mean of the observed values, or the most frequent level code"""
    observed = values[~np.isnan(values)]
    if categorical:
        return float(np.bincount(observed.astype(np.int64)).argmax())
    return float(observed.mean())


def decode_into(dataset, working, missingness):
    """Copy of the input with only the originally-missing cells replaced"""
    completed = dataset.frame.copy()
    for var in missingness.incomplete_variables():
        rows = missingness.missing_rows(var)
        drawn = working[var].to_numpy()[rows]
        if dataset.is_categorical(var):
            levels = pd.Index(dataset.levels(var))
            drawn = levels.take(drawn.astype(np.int64)).to_numpy()
        elif ptypes.is_integer_dtype(completed[var].dtype) and np.any(drawn != np.round(drawn)):
            # Fractional draws (norm) into an integer column: widen to float
            completed[var] = completed[var].to_numpy(dtype=float, na_value=np.nan)
        column = completed.columns.get_loc(var)
        completed.iloc[rows, column] = drawn
    return completed


class ChainedEquations:
    """
    Parameters
    ----------
    graph : PredictorGraph
        Predictor sets and methods (read-only during the run)
    iterations : int
        Number of full passes over the incomplete variables
    donors : int
        Donor pool size for predictive mean matching
    min_observed : int
        Fewest observed rows a variable's model may be fitted on
    max_levels : int
        Most levels a polytomous target may have
    on_insufficient : {'raise', 'skip'}
        'raise' aborts the run when a variable has too few observed rows.
        'skip' leaves that variable at its placeholder and logs a warning.
    """

    def __init__(self, graph, iterations=10, donors=DEFAULT_DONORS,
                 min_observed=DEFAULT_MIN_OBSERVED, max_levels=DEFAULT_MAX_LEVELS,
                 on_insufficient='raise'):
        if iterations < 1:
            raise ConfigurationError(f"iterations must be >= 1, got {iterations}")
        if donors < 1:
            raise ConfigurationError(f"donors must be >= 1, got {donors}")
        if on_insufficient not in ON_INSUFFICIENT:
            raise ConfigurationError(
                f"on_insufficient must be one of {ON_INSUFFICIENT}, got {on_insufficient!r}"
            )
        self.graph = graph
        self.iterations = iterations
        self.donors = donors
        self.min_observed = min_observed
        self.max_levels = max_levels
        self.on_insufficient = on_insufficient

    def check_observed(self, dataset, missingness, order):
        """Variables too sparse to model; raises unless skipping is allowed"""
        minimum = max(self.min_observed, 1)
        skipped = []
        for var in order:
            n_observed = missingness.n_observed(var)
            if n_observed >= minimum:
                continue
            if self.on_insufficient == 'raise' or n_observed == 0:
                raise InsufficientDataError(var, n_observed, minimum)
            logger.warning(
                "variable_skipped",
                variable=var,
                n_observed=n_observed,
                minimum=minimum,
            )
            skipped.append(var)
        return skipped

    def run(self, dataset, random_state, missingness=None, seed=None):
        """
        Impute one completed dataset

        Parameters
        ----------
        dataset : Dataset
        random_state : numpy.random.RandomState
            Only source of randomness for this run
        missingness : MissingnessMatrix, optional
            Derived from `dataset` when omitted
        seed : int, optional
            Recorded on the result for reproducibility

        Returns
        -------
        ChainResult
        """
        start_time = time.time()

        if missingness is None:
            missingness = MissingnessMatrix.from_dataset(dataset)

        self.graph.validate(dataset, missingness, max_levels=self.max_levels)
        order = self.graph.visiting_order(missingness)
        skipped = self.check_observed(dataset, missingness, order)

        working = encode_working(dataset)
        for var in missingness.incomplete_variables():
            values = working[var].to_numpy()
            fill = placeholder(values, dataset.is_categorical(var))
            working[var] = np.where(np.isnan(values), fill, values)

        trace = []
        fit_records = []
        for iteration in range(1, self.iterations + 1):
            for target in order:
                if target in skipped:
                    continue

                column, record = impute(
                    target, working, dataset, missingness, self.graph, random_state,
                    donors=self.donors,
                    min_observed=self.min_observed,
                    max_levels=self.max_levels,
                    iteration=iteration,
                )
                working[target] = column
                fit_records.append(record)

                drawn = column[missingness.missing_rows(target)]
                variance = float(np.var(drawn, ddof=1)) if len(drawn) > 1 else 0.0
                trace.append((iteration, target, float(np.mean(drawn)), variance))

            logger.debug("iteration_completed", iteration=iteration, seed=seed)

        completed = decode_into(dataset, working, missingness)
        runtime = time.time() - start_time

        logger.info(
            "chain_completed",
            seed=seed,
            iterations=self.iterations,
            variables=len(order) - len(skipped),
            runtime=round(runtime, 3),
        )
        return ChainResult(completed, trace, fit_records, skipped, seed=seed, runtime=runtime)
