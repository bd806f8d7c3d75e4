"""
Multiple-Imputation Driver
==========================

Runs the chained-equations iterator m times, each with its own RandomState
seeded with `seed + index`, and collects the completed datasets in
imputation order.

Runs are independent (read-only dataset and predictor graph, private working
copy and random state) and are scheduled with joblib, one task per
imputation. The first failing run aborts the ones not yet finished; runs that
completed before the failure are handed back on the raised error, untouched.
"""

import time
from concurrent.futures import TimeoutError as FuturesTimeoutError
from multiprocessing import TimeoutError as PoolTimeoutError

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from .chained import ChainedEquations
from .config import MiceConfig
from .dataset import Dataset
from .exceptions import (
    ConfigurationError,
    ImputationRunError,
    ImputationTimeoutError,
    MiceError,
)
from .logging_utils import get_logger
from .missingness import MissingnessMatrix
from .predictor_graph import PredictorGraph

logger = get_logger(__name__)

MAX_SEED = 2 ** 31 - 1


class ImputationCollection:
    """
    The original dataset plus m completed copies.

    Index 0 is the unimputed input; indexes 1..m are the imputations, in
    imputation order.
    """

    def __init__(self, dataset, missingness, graph, results, iterations, seed):
        self.dataset = dataset
        self.missingness = missingness
        self.graph = graph
        self.results = list(results)
        self.iterations = iterations
        self.seed = seed

    @property
    def m(self):
        return len(self.results)

    @property
    def seeds(self):
        return [r.seed for r in self.results]

    def __len__(self):
        return self.m

    def __iter__(self):
        for result in self.results:
            yield result.completed

    def __getitem__(self, index):
        return self.complete(index)

    def complete(self, index=1):
        """Dataset `index`: 0 is the original, 1..m the imputations"""
        if index == 0:
            return self.dataset.frame.copy()
        if not 1 <= index <= self.m:
            raise IndexError(f"Imputation index must be in 0..{self.m}, got {index}")
        return self.results[index - 1].completed.copy()

    def long(self, include_original=False):
        """
        All imputations stacked, with `.imp` (imputation index) and `.id`
        (row position) columns
        """
        start = 0 if include_original else 1
        frames = []
        for index in range(start, self.m + 1):
            frame = self.complete(index).reset_index(drop=True)
            frame.insert(0, '.id', np.arange(len(frame)))
            frame.insert(0, '.imp', index)
            frames.append(frame)
        return pd.concat(frames, ignore_index=True)

    def imputed_values(self, variable):
        """Rows x m table of the values drawn for `variable`'s missing cells"""
        rows = self.missingness.missing_rows(variable)
        column = self.dataset.frame.columns.get_loc(variable)
        table = {
            index: result.completed.iloc[rows, column].to_numpy()
            for index, result in enumerate(self.results, start=1)
        }
        return pd.DataFrame(table, index=self.dataset.frame.index[rows])

    def trace_frame(self):
        """Chain means / variances of every imputation, with an `.imp` column"""
        frames = []
        for index, result in enumerate(self.results, start=1):
            frame = result.trace_frame()
            frame.insert(0, '.imp', index)
            frames.append(frame)
        return pd.concat(frames, ignore_index=True)

    @property
    def fit_records(self):
        return [record for result in self.results for record in result.fit_records]

    def predictors_used(self):
        """Variable -> every predictor it was fitted on, across all runs"""
        used = {}
        for record in self.fit_records:
            used.setdefault(record.target, set()).update(record.predictors)
        return used

    def __repr__(self):
        return (
            f"ImputationCollection(m={self.m}, iterations={self.iterations}, "
            f"seed={self.seed}, missing={self.missingness.total_missing()})"
        )


def _run_one(chain, dataset, missingness, index, seed):
    """Single imputation run; returns (index, result) or (index, error)"""
    try:
        random_state = np.random.RandomState(seed)
        return index, chain.run(dataset, random_state, missingness=missingness, seed=seed)
    except MiceError as exc:
        return index, exc


class MultipleImputer:
    """
    Multiple imputation with a fixed configuration

    Parameters
    ----------
    config : MiceConfig, optional
        Imputation settings (defaults to MiceConfig())
    """

    def __init__(self, config=None, **overrides):
        config = config or MiceConfig()
        if overrides:
            config = config.replace(**overrides)
        self.config = config

    def build_graph(self, dataset, missingness=None):
        """Default predictor graph with the configured overrides applied"""
        graph = PredictorGraph.default(dataset, missingness)
        return self.config.apply_to_graph(graph)

    def generate(self, data, graph=None, types=None):
        """
        Generate m completed datasets

        Parameters
        ----------
        data : Dataset or pandas.DataFrame
        graph : PredictorGraph, optional
            Used as-is when given; otherwise the default graph plus the
            configured overrides
        types : dict, optional
            Variable types, when `data` is a DataFrame

        Returns
        -------
        ImputationCollection
        """
        config = self.config
        dataset = data if isinstance(data, Dataset) else Dataset(data, types=types)
        missingness = MissingnessMatrix.from_dataset(dataset)

        if graph is None:
            graph = self.build_graph(dataset, missingness)
        else:
            graph = graph.copy()

        # Configuration and data errors surface before any run starts
        graph.validate(dataset, missingness, max_levels=config.max_levels)

        seed = config.seed
        if seed is None:
            seed = int(np.random.randint(0, MAX_SEED - config.m))
        seeds = [seed + index for index in range(config.m)]

        chain = ChainedEquations(
            graph,
            iterations=config.iterations,
            donors=config.donors,
            min_observed=config.min_observed,
            max_levels=config.max_levels,
            on_insufficient=config.on_insufficient,
        )
        chain.check_observed(dataset, missingness, graph.visiting_order(missingness))

        logger.info(
            "imputation_started",
            m=config.m,
            iterations=config.iterations,
            seed=seed,
            n_jobs=config.n_jobs,
            incomplete=missingness.incomplete_variables(),
            missing=missingness.total_missing(),
        )
        start_time = time.time()
        deadline = None if config.timeout is None else start_time + config.timeout

        completed = {}
        parallel = Parallel(
            n_jobs=config.n_jobs,
            timeout=config.timeout,
            return_as='generator',
        )
        tasks = parallel(
            delayed(_run_one)(chain, dataset, missingness, index, s)
            for index, s in enumerate(seeds)
        )
        try:
            for index, outcome in tasks:
                if isinstance(outcome, MiceError):
                    logger.error(
                        "imputation_failed",
                        imputation=index + 1,
                        error=str(outcome),
                        completed=len(completed),
                    )
                    raise ImputationRunError(index, outcome, completed) from outcome
                completed[index] = outcome
                if deadline is not None and time.time() > deadline and len(completed) < config.m:
                    raise TimeoutError(f"wall-clock budget of {config.timeout}s exhausted")
        except (TimeoutError, FuturesTimeoutError, PoolTimeoutError) as exc:
            logger.error("imputation_timeout", timeout=config.timeout, completed=len(completed))
            raise ImputationTimeoutError(config.timeout, completed) from exc
        finally:
            close = getattr(tasks, 'close', None)
            if close is not None:
                close()

        runtime = time.time() - start_time
        logger.info("imputation_completed", m=config.m, runtime=round(runtime, 3))

        results = [completed[index] for index in range(config.m)]
        return ImputationCollection(
            dataset, missingness, graph, results, config.iterations, seed
        )


def generate(data, graph=None, m=5, iterations=10, seed=None, types=None, **options):
    """
    Functional entry point: `MultipleImputer(m=..., ...).generate(data, graph)`

    Extra keyword options are MiceConfig fields (donors, n_jobs, timeout, ...).
    """
    if m < 1:
        raise ConfigurationError(f"m must be >= 1, got {m}")
    imputer = MultipleImputer(m=m, iterations=iterations, seed=seed, **options)
    return imputer.generate(data, graph=graph, types=types)
