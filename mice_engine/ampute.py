"""
Missingness Simulation
======================

Removes values from a complete dataset to study imputation:

- MCAR (Missing Completely at Random): every row equally likely
- MAR (Missing at Random): removal probability follows a logistic score of a
  fully observed driver column, logit P(R_i = 1) = alpha_0 + strength * z_i

Exact per-column counts are honoured: rows are sampled without replacement
with the mechanism's probabilities as weights.
"""

import numpy as np
from pandas.api import types as ptypes
from scipy.special import expit

from .exceptions import ConfigurationError

MECHANISMS = ('MCAR', 'MAR')


class Amputer:
    """Missing-value generator for one or more target columns"""

    def __init__(
        self,
        counts=None,
        proportion=None,
        columns=None,
        mechanism='MCAR',
        driver=None,
        strength=1.0,
        random_state=None
    ):
        """
        Parameters
        ----------
        counts : dict, optional
            Column -> exact number of cells to remove
        proportion : float, optional
            Share of rows to remove in each of `columns` (used when `counts`
            is not given)
        columns : list, optional
            Columns amputed with `proportion` (default: all)
        mechanism : str
            'MCAR' or 'MAR'
        driver : str, optional
            MAR driver column; default is the first complete numeric column
            that is not itself amputed
        strength : float
            MAR slope on the standardized driver
        random_state : int or None
            Random seed for reproducibility
        """
        mechanism = mechanism.upper()
        if mechanism not in MECHANISMS:
            raise ConfigurationError(f"Unknown mechanism {mechanism!r}, expected {MECHANISMS}")
        if counts is None and proportion is None:
            raise ConfigurationError("Give either counts or proportion")
        if proportion is not None and not 0 <= proportion < 1:
            raise ConfigurationError(f"proportion must be in [0, 1), got {proportion}")

        self.counts = dict(counts) if counts is not None else None
        self.proportion = proportion
        self.columns = columns
        self.mechanism = mechanism
        self.driver = driver
        self.strength = strength
        self.random_state = random_state

    def _target_counts(self, frame):
        if self.counts is not None:
            targets = self.counts
        else:
            columns = list(frame.columns) if self.columns is None else list(self.columns)
            n_remove = int(round(self.proportion * len(frame)))
            targets = {col: n_remove for col in columns}

        for col, count in targets.items():
            if col not in frame.columns:
                raise ConfigurationError("Cannot ampute unknown column", variable=col)
            available = int(frame[col].notna().sum())
            if not 0 <= count <= available:
                raise ConfigurationError(
                    f"Cannot remove {count} values, {available} observed", variable=col
                )
        return targets

    def _row_weights(self, frame, targets):
        """Removal weights per row: uniform (MCAR) or logistic in the driver (MAR)"""
        n = len(frame)
        if self.mechanism == 'MCAR':
            return np.full(n, 1.0 / n)

        driver = self.driver
        if driver is None:
            candidates = [
                col for col in frame.columns
                if col not in targets
                and ptypes.is_numeric_dtype(frame[col].dtype)
                and frame[col].notna().all()
            ]
            if not candidates:
                raise ConfigurationError("MAR needs a complete numeric driver column")
            driver = candidates[0]
        elif driver in targets:
            raise ConfigurationError("MAR driver cannot be amputed itself", variable=driver)

        values = frame[driver].to_numpy(dtype=float)
        if np.isnan(values).any():
            raise ConfigurationError("MAR driver must be fully observed", variable=driver)

        spread = values.std()
        z = (values - values.mean()) / spread if spread > 0 else np.zeros(n)
        prob = expit(self.strength * z)
        return prob / prob.sum()

    def ampute(self, frame, seed=None):
        """
        Return a copy of `frame` with values removed

        Parameters
        ----------
        frame : pandas.DataFrame
            Data to ampute (not modified)
        seed : int or None
            Random seed (overrides self.random_state if provided)
        """
        if seed is None:
            seed = self.random_state
        rng = np.random.RandomState(seed)

        targets = self._target_counts(frame)
        weights = self._row_weights(frame, targets)

        amputed = frame.copy()
        for col, count in targets.items():
            if count == 0:
                continue
            if ptypes.is_integer_dtype(amputed[col].dtype):
                amputed[col] = amputed[col].astype(float)
            elif ptypes.is_bool_dtype(amputed[col].dtype):
                amputed[col] = amputed[col].astype(object)

            observed = np.flatnonzero(frame[col].notna().to_numpy())
            p = weights[observed] / weights[observed].sum()
            rows = rng.choice(observed, size=count, replace=False, p=p)
            amputed.iloc[rows, amputed.columns.get_loc(col)] = np.nan

        return amputed


def ampute(frame, counts=None, proportion=None, columns=None, mechanism='MCAR',
           driver=None, strength=1.0, random_state=None):
    """Functional shortcut for `Amputer(...).ampute(frame)`"""
    amputer = Amputer(
        counts=counts,
        proportion=proportion,
        columns=columns,
        mechanism=mechanism,
        driver=driver,
        strength=strength,
        random_state=random_state,
    )
    return amputer.ampute(frame)
