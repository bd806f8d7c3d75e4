"""
Missingness Matrix
==================

Which cells of the input were missing. Derived once from the unimputed data
and never updated: filling a cell during imputation does not change the fact
that it was originally missing.
"""

import numpy as np
import pandas as pd


class MissingnessMatrix:
    """Read-only boolean grid, True where the original cell is missing"""

    def __init__(self, mask, variables, index=None):
        mask = np.array(mask, dtype=bool)
        if mask.ndim != 2 or mask.shape[1] != len(variables):
            raise ValueError(
                f"Mask shape {mask.shape} does not match {len(variables)} variables"
            )
        mask.setflags(write=False)

        self._mask = mask
        self._variables = list(variables)
        self._positions = {var: j for j, var in enumerate(self._variables)}
        self._index = pd.RangeIndex(mask.shape[0]) if index is None else index

    @classmethod
    def from_frame(cls, frame):
        return cls(frame.isna().to_numpy(), frame.columns, index=frame.index)

    @classmethod
    def from_dataset(cls, dataset):
        return cls.from_frame(dataset.frame)

    @property
    def shape(self):
        return self._mask.shape

    @property
    def variables(self):
        return list(self._variables)

    @property
    def values(self):
        return self._mask

    def column(self, variable):
        return self._mask[:, self._positions[variable]]

    def is_missing(self, row, variable):
        return bool(self._mask[row, self._positions[variable]])

    def missing_rows(self, variable):
        """Row positions where `variable` was missing"""
        return np.flatnonzero(self.column(variable))

    def observed_rows(self, variable):
        return np.flatnonzero(~self.column(variable))

    def n_missing(self, variable):
        return int(self.column(variable).sum())

    def n_observed(self, variable):
        return self._mask.shape[0] - self.n_missing(variable)

    def incomplete_variables(self):
        """Variables with at least one missing cell, in declaration order"""
        counts = self._mask.sum(axis=0)
        return [var for var, count in zip(self._variables, counts) if count > 0]

    def total_missing(self):
        return int(self._mask.sum())

    def to_frame(self):
        return pd.DataFrame(self._mask, columns=self._variables, index=self._index)

    def pattern(self):
        """
        Missing-data pattern table.

        One row per distinct pattern (1 = observed, 0 = missing), sorted from
        fewest to most missing cells. Columns are ordered by increasing
        number of missing cells. `count` is the number of records sharing the
        pattern and `n_missing` the number of missing variables in it. The
        final `total` row holds per-variable missing counts.
        """
        counts = self._mask.sum(axis=0)
        order = [self._variables[j] for j in np.argsort(counts, kind='stable')]

        observed = pd.DataFrame(
            (~self._mask).astype(int), columns=self._variables
        )[order]

        table = (
            observed.groupby(order, sort=False)
            .size()
            .rename('count')
            .reset_index()
        )
        table['n_missing'] = len(order) - table[order].sum(axis=1)
        table = table.sort_values(['n_missing', 'count'], ascending=[True, False])
        table = table[['count'] + order + ['n_missing']].reset_index(drop=True)

        totals = {var: int(self.n_missing(var)) for var in order}
        totals['count'] = int(self._mask.shape[0])
        totals['n_missing'] = self.total_missing()
        table.loc['total'] = pd.Series(totals)

        return table.astype(int)

    def __repr__(self):
        return (
            f"MissingnessMatrix(shape={self.shape}, "
            f"missing={self.total_missing()}, "
            f"incomplete={self.incomplete_variables()})"
        )
