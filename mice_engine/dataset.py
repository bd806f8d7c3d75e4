"""
Typed Dataset
=============

A pandas DataFrame together with a fixed semantic type per variable:

- continuous: numeric values, imputed with pmm / norm
- binary: exactly two levels, imputed with logreg
- categorical: more than two levels, imputed with polyreg

Missing cells are whatever pandas treats as missing (NaN, None, pd.NA).
"""

from enum import Enum

import numpy as np
import pandas as pd
from pandas.api import types as ptypes

from .exceptions import ConfigurationError, DataError


class VariableType(Enum):
    CONTINUOUS = 'continuous'
    BINARY = 'binary'
    CATEGORICAL = 'categorical'

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ConfigurationError(
                f"Unknown variable type {value!r}, expected one of "
                f"{[t.value for t in cls]}"
            ) from None


def _observed_levels(series):
    if isinstance(series.dtype, pd.CategoricalDtype):
        return list(series.cat.categories)

    levels = pd.unique(series.dropna())
    try:
        return sorted(levels)
    except TypeError:
        # Mixed, unorderable values keep first-appearance order
        return list(levels)


def infer_type(series):
    """Infer the semantic type of one column from its dtype and levels"""
    if ptypes.is_bool_dtype(series.dtype):
        return VariableType.BINARY
    if ptypes.is_numeric_dtype(series.dtype):
        return VariableType.CONTINUOUS
    if len(_observed_levels(series)) == 2:
        return VariableType.BINARY
    return VariableType.CATEGORICAL


class Dataset:
    """
    Tabular input to the imputation engine.

    Parameters
    ----------
    frame : pandas.DataFrame
        Records as rows, variables as columns. Copied on construction.
    types : dict, optional
        Variable name -> VariableType (or its string value). Variables not
        listed are inferred from their dtype.
    """

    def __init__(self, frame, types=None):
        if not isinstance(frame, pd.DataFrame):
            raise ConfigurationError(
                f"Dataset expects a pandas DataFrame, got {type(frame).__name__}"
            )
        if not frame.columns.is_unique:
            duplicated = frame.columns[frame.columns.duplicated()].tolist()
            raise ConfigurationError(f"Duplicate column names: {duplicated}")

        self._frame = frame.copy()
        self._variables = list(self._frame.columns)

        types = dict(types or {})
        unknown = set(types) - set(self._variables)
        if unknown:
            raise ConfigurationError(
                f"Types declared for unknown variables: {sorted(map(str, unknown))}"
            )

        self._types = {}
        self._levels = {}
        for var in self._variables:
            series = self._frame[var]
            if var in types:
                var_type = VariableType.parse(types[var])
            else:
                var_type = infer_type(series)

            if var_type is VariableType.CONTINUOUS:
                if not ptypes.is_numeric_dtype(series.dtype) or ptypes.is_bool_dtype(series.dtype):
                    raise ConfigurationError(
                        f"Variable declared continuous but has dtype {series.dtype}",
                        variable=var,
                    )
                if np.isinf(series.to_numpy(dtype=float, na_value=np.nan)).any():
                    raise DataError("Infinite values are not valid observations", variable=var)
            else:
                levels = _observed_levels(series)
                if var_type is VariableType.BINARY and len(levels) > 2:
                    raise ConfigurationError(
                        f"Variable declared binary but has {len(levels)} levels",
                        variable=var,
                    )
                self._levels[var] = levels

            self._types[var] = var_type

    @classmethod
    def from_records(cls, records, types=None, columns=None):
        """Build a Dataset from an ordered sequence of mappings"""
        return cls(pd.DataFrame.from_records(list(records), columns=columns), types=types)

    @property
    def frame(self):
        """The input data. Treat as read-only."""
        return self._frame

    @property
    def variables(self):
        return list(self._variables)

    @property
    def types(self):
        return dict(self._types)

    @property
    def n_rows(self):
        return len(self._frame)

    def type_of(self, variable):
        try:
            return self._types[variable]
        except KeyError:
            raise ConfigurationError("Unknown variable", variable=variable) from None

    def is_categorical(self, variable):
        return self.type_of(variable) is not VariableType.CONTINUOUS

    def levels(self, variable):
        """Fixed level set of a binary or categorical variable"""
        if not self.is_categorical(variable):
            raise ConfigurationError("Continuous variables have no levels", variable=variable)
        return list(self._levels[variable])

    def n_levels(self, variable):
        return len(self.levels(variable))

    def codes(self, variable, values):
        """Integer level codes for `values` (-1 where missing)"""
        return pd.Categorical(values, categories=self.levels(variable)).codes.astype(np.int64)

    def __repr__(self):
        summary = ', '.join(f"{v}:{t.value}" for v, t in self._types.items())
        return f"Dataset(n_rows={self.n_rows}, variables=[{summary}])"
