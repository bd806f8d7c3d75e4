"""Tests for typed datasets and variable type inference"""

import numpy as np
import pandas as pd
import pytest

from mice_engine import ConfigurationError, DataError, Dataset, VariableType


class TestVariableTypes:

    def test_inferred_types(self, mixed_frame):
        ds = Dataset(mixed_frame)

        assert ds.type_of('x') is VariableType.CONTINUOUS
        assert ds.type_of('flag') is VariableType.BINARY
        assert ds.type_of('group') is VariableType.CATEGORICAL

    def test_iris_species_is_categorical(self, iris_dataset):
        assert iris_dataset.type_of('species') is VariableType.CATEGORICAL
        assert iris_dataset.levels('species') == ['setosa', 'versicolor', 'virginica']

    def test_declared_types_override_inference(self):
        frame = pd.DataFrame({'code': [1.0, 2.0, 1.0, np.nan]})
        ds = Dataset(frame, types={'code': 'binary'})

        assert ds.type_of('code') is VariableType.BINARY
        assert ds.levels('code') == [1.0, 2.0]

    def test_parse_rejects_unknown_type(self):
        with pytest.raises(ConfigurationError):
            VariableType.parse('ordinal')

    def test_binary_with_three_levels(self):
        frame = pd.DataFrame({'v': ['a', 'b', 'c']})

        with pytest.raises(ConfigurationError) as exc_info:
            Dataset(frame, types={'v': VariableType.BINARY})
        assert exc_info.value.variable == 'v'

    def test_continuous_needs_numbers(self):
        frame = pd.DataFrame({'v': ['a', 'b']})

        with pytest.raises(ConfigurationError):
            Dataset(frame, types={'v': 'continuous'})

    def test_types_for_unknown_variable(self):
        with pytest.raises(ConfigurationError):
            Dataset(pd.DataFrame({'v': [1.0]}), types={'w': 'continuous'})

    def test_infinite_values_rejected(self):
        frame = pd.DataFrame({'v': [1.0, np.inf, np.nan, 4.0], 'w': [1.0, 2.0, 3.0, 4.0]})

        with pytest.raises(DataError) as exc_info:
            Dataset(frame)
        assert exc_info.value.variable == 'v'


class TestDataset:

    def test_rejects_non_frame(self):
        with pytest.raises(ConfigurationError):
            Dataset([[1, 2], [3, 4]])

    def test_rejects_duplicate_columns(self):
        frame = pd.DataFrame([[1.0, 2.0]], columns=['a', 'a'])

        with pytest.raises(ConfigurationError):
            Dataset(frame)

    def test_copies_input(self, small_frame):
        ds = Dataset(small_frame)
        small_frame.loc[0, 'c'] = 100.0

        assert ds.frame.loc[0, 'c'] == 1.0

    def test_codes(self, mixed_frame):
        ds = Dataset(mixed_frame)
        codes = ds.codes('flag', mixed_frame['flag'])

        assert set(np.unique(codes)) == {-1, 0, 1}
        assert (codes == -1).sum() == 15

    def test_levels_of_continuous(self, small_frame):
        with pytest.raises(ConfigurationError):
            Dataset(small_frame).levels('a')

    def test_from_records(self):
        ds = Dataset.from_records([
            {'age': 31.0, 'smoker': 'no'},
            {'age': None, 'smoker': 'yes'},
        ])

        assert ds.n_rows == 2
        assert ds.variables == ['age', 'smoker']
        assert ds.type_of('smoker') is VariableType.BINARY
