"""
Shared fixtures: the iris data (150 records, 4 continuous measurements and a
3-level species factor), complete and with 7 + 7 cells removed.
"""

import numpy as np
import pandas as pd
import pytest
from sklearn.datasets import load_iris

from mice_engine import Dataset, MissingnessMatrix, ampute

IRIS_COLUMNS = ['sepal_length', 'sepal_width', 'petal_length', 'petal_width']


def load_iris_frame():
    bunch = load_iris(as_frame=True)
    frame = bunch.data.copy()
    frame.columns = IRIS_COLUMNS
    frame['species'] = pd.Categorical.from_codes(bunch.target, categories=list(bunch.target_names))
    return frame


@pytest.fixture
def iris():
    return load_iris_frame()


@pytest.fixture
def iris_missing(iris):
    return ampute(iris, counts={'sepal_length': 7, 'species': 7}, random_state=2024)


@pytest.fixture
def iris_dataset(iris_missing):
    return Dataset(iris_missing)


@pytest.fixture
def iris_missingness(iris_dataset):
    return MissingnessMatrix.from_dataset(iris_dataset)


@pytest.fixture
def small_frame():
    """Four rows, mixed types, a known missingness pattern"""
    return pd.DataFrame({
        'a': [1.0, np.nan, 3.0, np.nan],
        'b': [1.0, 2.0, np.nan, 4.0],
        'c': [1.0, 2.0, 3.0, 4.0],
    })


@pytest.fixture
def mixed_frame():
    """200 rows with a continuous, a binary and a categorical target"""
    rng = np.random.RandomState(7)
    n = 200
    x = rng.normal(size=n)
    z = rng.normal(size=n)
    y = 2.0 + 1.5 * x - 0.5 * z + rng.normal(scale=0.5, size=n)
    flag = np.where(x + rng.normal(scale=0.5, size=n) > 0, 'yes', 'no')
    group = np.array(['low', 'mid', 'high'])[np.digitize(z, [-0.5, 0.5])]

    frame = pd.DataFrame({'x': x, 'z': z, 'y': y, 'flag': flag, 'group': group})
    return ampute(frame, counts={'y': 20, 'flag': 15, 'group': 15}, random_state=11)
