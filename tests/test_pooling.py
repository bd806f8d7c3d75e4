"""Tests for Rubin's-rules pooling"""

import numpy as np
import pandas as pd
import pytest

from mice_engine import (
    AnalysisResult,
    InsufficientImputationsError,
    PoolingError,
    pool,
    pool_scalar,
)
from mice_engine.pooling import LAMBDA_FLOOR, barnard_rubin_df, rubin_df


def results_from(estimates, variances, names=('a',)):
    return [
        AnalysisResult(pd.Series(est, index=list(names)), pd.Series(var, index=list(names)))
        for est, var in zip(estimates, variances)
    ]


class TestRubinsRules:

    def test_known_values(self):
        pooled = pool_scalar([1.0, 2.0, 3.0], [0.5, 0.5, 0.5])

        assert pooled.estimate['estimate'] == pytest.approx(2.0)
        assert pooled.within['estimate'] == pytest.approx(0.5)
        assert pooled.between['estimate'] == pytest.approx(1.0)
        assert pooled.total['estimate'] == pytest.approx(0.5 + 1.0 + 1.0 / 3)
        assert pooled.riv['estimate'] == pytest.approx((4 / 3) / 0.5)

        lambda_ = (4 / 3) / (0.5 + 1.0 + 1.0 / 3)
        assert pooled.lambda_['estimate'] == pytest.approx(lambda_)
        assert pooled.df['estimate'] == pytest.approx(2 / lambda_ ** 2)

    def test_total_at_least_within(self):
        rng = np.random.RandomState(0)
        estimates = rng.normal(size=(10, 3))
        variances = rng.uniform(0.1, 1.0, size=(10, 3))
        pooled = pool(results_from(estimates, variances, names=('a', 'b', 'c')))

        assert (pooled.total >= pooled.within).all()

    def test_identical_estimates(self):
        pooled = pool_scalar([1.5] * 5, [0.2] * 5)

        assert pooled.between['estimate'] == 0
        assert pooled.total['estimate'] == pytest.approx(0.2)
        assert pooled.riv['estimate'] == 0
        assert np.isfinite(pooled.df['estimate'])

    def test_confidence_interval(self):
        pooled = pool_scalar([1.0, 1.2, 0.8, 1.1], [0.04] * 4, alpha=0.1)
        frame = pooled.to_frame()

        assert 'ci_lower_90' in frame.columns
        lower, upper = pooled.ci_lower['estimate'], pooled.ci_upper['estimate']
        assert lower < pooled.estimate['estimate'] < upper
        assert 0 <= pooled.p_value['estimate'] <= 1
        assert pooled.fmi['estimate'] == pytest.approx(
            (pooled.riv['estimate'] + 2 / (pooled.df['estimate'] + 3)) / (pooled.riv['estimate'] + 1)
        )

    def test_barnard_rubin_with_dfcom(self):
        pooled = pool_scalar([1.0, 2.0, 3.0], [0.5, 0.5, 0.5], dfcom=10)
        lambda_ = pooled.lambda_['estimate']

        assert pooled.dfcom == 10
        assert pooled.df['estimate'] == pytest.approx(barnard_rubin_df(3, lambda_, 10))
        assert pooled.df['estimate'] < 10

    def test_dfcom_from_results(self):
        results = [
            AnalysisResult(pd.Series([1.0 + i]), pd.Series([0.5]), df_resid=df)
            for i, df in enumerate([30, 28, 29])
        ]

        assert pool(results).dfcom == 28

    def test_degrees_of_freedom_floor(self):
        assert rubin_df(5, 0.0) == pytest.approx(4 / LAMBDA_FLOOR ** 2)
        assert barnard_rubin_df(5, 0.0, 100) < 100


class TestPoolingErrors:

    def test_single_imputation(self):
        with pytest.raises(InsufficientImputationsError) as exc_info:
            pool_scalar([1.0], [0.1])
        assert exc_info.value.m == 1

    def test_no_results(self):
        with pytest.raises(InsufficientImputationsError):
            pool([])

    def test_mismatched_names(self):
        results = results_from([[1.0], [2.0]], [[0.1], [0.1]])
        results.append(AnalysisResult(pd.Series([1.0], index=['b']), pd.Series([0.1], index=['b'])))

        with pytest.raises(PoolingError):
            pool(results)

    def test_non_finite(self):
        with pytest.raises(PoolingError):
            pool_scalar([1.0, np.nan], [0.1, 0.1])

    def test_negative_variance(self):
        with pytest.raises(PoolingError):
            pool_scalar([1.0, 2.0], [0.1, -0.1])

    def test_bad_alpha(self):
        with pytest.raises(PoolingError):
            pool_scalar([1.0, 2.0], [0.1, 0.1], alpha=1.5)

    def test_length_mismatch(self):
        with pytest.raises(PoolingError):
            pool_scalar([1.0, 2.0, 3.0], [0.1, 0.1])


class TestAnalysisResult:

    def test_covariance_diagonal(self):
        cov = pd.DataFrame([[0.4, 0.1], [0.1, 0.9]], index=['a', 'b'], columns=['a', 'b'])
        result = AnalysisResult(pd.Series([1.0, 2.0], index=['a', 'b']), cov)

        assert result.variances.tolist() == [0.4, 0.9]

    def test_variances_reordered(self):
        result = AnalysisResult(
            pd.Series([1.0, 2.0], index=['a', 'b']),
            pd.Series([0.9, 0.4], index=['b', 'a']),
        )

        assert result.variances.tolist() == [0.4, 0.9]

    def test_tuple_coercion(self):
        result = AnalysisResult.coerce((pd.Series([1.0]), [0.5], 20))

        assert result.df_resid == 20
        assert result.variances.tolist() == [0.5]

    def test_rejects_other_types(self):
        with pytest.raises(PoolingError):
            AnalysisResult.coerce({'a': 1.0})

    def test_misaligned(self):
        with pytest.raises(PoolingError):
            AnalysisResult(pd.Series([1.0, 2.0], index=['a', 'b']), pd.Series([0.1], index=['a']))
