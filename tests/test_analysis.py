"""Tests for applying an analysis to every imputed dataset"""

import pandas as pd
import pytest
import statsmodels.formula.api as smf

from mice_engine import AnalysisResult, PoolingError, analyze, from_statsmodels, generate, ols, pool


@pytest.fixture
def collection(iris_missing):
    return generate(iris_missing, m=3, iterations=3, seed=0)


class TestAnalyze:

    def test_ols_results(self, collection):
        results = analyze(collection, ols("sepal_length ~ sepal_width + petal_length"))

        assert len(results) == 3
        for result in results:
            assert isinstance(result, AnalysisResult)
            assert list(result.coefficients.index) == ['Intercept', 'sepal_width', 'petal_length']
            assert result.df_resid == 147

    def test_accepts_fitted_statsmodels(self, collection):
        results = analyze(collection, lambda frame: smf.ols("petal_width ~ sepal_length", data=frame).fit())

        assert len(results) == 3
        assert (results[0].variances > 0).all()

    def test_accepts_pairs(self, collection):
        def mean_length(frame):
            values = frame['sepal_length']
            return pd.Series([values.mean()], index=['mean']), [values.var() / len(values)]

        pooled = pool(analyze(collection, mean_length))
        assert pooled.names == ['mean']

    def test_rejects_unusable_result(self, collection):
        with pytest.raises(PoolingError):
            analyze(collection, lambda frame: frame['sepal_length'].mean())

    def test_from_statsmodels(self, iris):
        fitted = smf.ols("sepal_length ~ petal_length", data=iris).fit()
        result = from_statsmodels(fitted)

        assert result.coefficients['petal_length'] == pytest.approx(fitted.params['petal_length'])
        assert result.variances['petal_length'] == pytest.approx(fitted.bse['petal_length'] ** 2)
