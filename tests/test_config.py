"""Tests for configuration objects and YAML loading"""

from pathlib import Path

import pytest

import mice_engine
from mice_engine import (
    ConfigurationError,
    MiceConfig,
    MultipleImputer,
    PredictorGraph,
    config_from_dict,
    load_config,
)
from mice_engine.config import DEFAULT_CONFIG_PATH, MAX_SEED


class TestMiceConfig:

    def test_defaults(self):
        config = MiceConfig()

        assert config.m == 5
        assert config.iterations == 10
        assert config.seed is None
        assert config.donors == 5
        assert config.on_insufficient == 'raise'

    @pytest.mark.parametrize('changes', [
        {'m': 0},
        {'iterations': -1},
        {'donors': 2.5},
        {'m': True},
        {'seed': 'abc'},
        {'seed': -5},
        {'seed': 2 ** 32 - 1, 'm': 2},
        {'on_insufficient': 'ignore'},
        {'alpha': 1.0},
        {'n_jobs': 0},
        {'timeout': 0},
        {'methods': {'sepal_length': 'cart'}},
    ])
    def test_invalid_values(self, changes):
        with pytest.raises(ConfigurationError):
            MiceConfig(**changes)

    def test_seed_range_covers_every_imputation(self):
        config = MiceConfig(seed=2 ** 32 - 2, m=2)

        assert config.seed + config.m - 1 == MAX_SEED
        with pytest.raises(ConfigurationError):
            config.replace(m=3)

    def test_replace(self):
        config = MiceConfig().replace(m=20)

        assert config.m == 20
        with pytest.raises(ConfigurationError):
            config.replace(imputations=3)

    def test_frozen(self):
        with pytest.raises(AttributeError):
            MiceConfig().m = 3

    def test_apply_to_graph(self, iris_dataset):
        config = MiceConfig(
            methods={'sepal_length': 'norm'},
            exclude_predictors=['petal_width'],
            predictor_overrides={'species': {'sepal_width': False}},
            visit_sequence=['species', 'sepal_length'],
        )
        graph = config.apply_to_graph(PredictorGraph.default(iris_dataset))

        assert graph.method('sepal_length') == 'norm'
        assert 'petal_width' not in graph.predictors('sepal_length')
        assert graph.predictors('species') == ('sepal_length', 'petal_length')
        assert graph.visit_sequence == ['species', 'sepal_length']


class TestLoadConfig:

    def test_default_file(self):
        config = load_config()

        assert config.m == 20
        assert config.iterations == 20
        assert config.seed == 42
        assert config.alpha == 0.05

    def test_default_file_ships_with_package(self):
        assert DEFAULT_CONFIG_PATH.parent == Path(mice_engine.__file__).parent
        assert DEFAULT_CONFIG_PATH.exists()

    def test_custom_file(self, tmp_path):
        path = tmp_path / "study.yaml"
        path.write_text(
            "imputation:\n"
            "  m: 10\n"
            "  seed: 7\n"
            "predictors:\n"
            "  methods:\n"
            "    y: norm\n"
            "  exclude: [id]\n"
            "execution:\n"
            "  n_jobs: 2\n"
        )
        config = load_config(path)

        assert config.m == 10
        assert config.seed == 7
        assert config.methods == {'y': 'norm'}
        assert config.exclude_predictors == ['id']
        assert config.n_jobs == 2
        assert config.iterations == 10

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_config(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("imputation: [m: 3\n")

        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_missing_section(self):
        with pytest.raises(ConfigurationError):
            config_from_dict({'pooling': {'alpha': 0.1}})

    def test_unknown_keys(self):
        with pytest.raises(ConfigurationError):
            config_from_dict({'imputation': {'m': 3, 'chains': 2}})
        with pytest.raises(ConfigurationError):
            config_from_dict({'imputation': {'m': 3}, 'plots': {}})

    def test_not_a_mapping(self):
        with pytest.raises(ConfigurationError):
            config_from_dict(['imputation'])

    def test_loaded_config_drives_imputer(self, iris_dataset):
        config = config_from_dict({
            'imputation': {'m': 2, 'iterations': 2, 'seed': 3},
            'predictors': {'exclude': ['petal_width']},
        })
        graph = MultipleImputer(config).build_graph(iris_dataset)
        assert 'petal_width' not in graph.predictors('species')
