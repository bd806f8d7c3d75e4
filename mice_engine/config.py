"""
Configuration for the imputation engine

MiceConfig holds every tunable setting. `load_config` reads the same
settings from a YAML file (default: mice_config.yaml, shipped inside the
package) so a study can keep its imputation parameters in one place.
"""

import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .exceptions import ConfigurationError
from .methods import (
    DEFAULT_DONORS,
    DEFAULT_MAX_LEVELS,
    DEFAULT_MIN_OBSERVED,
    METHODS,
)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "mice_config.yaml"

# Largest seed numpy.random.RandomState accepts
MAX_SEED = 2 ** 32 - 1

# YAML section -> {yaml key: MiceConfig field}
SECTIONS = {
    'imputation': {
        'm': 'm',
        'iterations': 'iterations',
        'seed': 'seed',
        'donors': 'donors',
        'min_observed': 'min_observed',
        'max_levels': 'max_levels',
        'on_insufficient': 'on_insufficient',
    },
    'predictors': {
        'methods': 'methods',
        'exclude': 'exclude_predictors',
        'overrides': 'predictor_overrides',
        'visit_sequence': 'visit_sequence',
    },
    'pooling': {
        'alpha': 'alpha',
    },
    'execution': {
        'n_jobs': 'n_jobs',
        'timeout': 'timeout',
    },
}
REQUIRED_SECTIONS = ['imputation']


@dataclass(frozen=True)
class MiceConfig:
    """
    Imputation settings

    m: number of imputations; iterations: passes per imputation; seed: base
    seed (imputation i uses seed + i); donors: pmm donor pool size;
    min_observed: fewest observed rows a model is fitted on; max_levels:
    most levels for polyreg; on_insufficient: 'raise' or 'skip'; alpha:
    pooled CI level is 1 - alpha; n_jobs / timeout: joblib scheduling.
    """

    m: int = 5
    iterations: int = 10
    seed: Optional[int] = None
    donors: int = DEFAULT_DONORS
    min_observed: int = DEFAULT_MIN_OBSERVED
    max_levels: int = DEFAULT_MAX_LEVELS
    on_insufficient: str = 'raise'
    alpha: float = 0.05
    n_jobs: int = 1
    timeout: Optional[float] = None
    methods: Dict[str, str] = field(default_factory=dict)
    exclude_predictors: List[str] = field(default_factory=list)
    predictor_overrides: Dict[str, Dict[str, bool]] = field(default_factory=dict)
    visit_sequence: Optional[List[str]] = None

    def __post_init__(self):
        for name in ('m', 'iterations', 'donors', 'min_observed', 'max_levels'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")

        if self.seed is not None and (isinstance(self.seed, bool) or not isinstance(self.seed, int)):
            raise ConfigurationError(f"seed must be an integer or None, got {self.seed!r}")
        if self.seed is not None and not 0 <= self.seed <= MAX_SEED - (self.m - 1):
            raise ConfigurationError(
                f"seed must be in [0, {MAX_SEED - (self.m - 1)}] so that seeds "
                f"seed..seed+m-1 are valid, got {self.seed}"
            )
        if self.on_insufficient not in ('raise', 'skip'):
            raise ConfigurationError(
                f"on_insufficient must be 'raise' or 'skip', got {self.on_insufficient!r}"
            )
        if not 0 < self.alpha < 1:
            raise ConfigurationError(f"alpha must be in (0, 1), got {self.alpha!r}")
        if self.n_jobs == 0:
            raise ConfigurationError("n_jobs must be non-zero")
        if self.timeout is not None and self.timeout <= 0:
            raise ConfigurationError(f"timeout must be positive, got {self.timeout!r}")

        for variable, method in self.methods.items():
            if method is not None and method not in METHODS:
                raise ConfigurationError(
                    f"Unknown method {method!r}, expected one of {sorted(METHODS)}",
                    variable=variable,
                )

    def replace(self, **changes):
        unknown = set(changes) - {f.name for f in dataclasses.fields(self)}
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {sorted(unknown)}")
        return dataclasses.replace(self, **changes)

    def apply_to_graph(self, graph):
        """Apply the method / predictor overrides to a predictor graph"""
        for target, method in self.methods.items():
            graph.set_method(target, method)
        for source in self.exclude_predictors:
            graph.exclude_predictor(source)
        for target, sources in self.predictor_overrides.items():
            for source, enabled in sources.items():
                graph.set_predictor(target, source, bool(enabled))
        if self.visit_sequence is not None:
            graph.visit_sequence = self.visit_sequence
        return graph

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


def config_from_dict(raw):
    """Build a MiceConfig from the sectioned mapping used in YAML files"""
    if not isinstance(raw, dict):
        raise ConfigurationError("Configuration must be a mapping")

    missing = [s for s in REQUIRED_SECTIONS if s not in raw]
    if missing:
        raise ConfigurationError(f"Missing required sections in config: {', '.join(missing)}")

    unknown_sections = set(raw) - set(SECTIONS)
    if unknown_sections:
        raise ConfigurationError(f"Unknown config sections: {sorted(unknown_sections)}")

    values = {}
    for section, keys in SECTIONS.items():
        body = raw.get(section) or {}
        if not isinstance(body, dict):
            raise ConfigurationError(f"Config section {section!r} must be a mapping")
        unknown = set(body) - set(keys)
        if unknown:
            raise ConfigurationError(
                f"Unknown keys in section {section!r}: {sorted(unknown)}"
            )
        for key, value in body.items():
            values[keys[key]] = value

    return MiceConfig(**values)


def load_config(config_path=None):
    """
    Load imputation configuration from a YAML file

    Parameters
    ----------
    config_path : str or Path, optional
        Path to config file. If None, uses the mice_config.yaml shipped with the package.

    Returns
    -------
    MiceConfig

    Examples
    --------
    >>> config = load_config()
    >>> print(config.m, config.iterations)
    20 20
    """
    config_path = DEFAULT_CONFIG_PATH if config_path is None else Path(config_path)

    if not config_path.exists():
        raise ConfigurationError(f"Imputation config file not found: {config_path}")

    with open(config_path, 'r') as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {exc}") from exc

    return config_from_dict(raw)
