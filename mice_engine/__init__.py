"""
mice_engine: Multiple Imputation by Chained Equations

Typical use:

    from mice_engine import generate, analyze, ols, pool

    collection = generate(frame, m=20, iterations=20, seed=42)
    pooled = pool(analyze(collection, ols("y ~ x1 + x2")))
    print(pooled.to_frame())
"""

from .ampute import Amputer, ampute
from .analysis import analyze, from_statsmodels, ols
from .chained import ChainedEquations, ChainResult
from .config import MiceConfig, config_from_dict, load_config
from .dataset import Dataset, VariableType
from .driver import ImputationCollection, MultipleImputer, generate
from .exceptions import (
    ConfigurationError,
    DataError,
    DegenerateFitError,
    ImputationRunError,
    ImputationTimeoutError,
    InsufficientDataError,
    InsufficientImputationsError,
    MiceError,
    PoolingError,
    PredictorGraphError,
    StatisticalError,
    TooManyLevelsError,
    UnsupportedMethodError,
)
from .logging_utils import get_logger, setup_logging
from .methods import METHODS, FitRecord, get_method
from .missingness import MissingnessMatrix
from .pooling import AnalysisResult, PooledResult, pool, pool_scalar
from .predictor_graph import PredictorGraph

__version__ = "0.1.0"
