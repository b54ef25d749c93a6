"""Core types: results, errors, configuration."""

from .config import ConfigError, EngineConfig, FeatureConfig, load_config
from .errors import ErrorCode, FireflyError
from .result import Err, Ok, Result, collect, is_err, is_ok

__all__ = [
    # config
    "ConfigError",
    "EngineConfig",
    "FeatureConfig",
    "load_config",
    # errors
    "ErrorCode",
    "FireflyError",
    # result
    "Err",
    "Ok",
    "Result",
    "collect",
    "is_err",
    "is_ok",
]
