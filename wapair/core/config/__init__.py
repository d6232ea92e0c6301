"""Configuration package for wapair.

This package provides Pydantic configuration models and loading utilities.
"""

from wapair.core.config.loader import (
    check_unexpanded_vars,
    expand_env_vars,
    expand_env_vars_recursive,
    load_config,
)
from wapair.core.config.models import (
    ApiConfig,
    ArchiveConfig,
    Config,
    LoggingConfig,
    ProtocolConfig,
    SessionsConfig,
    SweepConfig,
)

__all__ = [
    # Models
    "ApiConfig",
    "ArchiveConfig",
    "Config",
    "LoggingConfig",
    "ProtocolConfig",
    "SessionsConfig",
    "SweepConfig",
    # Loaders
    "check_unexpanded_vars",
    "expand_env_vars",
    "expand_env_vars_recursive",
    "load_config",
]
