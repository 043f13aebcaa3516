"""Configuration models and loading."""

from codemap.config.loader import load_config
from codemap.config.models import (
    CodemapConfig,
    DatabaseConfig,
    IndexConfig,
    IndexerConfig,
    LoggingConfig,
    LogOutputConfig,
    WatchConfig,
)

__all__ = [
    "CodemapConfig",
    "DatabaseConfig",
    "IndexConfig",
    "IndexerConfig",
    "LogOutputConfig",
    "LoggingConfig",
    "WatchConfig",
    "load_config",
]
