"""Core module exports."""

from codemap.core.errors import (
    CodemapError,
    ConfigError,
    ErrorCode,
    NotFoundError,
    ParseError,
    StoreError,
)
from codemap.core.logging import (
    clear_run_id,
    configure_logging,
    get_logger,
    get_run_id,
    set_run_id,
)

__all__ = [
    # Errors
    "CodemapError",
    "ConfigError",
    "ErrorCode",
    "NotFoundError",
    "ParseError",
    "StoreError",
    # Logging
    "clear_run_id",
    "configure_logging",
    "get_logger",
    "get_run_id",
    "set_run_id",
]
