"""
Core infrastructure shared by every layer: logging setup and
request-scoped log context.
"""

from .logging import (
    LogFormat,
    setup_logging,
    get_logger,
    LogContext,
)

__all__ = [
    "LogFormat",
    "setup_logging",
    "get_logger",
    "LogContext",
]
