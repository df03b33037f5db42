"""
Logging Configuration

Structured logging setup for the service. JSON output for production,
human-readable output for development. structlog loggers used by the
orchestration core render through the same stdlib handler.
"""

import json
import logging
import os
import sys
import traceback
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

import structlog


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    PRETTY = "pretty"
    SIMPLE = "simple"


SERVICE_NAME = os.getenv("SERVICE_NAME", "personacall")
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

_RESERVED_ATTRS = {
    "name", "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "lineno", "funcName", "created",
    "msecs", "relativeCreated", "thread", "threadName",
    "processName", "process", "message", "exc_info", "exc_text",
    "stack_info", "taskName",
}

# Fields hoisted to the top level of a JSON record
_CONTEXT_FIELDS = ("request_id", "user_id", "conversation_id", "call_sid", "provider")


def _record_extra(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED_ATTRS and not key.startswith("_")
    }


# =============================================================================
# Formatters
# =============================================================================


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        extra = _record_extra(record)
        extra.update(LogContext.all())

        result: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "service": SERVICE_NAME,
            "environment": ENVIRONMENT,
        }
        for key in _CONTEXT_FIELDS:
            if extra.get(key):
                result[key] = extra.pop(key)
        if extra:
            result["context"] = extra

        if record.exc_info:
            result["error"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
            }
            result["stack_trace"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(result, default=str)


class PrettyFormatter(logging.Formatter):
    """Human-readable log formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        timestamp = datetime.utcnow().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        level = f"{color}{record.levelname:8}{self.RESET}"
        logger = f"\033[90m{record.name}\033[0m"

        message = f"{timestamp} | {level} | {logger} | {record.getMessage()}"

        extra = _record_extra(record)
        extra.update(LogContext.all())
        if extra:
            message += " | " + " ".join(f"{k}={v}" for k, v in extra.items())

        if record.exc_info:
            message += f"\n{''.join(traceback.format_exception(*record.exc_info))}"

        return message


class SimpleFormatter(logging.Formatter):
    """Simple log formatter without colors."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.utcnow().strftime("%Y-%m-%d %H:%M:%S")
        return f"{timestamp} [{record.levelname}] {record.name}: {record.getMessage()}"


# =============================================================================
# Setup
# =============================================================================


def _configure_structlog() -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            # Event name becomes the message, bound keys become record extras
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def setup_logging(
    level: str = "INFO",
    format: str = LogFormat.PRETTY.value,
    service_name: Optional[str] = None,
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Log format (json, pretty, simple)
        service_name: Service name for log entries
    """
    global SERVICE_NAME

    if service_name:
        SERVICE_NAME = service_name

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))

    if format == LogFormat.JSON.value:
        formatter: logging.Formatter = JSONFormatter()
    elif format == LogFormat.PRETTY.value:
        formatter = PrettyFormatter()
    else:
        formatter = SimpleFormatter()

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    # Suppress noisy third-party loggers
    for noisy in ("httpx", "httpcore", "twilio.http_client", "aiosqlite", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    _configure_structlog()

    root_logger.info(
        "Logging configured",
        extra={"level": level, "format": format, "service": SERVICE_NAME},
    )


def get_logger(name: str) -> logging.Logger:
    """Get a stdlib logger instance with the given name."""
    return logging.getLogger(name)


# =============================================================================
# Context Logging
# =============================================================================


class LogContext:
    """
    Request-scoped fields added to every log line.

    Backed by structlog's contextvars, so values are isolated per task.

    Usage:
        with LogContext(request_id="abc123", user_id="user1"):
            logger.info("Processing request")
    """

    def __init__(self, **kwargs: Any):
        self._kwargs = kwargs
        self._tokens: Dict[str, Any] = {}

    def __enter__(self) -> "LogContext":
        self._tokens = structlog.contextvars.bind_contextvars(**self._kwargs)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        structlog.contextvars.reset_contextvars(**self._tokens)

    @classmethod
    def all(cls) -> Dict[str, Any]:
        """Get all context values."""
        return structlog.contextvars.get_contextvars()

    @classmethod
    def clear(cls) -> None:
        structlog.contextvars.clear_contextvars()


__all__ = [
    "LogFormat",
    "JSONFormatter",
    "PrettyFormatter",
    "SimpleFormatter",
    "setup_logging",
    "get_logger",
    "LogContext",
]
