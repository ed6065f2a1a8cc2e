"""Logging configuration."""

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any

from server_monitor.core.config import Settings

# LogRecord attributes that are never copied into the JSON payload
_RESERVED_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
        "request_id",
    }
)

# Extra fields whose values must never reach a log sink
_SENSITIVE_KEYS = frozenset(
    {
        "password",
        "new_password",
        "password_hash",
        "jwt_secret",
        "client_key",
        "client_key_hash",
        "token",
    }
)


class RequestIDFilter(logging.Filter):
    """Filter to inject request ID into log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """
        Add request ID to log record if available.

        Args:
            record: Log record to modify

        Returns:
            True to allow the record to be logged
        """
        # Import here to avoid circular dependency
        from server_monitor.api.middleware.request_id import get_request_id

        if not hasattr(record, "request_id"):
            request_id = get_request_id()
            record.request_id = request_id if request_id else None

        return True


class JSONFormatter(logging.Formatter):
    """JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        """
        Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON formatted log string
        """
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if getattr(record, "request_id", None):
            log_data["request_id"] = record.request_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS:
                continue
            log_data[key] = "***" if key in _SENSITIVE_KEYS else value

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable text formatter."""

    def __init__(self) -> None:
        fmt = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        super().__init__(fmt=fmt, datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        """Prefix the message with the request ID when one is set."""
        if getattr(record, "request_id", None):
            original_msg = record.getMessage()
            record.msg = f"[{record.request_id}] {original_msg}"
            record.args = ()

        return super().format(record)


def setup_logging(settings: Settings) -> None:
    """
    Configure application logging.

    Args:
        settings: Application settings
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.addFilter(RequestIDFilter())

    formatter: logging.Formatter
    if settings.log_format == "json":
        formatter = JSONFormatter()
    else:
        formatter = TextFormatter()

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    logging.getLogger("uvicorn").setLevel(logging.INFO)
    # Request lines are logged by RequestIDMiddleware
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
