"""
Structured logging for the OTA update engine.

This module provides JSON-formatted structured logging. Every engine module
obtains its logger through get_logger() so that a single setup_logging() call
configures the whole ota_updater logger tree.

Features:
- JSON-formatted log output for machine-readable logs
- Consistent field structure across all log entries
- Extra fields (track, version, state) carried through to the output
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ota_updater.config import LoggingConfig

ROOT_LOGGER_NAME = "ota_updater"

# Default log format for plain-text output
DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Attributes present on every LogRecord; anything else came from `extra`
_RESERVED_RECORD_KEYS = frozenset(
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
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    }
)


class JSONFormatter(logging.Formatter):
    """
    A logging formatter that outputs log records as JSON objects.

    Each log record is formatted as a JSON object with consistent fields:
    - timestamp: ISO 8601 formatted timestamp in UTC
    - level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - logger: Logger name
    - message: Log message
    - Additional fields from the record's extra dict
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format the log record as a JSON string.

        Args:
            record: The log record to format.

        Returns:
            JSON-formatted string representation of the log record.
        """
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key in set(record.__dict__.keys()) - _RESERVED_RECORD_KEYS:
            value = getattr(record, key, None)
            if value is not None:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


def setup_logging(
    config: LoggingConfig | None = None,
    *,
    level: str = "INFO",
    json_format: bool = True,
    log_to_stdout: bool = True,
) -> logging.Logger:
    """
    Configure the logging system for the update engine.

    Args:
        config: Optional LoggingConfig object with logging settings.
            If provided, overrides other parameters.
        level: Default log level if no config is provided.
        json_format: Whether to use JSON formatting (default: True).
        log_to_stdout: Whether to log to stdout (default: True).

    Returns:
        The ota_updater package logger.

    Example:
        >>> from ota_updater.logging import setup_logging
        >>> logger = setup_logging(level="DEBUG")
        >>> logger.info("Engine started", extra={"interval_seconds": 1800})
    """
    if config is not None:
        log_level = "DEBUG" if config.debug_mode else config.level.upper()
        json_format = config.json_format
        log_to_stdout = config.log_to_stdout
    else:
        log_level = level.upper()

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, log_level, logging.INFO))

    # Remove existing handlers to avoid duplicates
    logger.handlers.clear()

    if log_to_stdout:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(getattr(logging, log_level, logging.INFO))

        if json_format:
            handler.setFormatter(JSONFormatter())
        else:
            handler.setFormatter(logging.Formatter(DEFAULT_LOG_FORMAT))

        logger.addHandler(handler)

    logger.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a specific module.

    The "ota_updater." prefix is added automatically if not present, so the
    returned logger is always a child of the package logger.

    Args:
        name: The name for the logger, typically __name__ of the calling module.

    Returns:
        A configured logger instance.
    """
    if not name.startswith(ROOT_LOGGER_NAME):
        name = f"{ROOT_LOGGER_NAME}.{name}"

    return logging.getLogger(name)
