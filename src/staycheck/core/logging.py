"""Structured logging for staycheck.

This module provides consistent logging configuration
with support for both structured (JSON) and plain text formats.
"""

import logging
import sys
from typing import Any

from staycheck.core.config import get_settings


class StructuredFormatter(logging.Formatter):
    """JSON-formatted log output for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        import json
        from datetime import datetime

        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Passed as logger.info(..., extra={"extra_data": {...}})
        if hasattr(record, "extra_data"):
            log_data.update(record.extra_data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class PlainFormatter(logging.Formatter):
    """Human-readable plain text log format."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


def _build_handler(level: int, format: str) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    if format == "structured":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(PlainFormatter())
    return handler


def setup_logging(level: str = "INFO", format: str = "plain") -> None:
    """Configure the package root logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        format: Output format ("plain" or "structured")
    """
    root = logging.getLogger("staycheck")
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    if not root.handlers:
        root.addHandler(_build_handler(root.level, format))
        root.propagate = False


def get_logger(name: str) -> logging.Logger:
    """Get a configured logger for a module.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Only configure if not already configured
    if not logger.handlers:
        settings = get_settings()
        level = getattr(logging, settings.log_level.upper(), logging.INFO)
        logger.setLevel(level)
        logger.addHandler(_build_handler(level, settings.log_format))

        # Don't propagate to root logger
        logger.propagate = False

    return logger
