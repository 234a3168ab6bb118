"""Logging configuration for typo."""

import json
import logging
import sys
from typing import Any

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def setup_logging(
    level: int = logging.WARNING,
    json_format: bool = False,
) -> logging.Logger:
    """
    Configure logging for the indexer.

    Everything goes to stderr so that nothing ever mixes with index output.

    Args:
        level: Logging level (default: WARNING)
        json_format: If True, output JSON-formatted logs

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger("typo")
    logger.setLevel(level)

    # Clear existing handlers
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    if json_format:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler.setFormatter(formatter)
    logger.addHandler(handler)

    return logger


def level_from_verbosity(verbosity: int, default: str = "WARNING") -> int:
    """Map a repeated -v count onto a logging level."""
    if verbosity >= 2:
        return logging.DEBUG
    if verbosity == 1:
        return logging.INFO
    return logging.getLevelName(default.upper())


class JsonFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Include any extra fields
        if hasattr(record, "extra"):
            log_data.update(record.extra)

        return json.dumps(log_data)


def get_logger(name: str | None = None) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name (will be prefixed with 'typo.')

    Returns:
        Logger instance
    """
    if name:
        return logging.getLogger(f"typo.{name}")
    return logging.getLogger("typo")


# Module-level logger for convenience
logger = get_logger()
