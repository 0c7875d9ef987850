"""Logging configuration.

Scheduled syncs run on worker threads, so every line carries the thread name.
"""

import logging
import sys
from typing import Any, Dict

from pythonjsonlogger import jsonlogger

from verification_service.config import settings

_DATEFMT = "%Y-%m-%dT%H:%M:%S"


def _formatter() -> logging.Formatter:
    if settings.environment == "production":
        # dict messages from log_event become top-level JSON keys
        return jsonlogger.JsonFormatter(
            fmt="%(asctime)s %(name)s %(levelname)s %(threadName)s %(message)s",
            datefmt=_DATEFMT,
        )
    return logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s [%(threadName)s] - %(message)s",
        datefmt=_DATEFMT,
    )


def get_logger(name: str) -> logging.Logger:
    """Get configured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Logger writing to stdout at the configured level
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_formatter())
    logger.addHandler(handler)
    logger.setLevel(settings.log_level)
    logger.propagate = False
    return logger


def log_event(logger: logging.Logger, event: str, level: int = logging.INFO, **payload: Any) -> None:
    """Emit one structured event line."""
    structured: Dict[str, Any] = {"event": event, **payload}
    logger.log(level, structured)
