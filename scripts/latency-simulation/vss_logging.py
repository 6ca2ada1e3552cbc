"""Logging setup shared by the sweep driver, the example report and the web API."""

from __future__ import annotations

import sys

from loguru import logger

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
DEFAULT_LOG_LEVEL = "WARNING"
LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"


def configure_logging(level: str = DEFAULT_LOG_LEVEL) -> str:
    """Replace loguru's default sink with a stderr sink at *level*.

    Returns the normalised (upper-case) level.

    Raises
    ------
    ValueError
        If *level* is not one of ``LOG_LEVELS``.
    """
    normalised = level.upper()
    if normalised not in LOG_LEVELS:
        raise ValueError(
            f"Invalid log level '{level}'. Must be one of: {', '.join(LOG_LEVELS)}"
        )
    logger.remove()
    logger.add(sys.stderr, level=normalised, format=LOG_FORMAT)
    return normalised
