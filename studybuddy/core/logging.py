"""Loguru sink configuration for the API server and the CLI."""

from __future__ import annotations

import sys

from loguru import logger

from config import get_settings

_FORMAT = "<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {name}:{line} | {message}"


def configure_logging(level: str | None = None, log_file: str | None = None) -> None:
    """
    Replace the default loguru sink.

    Args:
        level: Minimum level for stderr (defaults to LOG_LEVEL)
        log_file: Optional rotating file sink (defaults to LOG_FILE)
    """
    settings = get_settings()
    level = level or settings.log_level
    log_file = log_file if log_file is not None else settings.log_file

    logger.remove()
    logger.add(sys.stderr, level=level, format=_FORMAT)
    if log_file:
        logger.add(
            log_file,
            level="DEBUG",
            rotation="10 MB",
            retention=5,
            enqueue=True,
        )
