"""
Logging configuration.

All modules log through loguru's global logger; this only decides where
records go.
"""
from __future__ import annotations

import sys

from loguru import logger

CONSOLE_FORMAT = "<level>{level: <8}</level> | <cyan>{name}</cyan> - <level>{message}</level>"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"


def configure_logging(level: str = "WARNING", log_file: str | None = None) -> None:
    """
    Replace loguru's default sink with our own.

    Args:
        level: Minimum level for the stderr sink
        log_file: Optional path for a DEBUG-level rotating file sink
    """
    logger.remove()
    logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT)

    if log_file:
        logger.add(
            log_file,
            level="DEBUG",
            format=FILE_FORMAT,
            rotation="10 MB",
            retention=5,
        )
