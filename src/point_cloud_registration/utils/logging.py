"""
Logging Utilities

This module sets up logging for the package. Every module creates its logger
with ``setup_logger(__name__)``; the CLI adjusts verbosity afterwards with
``set_package_log_level``.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

PACKAGE_LOGGER_PREFIX = "point_cloud_registration"


def setup_logger(name: str,
                 level: int = logging.INFO,
                 log_file: Optional[str] = None) -> logging.Logger:
    """
    Set up a logger with consistent formatting.

    Args:
        name: Logger name (usually __name__)
        level: Logging level (default: logging.INFO)
        log_file: Optional log file path. If provided, logs will be written to this file

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Avoid adding multiple handlers
    if logger.handlers:
        return logger

    logger.setLevel(level)

    console_formatter = logging.Formatter(
        '%(asctime)s | %(levelname)s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    file_formatter = logging.Formatter(
        '%(asctime)s | %(levelname)s | %(processName)s[%(process)d] | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    return logger


def set_package_log_level(level: int | str, log_file: Optional[str] = None) -> None:
    """
    Change the level of every logger created by this package.

    Args:
        level: Logging level as int or name (e.g. "DEBUG")
        log_file: Optional log file that all package loggers also write to
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    file_handler = None
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s | %(levelname)s | %(processName)s[%(process)d] | %(name)s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))

    for name, logger in logging.root.manager.loggerDict.items():
        if not name.startswith(PACKAGE_LOGGER_PREFIX) or not isinstance(logger, logging.Logger):
            continue
        logger.setLevel(level)
        for handler in logger.handlers:
            handler.setLevel(level)
        if file_handler is not None and logger.handlers:
            logger.addHandler(file_handler)
    if file_handler is not None:
        file_handler.setLevel(level)
