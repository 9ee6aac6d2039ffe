"""Logging utilities for the CLI and pipeline modules."""

from __future__ import annotations

import logging
from pathlib import Path


DEFAULT_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
CONSOLE_LOG_FORMAT = "%(levelname)s %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def level_for_verbosity(verbosity: int) -> int:
    """Map CLI verbosity (-1 quiet, 0 default, 1+ verbose) to a logging level."""

    if verbosity < 0:
        return logging.ERROR
    if verbosity == 0:
        return logging.INFO
    return logging.DEBUG


def configure_logging(level: int = logging.INFO, log_file: Path | None = None) -> logging.Logger:
    """Configure process-wide console and optional file logging."""

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(logging.Formatter(fmt=CONSOLE_LOG_FORMAT))
    stream_handler.setLevel(level)
    root_logger.addHandler(stream_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(fmt=DEFAULT_LOG_FORMAT, datefmt=DEFAULT_DATE_FORMAT))
        file_handler.setLevel(level)
        root_logger.addHandler(file_handler)

    logger = logging.getLogger("driverpack")
    logger.setLevel(level)
    return logger
