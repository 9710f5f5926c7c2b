"""Logging setup for the console host."""
from __future__ import annotations

import logging
from pathlib import Path

PACKAGE_LOGGER = "yarnloom"
_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(level: int | str = logging.WARNING, log_file: Path | str | None = None) -> logging.Logger:
    """Configure the package logger with a console handler and an optional file handler."""
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.setLevel(level)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        file_handler.setLevel(level)
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger


__all__ = ["PACKAGE_LOGGER", "setup_logging"]
