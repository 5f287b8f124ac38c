"""Logging configuration for multicrank."""

import logging
import os
import sys
from typing import Union


def parse_level(level: str) -> Union[int, str]:
    """Convert a level string into a value accepted by ``Logger.setLevel``.

    Numeric strings ("10", "20") are converted to int, names are upper-cased.
    """
    level = level.strip()
    return int(level) if level.isdigit() else level.upper()


def get_logger(name: str = "multicrank") -> logging.Logger:
    """Get a configured logger for the package.

    The logger uses MULTICRANK_LOG_LEVEL (or LOG_LEVEL) to determine the log level.
    If not set, defaults to INFO so that crank lifecycle events are visible.

    Returns:
        Configured logger instance for the package.
    """
    logger = logging.getLogger(name)

    # Only configure if not already configured
    if not logger.handlers:
        level = os.getenv("MULTICRANK_LOG_LEVEL", os.getenv("LOG_LEVEL", "INFO"))

        handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter(
            "[%(levelname)s] %(name)s - %(filename)s:%(lineno)d: %(message)s"
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

        # Will raise error if the level is not registered in
        # logging.getLevelNamesMapping()
        logger.setLevel(parse_level(level))

        # Prevent propagation to avoid duplicate logs
        logger.propagate = False

    return logger


def set_package_level(level: str) -> None:
    """Apply a log level to every multicrank logger created so far."""
    parsed = parse_level(level)
    for name in list(logging.root.manager.loggerDict):
        if name == "multicrank" or name.startswith("multicrank."):
            logging.getLogger(name).setLevel(parsed)


# Package logger instance
logger = get_logger()
