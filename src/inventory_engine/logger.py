"""Logging setup for the service."""
from __future__ import annotations

import logging
import sys

from .config import Settings

PACKAGE_LOGGER = "inventory_engine"


def configure_logging(settings: Settings) -> logging.Logger:
    """Attach a console handler to the package logger.

    The handler is attached once; later calls only update levels.
    """

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(settings.log_level)

    if logger.handlers:
        for existing in logger.handlers:
            existing.setLevel(settings.log_level)
        return logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(settings.log_level)
    handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    logger.addHandler(handler)
    return logger


__all__ = ["configure_logging", "PACKAGE_LOGGER"]
