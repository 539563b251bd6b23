"""Logging helpers shared by every restview module."""

import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
ROOT_LOGGER_NAME = "restview"

_configured = False


def configure_logging(level: int = logging.INFO, stream: Optional[object] = None) -> None:
    """
    Attach a single stream handler to the restview root logger.

    Safe to call more than once; later calls only adjust the level.
    """
    global _configured
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)
    if _configured:
        return
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a module logger living under the restview namespace."""
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)
