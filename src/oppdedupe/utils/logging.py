"""Logging helpers shared by every module."""

import logging
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_logger(name: str) -> logging.Logger:
    """Return a module logger (handlers are configured by the entrypoint)."""
    return logging.getLogger(name)


def configure_logging(level: str = "INFO", fmt: Optional[str] = None) -> None:
    """
    Install a single stream handler on the package logger.

    Safe to call more than once; an existing handler is replaced, not duplicated.
    """
    root = logging.getLogger("oppdedupe")
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(fmt or LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
