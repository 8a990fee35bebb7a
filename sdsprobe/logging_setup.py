"""Logging configuration for the command line driver.

Library modules only create loggers with `logging.getLogger(__name__)`; a
handler is installed here, once, when the driver starts.
"""
from __future__ import annotations

import logging
from logging.config import dictConfig

_LEVELS = [logging.WARNING, logging.INFO, logging.DEBUG]


def _dict_config(level: int) -> dict:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s %(levelname)s:%(name)s:%(message)s",
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "default",
                "stream": "ext://sys.stderr",
            }
        },
        "root": {"level": logging.WARNING, "handlers": ["console"]},
        "loggers": {
            "sdsprobe": {"level": level},
        },
    }


def verbosity_level(verbosity: int) -> int:
    """Map a count of `-v` flags to a logging level."""
    return _LEVELS[max(0, min(verbosity, len(_LEVELS) - 1))]


def configure_logging(verbosity: int = 0) -> None:
    """Configure logging to stderr once.

    If the root logger already has handlers, return to prevent duplicate output.
    """
    root = logging.getLogger()
    if root.handlers:
        return
    dictConfig(_dict_config(verbosity_level(verbosity)))
