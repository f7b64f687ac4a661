from __future__ import annotations

import logging
import os
import sys
from typing import TextIO

DEFAULT_LOG_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(funcName)s:%(lineno)d - %(message)s"
)

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def resolve_level(level: str | int | None = None) -> int:
    if isinstance(level, int):
        return level
    name = level or os.environ.get("GHCONTRIB_LOG_LEVEL") or "WARNING"
    return _LEVELS.get(name.upper(), logging.WARNING)


def setup_logging(level: str | int | None = None, stream: TextIO | None = None) -> None:
    """
    Configure the ``ghcontrib`` logger hierarchy.

    Logs go to stderr by default so that JSON/CSV on stdout stays clean.
    Calling it again replaces the handler instead of stacking a new one.
    """
    numeric_level = resolve_level(level)

    root_logger = logging.getLogger("ghcontrib")
    root_logger.setLevel(numeric_level)
    root_logger.propagate = False

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(logging.Formatter(DEFAULT_LOG_FORMAT))
    root_logger.addHandler(console_handler)
