# Copyright (c) 2024-now SPD Learn Developers
# SPDX-License-Identifier: BSD-3-Clause
"""Logging setup for spd_centering.

All loggers live under the ``"spd_centering"`` namespace. The package only
installs a :class:`logging.NullHandler` on import; applications decide where
records go by calling :func:`configure_logging`.

Examples
--------
>>> from spd_centering.logging import get_logger
>>> logger = get_logger(__name__)
>>> logger.info("Centering 8 covariance matrices")

Show the Karcher iterations while debugging a slow mean:

>>> from spd_centering.logging import log_level
>>> with log_level("DEBUG"):
...     pass
"""

from __future__ import annotations

import logging
import sys

from contextlib import contextmanager
from typing import Literal

from rich.logging import RichHandler


LOGGER_NAME = "spd_centering"

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def _as_level(level: LogLevel | int) -> int:
    if isinstance(level, str):
        return getattr(logging, level.upper())
    return level


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a logger inside the spd_centering namespace.

    Parameters
    ----------
    name : str | None
        Module name. Names outside the package namespace are nested under
        it, so ``get_logger("pipeline")`` returns ``spd_centering.pipeline``.
        ``None`` returns the package root logger.

    Returns
    -------
    logging.Logger
    """
    if name is None:
        return logging.getLogger(LOGGER_NAME)
    if not name.startswith(LOGGER_NAME):
        name = f"{LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def set_log_level(level: LogLevel | int) -> None:
    """Set the level of the package root logger."""
    logging.getLogger(LOGGER_NAME).setLevel(_as_level(level))


def configure_logging(
    level: LogLevel | int = "INFO",
    use_rich: bool = True,
    format_string: str | None = None,
    show_path: bool = False,
    show_time: bool = True,
) -> None:
    """Attach a single handler to the package logger.

    Parameters
    ----------
    level : LogLevel | int
        Threshold for the logger and its handler. Default is ``"INFO"``.
    use_rich : bool
        Render records with :class:`rich.logging.RichHandler`. When False a
        plain stderr :class:`logging.StreamHandler` is used instead.
    format_string : str | None
        Format for the plain handler. Ignored with Rich.
    show_path : bool
        Rich only: print the emitting file and line.
    show_time : bool
        Rich only: print timestamps.

    Examples
    --------
    >>> configure_logging(level="DEBUG", use_rich=False)
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.handlers.clear()

    level = _as_level(level)
    logger.setLevel(level)

    handler: logging.Handler
    if use_rich:
        handler = RichHandler(
            level=level,
            show_path=show_path,
            show_time=show_time,
            rich_tracebacks=True,
            markup=False,
        )
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(format_string or DEFAULT_FORMAT))
        handler.setLevel(level)

    logger.addHandler(handler)
    logger.propagate = False


def disable_logging() -> None:
    """Silence every spd_centering logger."""
    logging.getLogger(LOGGER_NAME).setLevel(logging.CRITICAL + 1)


def enable_logging(level: LogLevel | int = "INFO") -> None:
    """Undo :func:`disable_logging`."""
    set_log_level(level)


@contextmanager
def log_level(level: LogLevel | int):
    """Temporarily change the package log level.

    Parameters
    ----------
    level : LogLevel | int
        Level used inside the ``with`` block; the previous level is restored
        on exit, including when the block raises.
    """
    logger = logging.getLogger(LOGGER_NAME)
    old_level = logger.level
    logger.setLevel(_as_level(level))
    try:
        yield
    finally:
        logger.setLevel(old_level)


_logger = get_logger()
if not _logger.handlers:
    _logger.addHandler(logging.NullHandler())
