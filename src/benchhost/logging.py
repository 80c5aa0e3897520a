"""Logging setup for benchhost.

The host logs through the ``benchhost`` logger tree. The console handler
shows INFO and above unless the CLI verbosity flags say otherwise, and an
optional file handler always records DEBUG so a failed run can be inspected
afterwards. Executors forward suite-side log lines as ``{"level", "log"}``
messages; :func:`resolve_level` maps their level names onto ``logging``, and
the config's ``log_level`` decides which of them are forwarded at all.
"""

from __future__ import annotations

import logging
from pathlib import Path

_LOGGER_NAME = "benchhost"
_DEFAULT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
_CONSOLE_FORMAT = "%(message)s"

# Level names used in config files and by suite-side log messages.
LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "off": logging.CRITICAL + 10,
}


def resolve_level(name: str | int | None, default: int = logging.INFO) -> int:
    """Translate a level name (``"warn"``, ``"debug"``...) to a logging level.

    Integers are passed through; unknown names fall back to *default*.
    """
    if name is None:
        return default
    if isinstance(name, int):
        return name
    return LEVELS.get(name.strip().lower(), default)


def setup_logging(
    *,
    verbose: bool = False,
    quiet: bool = False,
    log_file: Path | None = None,
) -> logging.Logger:
    """Configure and return the root benchhost logger.

    Args:
        verbose: If True, set console log level to DEBUG.
        quiet: If True, set console log level to WARNING. Ignored if *verbose* is True.
        log_file: If provided, add a file handler at DEBUG level to this path.

    Returns:
        The configured root logger for benchhost.
    """
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    # Remove any existing handlers to allow reconfiguration.
    logger.handlers.clear()

    console = logging.StreamHandler()
    if verbose:
        console.setLevel(logging.DEBUG)
    elif quiet:
        console.setLevel(logging.WARNING)
    else:
        console.setLevel(logging.INFO)
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    logger.addHandler(console)

    if log_file is not None:
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter(_DEFAULT_FORMAT))
        logger.addHandler(fh)

    return logger
