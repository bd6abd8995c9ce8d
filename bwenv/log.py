"""
Logging setup for bwenv.

Logging is configured once at process start by the CLI with
`setup_logging` and removed again with `teardown_logging`. Library code
never configures handlers; components take a logger argument and fall back
to a module logger under the "bwenv" namespace.

Log messages name keys and counts only. Secret values are never logged.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "bwenv"

_handler: logging.Handler | None = None


def level_for(verbosity: int, quiet: bool = False) -> int:
    """Map a -v count to a logging level."""
    if quiet:
        return logging.ERROR
    if verbosity <= 0:
        return logging.WARNING
    if verbosity == 1:
        return logging.INFO
    return logging.DEBUG


def setup_logging(
    verbosity: int = 0,
    quiet: bool = False,
    level: str | None = None,
    console: Console | None = None,
) -> logging.Logger:
    """
    Attach a rich handler to the "bwenv" logger.

    Args:
        verbosity: Number of -v flags
        quiet: Only report errors
        level: Explicit level name; used when no -v flag is given
        console: Console to log to (default: stderr)

    Returns:
        The configured "bwenv" logger
    """
    global _handler

    teardown_logging()

    resolved = level_for(verbosity, quiet)
    if level and verbosity == 0 and not quiet:
        resolved = logging.getLevelName(level.upper())

    _handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        show_time=verbosity > 1,
        markup=False,
    )
    _handler.setFormatter(logging.Formatter("%(message)s"))

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(resolved)
    logger.addHandler(_handler)
    logger.propagate = False
    return logger


def teardown_logging() -> None:
    """Remove the handler installed by `setup_logging`."""
    global _handler

    if _handler is None:
        return

    logger = logging.getLogger(LOGGER_NAME)
    logger.removeHandler(_handler)
    _handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
    _handler = None


def get_logger(name: str) -> logging.Logger:
    """Return a child of the "bwenv" logger."""
    return logging.getLogger(f"{LOGGER_NAME}.{name}")
