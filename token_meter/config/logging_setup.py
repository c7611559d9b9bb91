"""
Logging configuration.

Routes the package's log records through rich so they share the CLI's
console styling.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "token_meter"


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Attach a RichHandler to the package logger.

    Repeated calls only adjust the level.

    Args:
        level: Log level name

    Returns:
        The package logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level.upper())

    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)

    return logger
