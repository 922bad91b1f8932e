# Subsync Logging
# Rich-backed logging setup for the subsync package

import logging
from pathlib import Path
from typing import Optional, Union

from rich.console import Console as RichConsole
from rich.logging import RichHandler

LOGGER_NAME = "subsync"
FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def setup_logging(
    level: Union[int, str] = logging.WARNING,
    *,
    log_file: Optional[Union[str, Path]] = None,
    console: Optional[RichConsole] = None,
) -> logging.Logger:
    """
    Configure the package logger.

    Replaces handlers installed by a previous call, so it is safe to call
    once per CLI invocation.

    Args:
        level: Log level name or number.
        log_file: Optional file receiving the same records in plain text.
        console: Rich console for the terminal handler (stderr by default).

    Returns:
        The configured ``subsync`` logger.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level.upper() if isinstance(level, str) else level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    rich_handler = RichHandler(
        console=console or RichConsole(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    rich_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(rich_handler)

    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger
