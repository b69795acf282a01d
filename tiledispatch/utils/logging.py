"""Central logging utilities for tiledispatch."""
from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional, Union

_LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"


def configure_logging(level: Union[int, str] = logging.INFO, log_file: Optional[Path] = None) -> None:
    """Configure the ``tiledispatch`` logger handlers.

    Parameters
    ----------
    level:
        Logging level (number or name such as ``"DEBUG"``). Defaults to
        ``logging.INFO``.
    log_file:
        Optional path to a file where logs should additionally be written. The
        directory is created if required.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logger = logging.getLogger("tiledispatch")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(level)

    # Progress notifications go to standard output, like the run summary.
    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    logger.addHandler(stream_handler)

    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        logger.addHandler(file_handler)


def get_logger(name: str, level: Optional[int] = None) -> logging.Logger:
    """Return a logger for the requested module.

    Parameters
    ----------
    name:
        Logger name, typically ``__name__`` of the caller.
    level:
        Optional logging level that overrides the package configuration for
        this logger.
    """
    logger = logging.getLogger(name)
    if level is not None:
        logger.setLevel(level)
    return logger


__all__ = ["configure_logging", "get_logger"]
