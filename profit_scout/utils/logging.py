"""Simple logging wrapper for profit_scout."""

import logging
import sys
from typing import Optional

_ROOT = "profit_scout"
_level = logging.INFO


def get_logger(name: str, level: Optional[int] = None) -> logging.Logger:
    """
    Return a configured logger with the given name.

    Logging format:  [LEVEL]  logger_name — message

    Parameters
    ----------
    name : str
        Typically __name__ of the calling module.
    level : int, optional
        Logging level; defaults to the level last passed to ``set_log_level``
        (INFO until then).

    Returns
    -------
    logging.Logger
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter(
            fmt="%(asctime)s  [%(levelname)s]  %(name)s — %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.propagate = False

    logger.setLevel(_level if level is None else level)
    return logger


def set_log_level(level: int) -> None:
    """Apply *level* to every profit_scout logger, existing and future."""
    global _level
    _level = level
    for name, logger in list(logging.root.manager.loggerDict.items()):
        if isinstance(logger, logging.Logger) and (name == _ROOT or name.startswith(_ROOT + ".")):
            logger.setLevel(level)


def preview(text: str | None, limit: int = 80) -> str:
    """Shorten user-supplied text for log lines so transcripts never land in logs."""
    if not text:
        return ""
    text = " ".join(text.split())
    if len(text) <= limit:
        return text
    return text[:limit] + "…"
