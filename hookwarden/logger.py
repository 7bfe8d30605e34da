"""
Package logger.

All diagnostics go to stderr (or a log file); stdout carries the decision
payload back to the host and must stay clean.
"""

import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

logger = logging.getLogger("hookwarden")
logger.addHandler(logging.NullHandler())


def configure_logging(level: str = "WARNING", log_file: Optional[str] = None) -> logging.Logger:
    """
    Attach a handler to the package logger.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ...)
        log_file: Optional file to append to instead of stderr

    Returns:
        The configured package logger
    """
    for handler in list(logger.handlers):
        if not isinstance(handler, logging.NullHandler):
            logger.removeHandler(handler)
            handler.close()

    if log_file:
        handler = logging.FileHandler(log_file, encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    logger.addHandler(handler)
    logger.setLevel(getattr(logging, str(level).upper(), logging.WARNING))
    return logger
