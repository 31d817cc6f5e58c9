"""Shared logging utilities for the match engine.

Usage example:
    from govcon_match_engine.observability.logging import get_logger

    logger = get_logger("govcon_match_engine.result_cache")
    logger.info("Cache hit for %s", fingerprint[:12])
"""

from __future__ import annotations

import logging
import time

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"


def get_logger(name: str, level: int | str = logging.INFO) -> logging.Logger:
    """Return a logger with UTC timestamps and a single stream handler.

    Args:
        name: Logger name (use a stable module-qualified name).
        level: Level applied the first time the logger is configured.

    Returns:
        A logger that does not propagate to the root logger.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(fmt=_LOG_FORMAT, datefmt=_LOG_DATE_FORMAT)
        formatter.converter = time.gmtime
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(level)
        logger.propagate = False
    return logger


def set_engine_log_level(level: int | str) -> None:
    """Apply a level to every engine logger created so far."""
    for name, candidate in logging.root.manager.loggerDict.items():
        if name.startswith("govcon_match_engine") and isinstance(candidate, logging.Logger):
            candidate.setLevel(level)
