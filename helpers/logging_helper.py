"""Logging helper for the suggester.

Provides a small factory to create per-component loggers that:
- write to `logs/<component>.log` by default using RotatingFileHandler
- use a single FileHandler per logger (avoid duplicate handlers on re-import)
- use an ISO-like UTC timestamp in the formatter

Usage:
    from helpers.logging_helper import get_logger
    logger = get_logger("Recommendations")
    logger.info("started")
"""
from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
import os
import time
from typing import Optional

import config


DEFAULT_MAX_BYTES = 5_000_000
DEFAULT_BACKUP_COUNT = 5
DEFAULT_FORMAT = "[%(asctime)s] [%(levelname)-8s] [%(name)s] %(message)s"


def _utc_formatter(fmt: Optional[str] = None) -> logging.Formatter:
    formatter = logging.Formatter(fmt or DEFAULT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    formatter.converter = time.gmtime
    return formatter


def _configured_level() -> int:
    level = logging.getLevelName(config.LOG_LEVEL)
    return level if isinstance(level, int) else logging.INFO


def get_logger(
    name: str,
    logfile: Optional[str] = None,
    level: Optional[int] = None,
    max_bytes: int = DEFAULT_MAX_BYTES,
    backup_count: int = DEFAULT_BACKUP_COUNT,
    console: bool = False,
) -> logging.Logger:
    """Return a configured logger for `name`.

    - If `logfile` is not provided, uses `logs/{name.lower()}.log`.
    - If `level` is not provided, uses `LOG_LEVEL` from config.
    - Ensures the `logs/` directory exists.
    - Avoids adding duplicate FileHandlers when a module is imported twice.
    - Optionally adds a console StreamHandler when `console=True` (useful for local dev).
    """
    if level is None:
        level = _configured_level()

    logger = logging.getLogger(name)
    logger.setLevel(level)

    logs_dir = os.path.join(os.getcwd(), "logs")
    try:
        os.makedirs(logs_dir, exist_ok=True)
    except OSError:
        # If we can't create logs dir, fall back to current working directory
        logs_dir = os.getcwd()

    if logfile:
        logfile_path = logfile if os.path.isabs(logfile) else os.path.join(logs_dir, logfile)
    else:
        logfile_path = os.path.join(logs_dir, f"{name.lower()}.log")

    file_handler_exists = False
    for h in logger.handlers:
        if isinstance(h, RotatingFileHandler):
            existing = os.path.abspath(getattr(h, "baseFilename", ""))
            if existing == os.path.abspath(logfile_path):
                file_handler_exists = True
                break

    if not file_handler_exists:
        fh = RotatingFileHandler(logfile_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
        fh.setLevel(level)
        fh.setFormatter(_utc_formatter())
        logger.addHandler(fh)

    if console:
        has_console = any(
            isinstance(h, logging.StreamHandler) and not isinstance(h, RotatingFileHandler)
            for h in logger.handlers
        )
        if not has_console:
            ch = logging.StreamHandler()
            ch.setLevel(level)
            ch.setFormatter(_utc_formatter())
            logger.addHandler(ch)

    # Avoid propagating to root logger so logs don't double-print
    logger.propagate = False

    return logger


__all__ = ["get_logger"]
