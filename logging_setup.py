#!/usr/bin/env python3
"""
logging_setup.py
================
Configures the root logger with a console handler and a rotating file
handler (``console.log``, 1 MB, 2 backups).  Raw engine traffic at DEBUG
goes to its own rotating ``engine_debug.log`` regardless of *level*.

Call :func:`setup_logging` once at startup, before the session is built.
"""

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def setup_logging(level: int = logging.INFO, log_dir: Optional[str] = None) -> None:
    """Apply a unified log format to both console and file output.

    Parameters
    ----------
    level : int
        Minimum severity level (e.g. ``logging.DEBUG``, ``logging.INFO``).
    log_dir : str, optional
        Where the log files go; the working directory when omitted.
    """
    log_dir = log_dir or "."
    os.makedirs(log_dir, exist_ok=True)
    fmt = logging.Formatter(LOG_FORMAT)

    root = logging.getLogger()
    root.setLevel(level)

    ch = logging.StreamHandler()
    ch.setLevel(level)
    ch.setFormatter(fmt)

    fh = RotatingFileHandler(
        os.path.join(log_dir, "console.log"), maxBytes=1_000_000, backupCount=2
    )
    fh.setLevel(level)
    fh.setFormatter(fmt)

    root.handlers.clear()
    root.addHandler(ch)
    root.addHandler(fh)

    # ── Engine round-trips: always captured at DEBUG ─────────────────
    engine_logger = logging.getLogger("engine")
    engine_logger.setLevel(logging.DEBUG)
    for handler in list(engine_logger.handlers):
        engine_logger.removeHandler(handler)
        handler.close()
    dfh = RotatingFileHandler(
        os.path.join(log_dir, "engine_debug.log"), maxBytes=5_000_000, backupCount=2
    )
    dfh.setLevel(logging.DEBUG)
    dfh.setFormatter(fmt)
    engine_logger.addHandler(dfh)

    # Per-event publish lines stay out of the logs
    logging.getLogger("bus").setLevel(max(level, logging.INFO))
