"""
File logging for the ``stream_coder`` package.

Modules only create ``logging.getLogger(__name__)`` loggers; nothing is
configured at import time.  Applications call :func:`setup_logger` once.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
DATE_FORMAT = "%H:%M:%S"


def setup_logger(log_dir: str = ".stream_coder/logs",
                 level: str | int = logging.DEBUG) -> logging.Logger:
    """Attach a timestamped log file to the ``stream_coder`` logger and return it."""
    os.makedirs(log_dir, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = os.path.join(log_dir, f"stream_coder_{timestamp}.log")

    logger = logging.getLogger("stream_coder")
    logger.setLevel(level)

    # File handler: everything at the configured level
    fh = logging.FileHandler(log_file, encoding="utf-8")
    fh.setLevel(level)
    fh.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(fh)

    return logger
