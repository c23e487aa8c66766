"""
Logging utilities.

Provides package-wide logger setup, a timing context manager and a
thread-safe progress tracker used while rendering large star fields.
"""

from __future__ import annotations

import logging
import os
import sys
import threading
from typing import Optional
from datetime import datetime


ROOT_LOGGER = "crowdfield"

CONSOLE_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


# =============================================================================
# Logger Setup
# =============================================================================

_loggers: dict = {}


def get_logger(
    name: str = ROOT_LOGGER,
    level: int = logging.INFO,
    log_file: Optional[str] = None,
) -> logging.Logger:
    """
    Get a configured logger.

    Handlers are attached to the package root logger only; module loggers
    such as ``crowdfield.psf`` propagate to it.

    Args:
        name: Logger name
        level: Logging level
        log_file: Optional file path for logging

    Returns:
        Configured logger instance
    """
    if name != ROOT_LOGGER and name.startswith(ROOT_LOGGER + "."):
        get_logger(ROOT_LOGGER)
        return logging.getLogger(name)

    if name in _loggers and log_file is None:
        return _loggers[name]

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.handlers = []  # Clear any existing handlers
    logger.propagate = False

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(fmt=CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(console_handler)

    if log_file:
        os.makedirs(os.path.dirname(log_file) or '.', exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(file_handler)

    _loggers[name] = logger
    return logger


def set_level(level: int):
    """Change the level of the package logger and its handlers."""
    logger = get_logger()
    logger.setLevel(level)
    for handler in logger.handlers:
        handler.setLevel(level)


class Timer:
    """
    Context manager for timing code blocks with logging.
    """

    def __init__(self, name: str, logger: Optional[logging.Logger] = None):
        self.name = name
        self.logger = logger or get_logger()
        self.start_time = None
        self.elapsed = 0.0

    def __enter__(self):
        self.start_time = datetime.now()
        self.logger.info(f"[{self.name}] Starting...")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed = (datetime.now() - self.start_time).total_seconds()
        if exc_type is None:
            self.logger.info(f"[{self.name}] Completed in {self.elapsed:.2f}s")
        else:
            self.logger.info(f"[{self.name}] Aborted after {self.elapsed:.2f}s ({exc_type.__name__})")
        return False


# =============================================================================
# Progress Tracking
# =============================================================================

class ProgressTracker:
    """
    Thread-safe progress tracker logging at 10% intervals.
    """

    def __init__(self, total: int, name: str = "Progress", logger: Optional[logging.Logger] = None):
        self.total = total
        self.name = name
        self.current = 0
        self.logger = logger or get_logger()
        self._lock = threading.Lock()

    def update(self, n: int = 1):
        """Update progress by n steps."""
        with self._lock:
            self.current += n
            current = self.current

        # Log progress at intervals
        if self.total > 0 and current % max(1, self.total // 10) == 0:
            pct = 100 * current / self.total
            self.logger.info(f"[{self.name}] {pct:.0f}% ({current}/{self.total})")

    @property
    def remaining(self) -> int:
        """Items remaining to process."""
        return max(0, self.total - self.current)

    @property
    def is_complete(self) -> bool:
        """Check if all items processed."""
        return self.current >= self.total
