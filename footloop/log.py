"""Logging utilities for footloop."""
import logging
import sys
import os
import threading
from typing import Optional


# Thread-safe lock for logger initialization
_logger_init_lock = threading.Lock()


class FootloopFormatter(logging.Formatter):
    """Compact single-line formatter for footloop logs.

    Format: [{level[0]} {time} {module_basename[:9]}] {message}
    Example: [I 14:23:45.123 session  ] Looper session live (4 loops)
    """

    def format(self, record):
        level_char = record.levelname[0]

        # Module basename, truncated to 9 chars and right-padded
        module_name = record.name.split('.')[-1]
        module_padded = module_name[:9].ljust(9)

        timestamp = self.formatTime(record, "%H:%M:%S")
        msecs = f"{record.msecs:03.0f}"

        prefix = f"[{level_char} {timestamp}.{msecs} {module_padded}]"
        message = record.getMessage()

        return f"{prefix} {message}"


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Get logger for a footloop component.

    Args:
        name: Component name (usually __name__)
        level: Optional level (DEBUG/INFO/WARNING/ERROR)
               Falls back to FOOTLOOP_LOG_LEVEL env var, then INFO

    Returns:
        Configured logger instance

    Example:
        >>> from footloop.log import get_logger
        >>> logger = get_logger(__name__)
        >>> logger.info("Bridge started")
        [I 14:23:45.123 bridge   ] Bridge started
    """
    logger = logging.getLogger(name)

    if level is None:
        level = os.getenv("FOOTLOOP_LOG_LEVEL", "INFO")

    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    with _logger_init_lock:
        if not logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(FootloopFormatter())
            logger.addHandler(handler)

    return logger


def set_level(level: str, root: str = "footloop") -> None:
    """Apply a level to every footloop logger created so far.

    Loggers created afterwards pick the level up from FOOTLOOP_LOG_LEVEL,
    which is updated here too.
    """
    os.environ["FOOTLOOP_LOG_LEVEL"] = level
    value = getattr(logging, level.upper(), logging.INFO)
    for name, logger in list(logging.Logger.manager.loggerDict.items()):
        if not isinstance(logger, logging.Logger):
            continue
        if name == root or name.startswith(root + "."):
            logger.setLevel(value)
