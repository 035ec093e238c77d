import logging
import os
import sys
from typing import Optional, Union


class ColoredFormatter(logging.Formatter):
    """Custom formatter with colored output"""

    # ANSI color codes
    COLORS = {
        'DEBUG': '\033[36m',  # Cyan
        'INFO': '\033[32m',  # Green
        'WARNING': '\033[33m',  # Yellow
        'ERROR': '\033[31m',  # Red
        'CRITICAL': '\033[41m\033[37m',  # White on Red background
        'RESET': '\033[0m'
    }

    def __init__(self, fmt=None, datefmt=None, use_color: bool = True):
        super().__init__(fmt, datefmt)
        self.use_color = use_color

    def format(self, record):
        log_message = super().format(record)
        if not self.use_color:
            return log_message
        color = self.COLORS.get(record.levelname)
        if color:
            return f"{color}{log_message}{self.COLORS['RESET']}"
        return log_message


def _resolve_level(level: Union[int, str, None]) -> int:
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        # getLevelName returns "Level X" for unknown names
        return resolved if isinstance(resolved, int) else logging.INFO
    return level


def setup_logger(name: str, level: Optional[Union[int, str]] = None) -> logging.Logger:
    """Set up and return a logger with colored console output.

    Calling it twice for the same name only adjusts the level; handlers are
    never stacked.
    """
    level = _resolve_level(level)

    _logger = logging.getLogger(name)
    _logger.setLevel(level)

    for existing in _logger.handlers:
        existing.setLevel(level)
    if _logger.handlers:
        return _logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    formatter = ColoredFormatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        use_color=sys.stdout.isatty() and not os.getenv("NO_COLOR"),
    )
    handler.setFormatter(formatter)
    _logger.addHandler(handler)

    return _logger


# Package logger; modules use it directly or via logger.getChild()
logger = setup_logger("todo_api")
