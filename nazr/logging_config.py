"""
Logging setup for nazr.
Console output goes to stdout; an optional log file receives everything.
"""

import logging
import sys
from pathlib import Path
from typing import Iterable, Optional, Union

from .config import AppConfig

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore")


def _level(level: Union[str, int]) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level}")
    return value


def setup_logger(
    name: str = "nazr",
    log_file: Optional[Path] = None,
    level: Union[str, int] = "INFO",
    console: bool = True,
    quiet: Iterable[str] = NOISY_LOGGERS
) -> logging.Logger:
    """
    Configure the package logger, replacing any handlers set earlier.

    Args:
        name: Logger name
        log_file: Also write to this file at DEBUG (parent dirs are created)
        level: Console and logger level, as a name or number
        console: Whether to log to stdout
        quiet: Logger names lowered to WARNING

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    threshold = _level(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
        # The file wants DEBUG records even when the console does not
        threshold = logging.DEBUG

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(_level(level))
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    logger.setLevel(threshold)
    for noisy in quiet:
        logging.getLogger(noisy).setLevel(logging.WARNING)
    return logger


def configure_logging(config: AppConfig) -> logging.Logger:
    """Set up the package logger from an AppConfig."""
    return setup_logger(log_file=config.log_file, level=config.log_level)
