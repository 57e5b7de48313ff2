"""
Logging module for Twitch Scrapurr.
Colored console output plus an optional rotating log file.

Every record carries a `component` (the child logger name: capture, poller,
postprocess, ...) and a `target` (channel, VOD id or clip slug, "-" when
the record is not about one).
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


ROOT_LOGGER = 'scrapurr'

RESET = "\033[0m"
DIM = "\033[90m"
TARGET_COLOR = "\033[96m"
LEVEL_COLORS = {
    logging.DEBUG: DIM,
    logging.INFO: "\033[92m",
    logging.WARNING: "\033[93m",
    logging.ERROR: "\033[91m",
    logging.CRITICAL: "\033[95m",
}

FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(component)-11s | %(target)s | %(message)s"
FILE_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class ContextFilter(logging.Filter):
    """Fill in the component and target fields the formatters use."""

    def filter(self, record: logging.LogRecord) -> bool:
        _, _, component = record.name.partition(f'{ROOT_LOGGER}.')
        record.component = component or 'main'
        if not hasattr(record, 'target'):
            record.target = '-'
        return True


class ConsoleFormatter(logging.Formatter):
    """Short console lines: time, colored level, [target], message."""

    def __init__(self, use_color: bool = True):
        super().__init__(datefmt='%H:%M:%S')
        self.use_color = use_color

    def _paint(self, color: str, text: str) -> str:
        if not self.use_color:
            return text
        return f"{color}{text}{RESET}"

    def format(self, record: logging.LogRecord) -> str:
        target = getattr(record, 'target', '-')
        prefix = f"{self._paint(TARGET_COLOR, f'[{target}]')} " if target != '-' else ""
        level = self._paint(LEVEL_COLORS.get(record.levelno, RESET), f"{record.levelname:8}")

        message = f"{self._paint(DIM, self.formatTime(record, self.datefmt))} {level} {prefix}{record.getMessage()}"
        if record.exc_info:
            message += f"\n{self.formatException(record.exc_info)}"
        return message


class TargetLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that tags records with the channel or video being handled."""

    def __init__(self, logger: logging.Logger, target: str):
        super().__init__(logger, {'target': target})

    def process(self, msg, kwargs):
        kwargs['extra'] = {**kwargs.get('extra', {}), **self.extra}
        return msg, kwargs


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    max_size_mb: int = 10,
    backup_count: int = 5
) -> logging.Logger:
    """
    Set up the application logger.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR).
        log_file: Path to log file. If empty or None, logs only to console.
        max_size_mb: Maximum log file size before rotation.
        backup_count: Number of rotated log files to keep.

    Returns:
        Configured logger instance.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.propagate = False

    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.addFilter(ContextFilter())
    console_handler.setFormatter(ConsoleFormatter(use_color=sys.stdout.isatty()))
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=max_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.addFilter(ContextFilter())
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, FILE_DATE_FORMAT))
        logger.addHandler(file_handler)

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get the application logger, or a named child of it."""
    if name:
        return logging.getLogger(f'{ROOT_LOGGER}.{name}')
    return logging.getLogger(ROOT_LOGGER)


def get_channel_logger(target: str, name: Optional[str] = None) -> TargetLoggerAdapter:
    """Get a logger for one channel, VOD id or clip slug."""
    return TargetLoggerAdapter(get_logger(name), target)
