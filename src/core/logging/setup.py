"""Logging setup and configuration."""

import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import TextIO

from core.logging.context import set_log_context
from core.logging.formatters import ConsoleFormatter, JSONFormatter

# Default settings
DEFAULT_ROTATION_WHEN = "midnight"
DEFAULT_ROTATION_INTERVAL = 1
DEFAULT_BACKUP_COUNT = 7
DEFAULT_CONSOLE_LEVEL = logging.INFO
DEFAULT_FILE_LEVEL = logging.DEBUG

# Noisy loggers to suppress
NOISY_LOGGERS = [
    "aiohttp",
    "aiohttp.access",
    "aiohttp.client",
    "asyncio",
    "urllib3",
]


def _parse_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    parsed = logging.getLevelName(level.upper())
    if not isinstance(parsed, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return parsed


def setup_logging(
    name: str = "ebay_seller",
    level: int | str = DEFAULT_CONSOLE_LEVEL,
    json_format: bool = False,
    log_file: Path | str | None = None,
    file_level: int | str = DEFAULT_FILE_LEVEL,
    rotation_when: str = DEFAULT_ROTATION_WHEN,
    rotation_interval: int = DEFAULT_ROTATION_INTERVAL,
    backup_count: int = DEFAULT_BACKUP_COUNT,
    suppress_noisy: bool = True,
    environment: str | None = None,
    stream: TextIO | None = None,
) -> logging.Logger:
    """
    Configure the root logger with a console handler and an optional rotating file.

    Console output goes to stderr. Stdout is left alone because the
    tool-invocation protocol and CLI results are written there.

    Args:
        name: Logger name to return
        level: Console handler level (int or name, default: INFO)
        json_format: One JSON object per line on the console instead of text
        log_file: Optional file path; always written as JSON
        file_level: File handler level (default: DEBUG)
        rotation_when: When to rotate the file - 'midnight', 'H' (hourly), 'M' (minutes)
        rotation_interval: Interval for rotation (default: 1)
        backup_count: Number of rotated files to keep (default: 7)
        suppress_noisy: Quiet down HTTP client loggers
        environment: sandbox/production, attached to every record
        stream: Override the console stream (default: sys.stderr)

    Returns:
        Configured logger instance
    """
    if environment:
        set_log_context(environment=environment)

    console_handler = logging.StreamHandler(stream or sys.stderr)
    console_handler.setLevel(_parse_level(level))
    console_handler.setFormatter(JSONFormatter() if json_format else ConsoleFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture all, handlers filter
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = TimedRotatingFileHandler(
            log_path,
            when=rotation_when,
            interval=rotation_interval,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(_parse_level(file_level))
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    if suppress_noisy:
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    logger = logging.getLogger(name)
    logger.debug("Logging initialized", extra={"environment": environment})
    return logger
