"""Logging setup and configuration."""

import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

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
    "urllib3",
    "asyncio",
]


def setup_logging(
    name: str = "kumiho",
    stage: str | None = None,
    trigger_id: str | None = None,
    log_file: Path | None = None,
    json_format: bool = False,
    console_level: int = DEFAULT_CONSOLE_LEVEL,
    file_level: int = DEFAULT_FILE_LEVEL,
    rotation_when: str = DEFAULT_ROTATION_WHEN,
    rotation_interval: int = DEFAULT_ROTATION_INTERVAL,
    backup_count: int = DEFAULT_BACKUP_COUNT,
    suppress_noisy: bool = True,
) -> logging.Logger:
    """
    Configure the root logger with a console handler and an optional
    time-rotated file handler.

    Console output goes to stderr so stdout stays free for command output
    (the CLI prints stream events as JSON lines there).

    Args:
        name: Logger name to return
        stage: Stage name for log context (request, stream)
        trigger_id: Trigger instance id for log context
        log_file: Optional path of a JSON log file
        json_format: Use JSON instead of human-readable console output
        console_level: Console handler level (default: INFO)
        file_level: File handler level (default: DEBUG)
        rotation_when: When to rotate the file - 'midnight', 'H', 'M'
        rotation_interval: Interval for rotation
        backup_count: Number of rotated files to keep
        suppress_noisy: Quiet down HTTP client and event loop loggers

    Returns:
        Configured logger instance
    """
    if stage:
        set_log_context(stage=stage)
    if trigger_id:
        set_log_context(trigger_id=trigger_id)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture all, handlers filter
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(JSONFormatter() if json_format else ConsoleFormatter())
    root_logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = TimedRotatingFileHandler(
            log_file,
            when=rotation_when,
            interval=rotation_interval,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(file_level)
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    if suppress_noisy:
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    logger = logging.getLogger(name)
    logger.debug(
        "Logging initialized",
        extra={"stage": stage, "operation": "setup_logging"},
    )
    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance.

    Thin wrapper over logging.getLogger for a consistent import path.
    """
    return logging.getLogger(name)
