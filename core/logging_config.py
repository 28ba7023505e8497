"""
Centralized logging configuration for the Hot or Slop deck services.
Provides consistent logging format and handlers across all modules.
"""

import logging
import logging.handlers
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Union


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def _env_level(default: int = logging.INFO) -> int:
    """Resolve the LOG_LEVEL environment variable to a logging level."""
    value = os.getenv("LOG_LEVEL")
    if not value:
        return default
    level = logging.getLevelName(value.strip().upper())
    return level if isinstance(level, int) else default


def _env_file_output(default: bool = True) -> bool:
    value = os.getenv("LOG_TO_FILE")
    if value is None:
        return default
    return value.strip().lower() not in ("0", "false", "no", "off")


def setup_logger(
    name: str,
    level: Optional[int] = None,
    log_dir: Optional[Union[str, Path]] = None,
    console_output: bool = True,
    file_output: Optional[bool] = None,
    max_bytes: int = 10485760,  # 10MB
    backup_count: int = 5
) -> logging.Logger:
    """
    Configure and return a logger with both console and file handlers.

    Args:
        name: Logger name, typically __name__ of the calling module
        level: Logging level (default: LOG_LEVEL env var, else INFO)
        log_dir: Directory for log files (default: LOG_DIR env var, else logs/)
        console_output: Enable console output
        file_output: Enable file output (default: LOG_TO_FILE env var, else True)
        max_bytes: Maximum size of log file before rotation
        backup_count: Number of backup files to keep

    Returns:
        Configured logger instance
    """
    if level is None:
        level = _env_level()
    if file_output is None:
        file_output = _env_file_output()

    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Prevent duplicate handlers
    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    # File handler with rotation
    if file_output:
        if log_dir is None:
            log_dir = os.getenv("LOG_DIR") or Path(__file__).parent.parent / 'logs'
        log_dir = Path(log_dir)

        log_dir.mkdir(parents=True, exist_ok=True)

        log_file = log_dir / f"{name.replace('.', '_')}_{datetime.now().strftime('%Y%m%d')}.log"

        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_test_logger(name: str) -> logging.Logger:
    """
    Get a logger configured specifically for testing.

    Args:
        name: Logger name

    Returns:
        Logger configured for testing with DEBUG level
    """
    return setup_logger(
        name,
        level=logging.DEBUG,
        log_dir='test_logs',
        console_output=True,
        file_output=True
    )


# Area-specific logger configurations
def get_api_logger() -> logging.Logger:
    """Get logger for the HTTP service."""
    return setup_logger('api', level=logging.INFO)


def get_cli_logger() -> logging.Logger:
    """Get logger for the command-line tool."""
    return setup_logger('cli', level=logging.INFO, file_output=False)
