"""Logging setup for the how CLI."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path


def setup_logger(
    name: str,
    log_dir: Path,
    log_filename: str,
    level: int = logging.INFO,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    console: bool = False,
) -> logging.Logger:
    """Create a logger with a rotating file handler and optional stderr echo.

    Args:
        name: Logger name (normally the package name, "how")
        log_dir: Directory for log files (created if not exists)
        log_filename: Log file name (e.g. "how.log")
        level: Logging level
        max_bytes: Max size per log file before rotation
        backup_count: Number of backup files to keep
        console: Also write records to stderr

    Returns:
        Configured logger instance
    """
    log_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(name)
    logger.setLevel(level)

    if not logger.handlers:
        formatter = logging.Formatter("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s")

        file_handler = RotatingFileHandler(
            log_dir / log_filename,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

        if console:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(formatter)
            logger.addHandler(console_handler)

    return logger
