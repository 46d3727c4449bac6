"""Logging setup for the API process.

Usage:
    from finance_api.logging_config import setup_logging
    setup_logging("INFO", log_dir=None)
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_NAME = "finance_api.log"
LOG_FILE_BACKUP_COUNT = 7

NOISY_LOGGERS = [
    "sqlalchemy.engine",
    "httpcore",
    "httpx",
    "urllib3",
]


def setup_logging(level: str | int = logging.INFO, log_dir: str | Path | None = None) -> logging.Logger:
    """Configure the root logger.

    Console output always goes to stdout. When `log_dir` is given a daily
    rotating file handler is added as well, keeping a week of files.

    Args:
        level: level name ("INFO") or numeric level for every handler.
        log_dir: directory for `finance_api.log`; created if missing.

    Returns:
        The configured root logger.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    # Re-running setup (tests, reload) must not duplicate output.
    root_logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    log_file = None
    if log_dir is not None:
        directory = Path(log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        log_file = directory / LOG_FILE_NAME
        file_handler = TimedRotatingFileHandler(
            filename=log_file,
            when="midnight",
            interval=1,
            backupCount=LOG_FILE_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.suffix = "%Y-%m-%d"
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    root_logger.info("Logging initialised (level=%s)", logging.getLevelName(level))
    if log_file is not None:
        root_logger.info("  - file: %s (daily rotation, %d kept)", log_file, LOG_FILE_BACKUP_COUNT)
    return root_logger
