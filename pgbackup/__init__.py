"""
pgbackup - database backup and retention for PostgreSQL.

Produces full and schema-only dumps, archives WAL segments, pushes them to a
pluggable storage backend (local, S3, GCS, Azure) and prunes old artifacts
with a tiered retention policy.
"""

import os
import logging
from logging.handlers import RotatingFileHandler
from typing import Optional


__version__ = '0.1.0'


def configure_logging(level: Optional[str] = None, log_dir: Optional[str] = None) -> logging.Logger:
    """
    Configure process-wide logging.

    Args:
        level: Log level name (default: INFO)
        log_dir: Directory for the rotating log file; console only when None

    Returns:
        The package logger
    """
    log_level = logging.getLevelName((level or 'INFO').upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    )
    console_handler.setFormatter(console_formatter)
    handlers = [console_handler]

    # File handler
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, 'pgbackup.log'),
            maxBytes=10485760,  # 10MB
            backupCount=10
        )
        file_handler.setLevel(log_level)
        file_formatter = logging.Formatter(
            '[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s'
        )
        file_handler.setFormatter(file_formatter)
        handlers.append(file_handler)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    logger = logging.getLogger('pgbackup')
    logger.setLevel(log_level)
    logger.debug(f"Logging configured (level: {logging.getLevelName(log_level)})")
    return logger
