"""Centralized logging configuration for Recurring Reminder Service.

Every component logs to its own rotating file (recurrence.log, crud.log,
recurring.log, api.log, worker.log, mcp.log, notifications.log) and to the
console. Directory, level and rotation come from settings.
"""

import logging
from logging.handlers import RotatingFileHandler
import os

from config import settings

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
LOG_FORMAT = '[%(asctime)s] %(levelname)s %(name)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

NOISY_LOGGERS = ('uvicorn', 'uvicorn.access', 'fastapi', 'sqlalchemy', 'httpx', 'httpcore')


def log_directory() -> str:
    """Absolute log directory, created on first use."""
    path = settings.LOG_DIR
    if not os.path.isabs(path):
        path = os.path.join(BASE_DIR, path)
    os.makedirs(path, exist_ok=True)
    return path


def log_level() -> int:
    """settings.LOG_LEVEL as a logging level, INFO when unrecognized."""
    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logger(name: str, log_file: str = 'service.log') -> logging.Logger:
    """Return a logger writing to <LOG_DIR>/<log_file> and the console.

    Args:
        name: Logger name (usually __name__)
        log_file: Log file name (e.g., 'recurrence.log', 'api.log')

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    level = log_level()
    logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    handlers = [
        RotatingFileHandler(
            os.path.join(log_directory(), log_file),
            maxBytes=settings.LOG_MAX_BYTES,
            backupCount=settings.LOG_BACKUP_COUNT,
            encoding='utf-8'
        ),
        logging.StreamHandler(),
    ]
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def configure_root_logger():
    """Reduce third-party library noise."""
    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)


configure_root_logger()
