"""
Service logging.

Handlers live on the top-level ``arena`` logger and are attached once; every
module logger is a child that propagates to them. Log files roll over at
midnight and keep ``LOG_BACKUP_DAYS`` days of history.
"""

import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from arena.config import Config

ROOT_LOGGER_NAME = "arena"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def _configure_root() -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER_NAME)
    if root.handlers:
        return root

    log_level = logging.DEBUG if Config.DEBUG else logging.INFO
    root.setLevel(log_level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    log_dir = Path(Config.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = TimedRotatingFileHandler(
        log_dir / 'arena.log',
        when='midnight',
        backupCount=Config.LOG_BACKUP_DAYS,
        encoding='utf-8',
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    return root


def setup_logger(name: str) -> logging.Logger:
    """Logger for a module, routed through the shared arena handlers"""
    root = _configure_root()
    if name == ROOT_LOGGER_NAME:
        return root
    if not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)
