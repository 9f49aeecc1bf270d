import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from truthrank.config import Config

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def resolve_log_level() -> int:
    """LOG_LEVEL wins when set, otherwise DEBUG toggles between DEBUG and INFO"""
    if Config.LOG_LEVEL:
        level = logging.getLevelName(Config.LOG_LEVEL.upper())
        if isinstance(level, int):
            return level
    return logging.DEBUG if Config.DEBUG else logging.INFO


def log_file_path(log_dir: str, now: Optional[datetime] = None) -> Path:
    """One log file per UTC day"""
    now = now or datetime.now(timezone.utc)
    return Path(log_dir) / f'truthrank_{now.strftime("%Y%m%d")}.log'


PACKAGE_LOGGER = 'truthrank'


def configure_package_logging() -> logging.Logger:
    """Attach console and file handlers to the package logger once"""
    package_logger = logging.getLogger(PACKAGE_LOGGER)

    if package_logger.handlers:
        return package_logger

    log_level = resolve_log_level()
    package_logger.setLevel(log_level)
    # Records are handled here and must not be printed again by the root logger
    package_logger.propagate = False

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    package_logger.addHandler(console_handler)

    if Config.LOG_DIR:
        path = log_file_path(Config.LOG_DIR)
        path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(path, encoding='utf-8')
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)

    return package_logger


def setup_logger(name: str) -> logging.Logger:
    """Module logger whose records flow to the configured package handlers"""
    configure_package_logging()
    return logging.getLogger(name)
