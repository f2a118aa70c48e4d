"""
Logging for the relay, canvas and API layers.

Every module logger writes INFO and up to stdout and keeps a DEBUG trail in
its own rotating file under config.log_dir, one file per logger name.
"""

import logging
import sys
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Dict, Optional

DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
CONSOLE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    return handler


def _file_handler(log_file: Path) -> logging.Handler:
    handler = RotatingFileHandler(
        log_file,
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUPS,
        encoding='utf-8'
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
    return handler


class NovaLogger:
    """Hands out module loggers, attaching handlers the first time a name is seen."""

    _loggers: Dict[str, logging.Logger] = {}

    @classmethod
    def get_logger(cls, name: str, log_dir: Optional[Path] = None) -> logging.Logger:
        if name in cls._loggers:
            return cls._loggers[name]

        logger = logging.getLogger(name)
        if not logger.handlers:
            if log_dir is None:
                from .config import config
                log_dir = config.log_dir
            log_dir.mkdir(exist_ok=True, parents=True)

            logger.setLevel(logging.DEBUG)
            logger.addHandler(_console_handler())
            logger.addHandler(_file_handler(log_dir / f"{name.replace('.', '_')}.log"))
            # Handlers live here; the root logger would print everything twice
            logger.propagate = False

        cls._loggers[name] = logger
        return logger


def get_logger(name: str) -> logging.Logger:
    """Logger for a module, e.g. `logger = get_logger(__name__)`."""
    return NovaLogger.get_logger(name)


def set_debug_mode(enable: bool = True) -> None:
    """Switch console output of every known logger between DEBUG and INFO."""
    level = logging.DEBUG if enable else logging.INFO
    for logger in NovaLogger._loggers.values():
        for handler in logger.handlers:
            # RotatingFileHandler subclasses StreamHandler and stays at DEBUG
            if isinstance(handler, logging.StreamHandler) and not isinstance(handler, RotatingFileHandler):
                handler.setLevel(level)
