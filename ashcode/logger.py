"""Logging setup: a terse console handler plus a rotating session log."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Union

__all__ = ["setup_logger", "get_logger", "LOGGER_NAME"]

LOGGER_NAME = "ashcode"
DEFAULT_LOG_FILE = Path("~/.ashcode/logs/agent.log").expanduser()
CONSOLE_FORMAT = "[%(levelname).1s] %(message)s"
FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 3

# Transport chatter from requests stays out of the session log.
_QUIET_LOGGERS = ("urllib3", "requests")

LogTarget = Union[str, Path, bool, None]


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    return handler


def _file_handler(path: Path) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(path, maxBytes=MAX_LOG_BYTES,
                                  backupCount=LOG_BACKUP_COUNT, encoding="utf-8")
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(FILE_FORMAT))
    return handler


def _log_path(log_file: LogTarget) -> Path | None:
    if log_file is False:
        return None
    if log_file is None or log_file is True:
        return DEFAULT_LOG_FILE
    return Path(log_file).expanduser()


def setup_logger(name: str = LOGGER_NAME, verbose: bool = False,
                 log_file: LogTarget = None) -> logging.Logger:
    """Configure the package logger; module loggers under it inherit the handlers.

    ``verbose`` lowers the console threshold from WARNING to INFO. ``log_file``
    picks the session log: ``None``/``True`` for ``~/.ashcode/logs/agent.log``,
    ``False`` for no file, or an explicit path. The file always records INFO,
    so turns and tool runs are traceable even with a quiet console.
    """
    logger = logging.getLogger(name)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = False

    console_level = logging.INFO if verbose else logging.WARNING
    logger.addHandler(_console_handler(console_level))
    logger.setLevel(console_level)

    path = _log_path(log_file)
    if path is not None:
        logger.addHandler(_file_handler(path))
        logger.setLevel(logging.INFO)

    for noisy in _QUIET_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)
    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
