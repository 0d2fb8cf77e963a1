"""
tabular.logger.logger

Logger shared by the curation engines. Writes to stdout.
Every message is prefixed with the calling module path and function, so the log
shows which reconciliation or window step produced it.

Level comes from the LOG_LEVEL environment variable unless a level is passed explicitly.
"""

import inspect
import logging
import os
from enum import IntEnum
from pathlib import Path

LOGGER_NAME = "curation"


class LOG_LEVEL(IntEnum):
    NOTSET = 0
    DEBUG = 10
    INFO = 20
    WARN = 30
    ERROR = 40
    CRITICAL = 50


def get_log_level_from_env(default: LOG_LEVEL = LOG_LEVEL.INFO) -> LOG_LEVEL:
    """
    Read log level from environment variable LOG_LEVEL.
    Supports names (DEBUG, INFO, WARNING, etc.) or integers.
    Prints a warning if an invalid value is provided.
    """
    raw = os.getenv("LOG_LEVEL")
    if raw is None:
        return default
    return parse_log_level(raw, default)


def parse_log_level(raw: str, default: LOG_LEVEL = LOG_LEVEL.INFO) -> LOG_LEVEL:
    """Parse a log level name or number, falling back to `default` with a printed warning."""
    raw = raw.strip()

    if raw.isdigit():
        try:
            return LOG_LEVEL(int(raw))
        except ValueError:
            print(f"[WARN] Unknown numeric log level: {raw}. Falling back to default: {default.name}")
            return default

    name = raw.upper()
    if name == "WARNING":
        name = "WARN"
    try:
        return LOG_LEVEL[name]
    except KeyError:
        print(f"[WARN] Unknown log level: {raw}. Falling back to default: {default.name}")
        return default


def _get_caller_path(path_parts: int = 2) -> str:
    """Short `dir/module.py:function` of the code that called a log_* function."""
    # frame 3 is the caller of log_*, after _get_caller_path, _log and log_*
    frame = inspect.stack()[3]
    short_path = "/".join(Path(frame.filename).parts[-path_parts:])
    return f"{short_path}:{frame.function}"


def get_logger(level: LOG_LEVEL | int | None = None) -> logging.Logger:
    """Return the shared logger, attaching a stdout handler on first use."""
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.hasHandlers():
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(handler)
        logger.propagate = False
    logger.setLevel(level if level is not None else get_log_level_from_env())
    return logger


def _log(level: LOG_LEVEL, message: str | None = None):
    logger = get_logger()
    msg = f" - {message}" if message else ""
    logger.log(level, f"{_get_caller_path()}{msg}")


def log_debug(msg: str | None = None):
    _log(LOG_LEVEL.DEBUG, msg)


def log_info(msg: str | None = None):
    _log(LOG_LEVEL.INFO, msg)


def log_warn(msg: str | None = None):
    _log(LOG_LEVEL.WARN, msg)


def log_warning(msg: str | None = None):
    _log(LOG_LEVEL.WARN, msg)


def log_error(msg: str | None = None):
    _log(LOG_LEVEL.ERROR, msg)


def log_critical(msg: str | None = None):
    _log(LOG_LEVEL.CRITICAL, msg)
