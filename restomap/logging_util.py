import logging
import os
import sys
from typing import List, Optional

# LOG_LEVEL: 0 silent, 1 info, 2 debug
_LEVEL_NAMES = {1: logging.INFO, 2: logging.DEBUG}

_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Chatty libraries stay at WARNING unless debug logging is on
_NOISY_LOGGERS = ("botocore", "boto3", "urllib3", "passlib", "multipart", "sqlalchemy.engine")


def _read_level(raw: Optional[str]) -> int:
    try:
        level = int(raw) if raw is not None else 1
    except ValueError:
        return 1
    return min(max(level, 0), 2)


def _build_handlers(level: int, log_file: Optional[str], also_stderr: bool) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []
    if log_file:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    if also_stderr:
        handlers.append(logging.StreamHandler(sys.stderr))

    formatter = logging.Formatter(_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(_LEVEL_NAMES[level])
    return handlers


def setup_logging_util(also_stderr: bool = True) -> int:
    """
    Configure root logging for the API process from $LOG_LEVEL and $LOG_FILE.

    Replaces any handlers already on the root logger, so calling it twice is
    harmless. Returns the level in use (0/1/2).
    """
    level = _read_level(os.getenv("LOG_LEVEL"))
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    if level == 0:
        root.addHandler(logging.NullHandler())
        return level

    root.setLevel(logging.DEBUG)
    for handler in _build_handlers(level, os.getenv("LOG_FILE"), also_stderr):
        root.addHandler(handler)

    library_level = logging.DEBUG if level == 2 else logging.WARNING
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)
    return level
