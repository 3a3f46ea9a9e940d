"""Logging for the ``recurrent`` logger hierarchy.

The library stays silent until an application opts in: the root ``recurrent``
logger carries a :class:`logging.NullHandler` from import time on.
:func:`configure_logging` attaches real handlers and can surface the per-attempt
retry decisions that :class:`~recurrent.invocation.Invocation` logs at DEBUG.
"""

from __future__ import annotations

import logging as py_logging
import sys
from pathlib import Path
from typing import TextIO

LOG_LEVELS = {
    "DEBUG": py_logging.DEBUG,
    "INFO": py_logging.INFO,
    "WARN": py_logging.WARNING,
    "WARNING": py_logging.WARNING,
    "ERROR": py_logging.ERROR,
}
LOGGER_NAME = "recurrent"
DECISION_LOGGER = f"{LOGGER_NAME}.invocation"
_FORMAT = "%(asctime)s %(levelname)s %(name)s:%(lineno)d %(message)s"

py_logging.getLogger(LOGGER_NAME).addHandler(py_logging.NullHandler())

_installed_handlers: list[py_logging.Handler] = []


def get_logger(name: str) -> py_logging.Logger:
    """Return a logger inside the ``recurrent`` hierarchy."""
    if name != LOGGER_NAME and not name.startswith(f"{LOGGER_NAME}."):
        name = f"{LOGGER_NAME}.{name}"
    return py_logging.getLogger(name)


def _resolve_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    return LOG_LEVELS.get(level.strip().upper(), py_logging.INFO)


class _DecisionFilter(py_logging.Filter):
    """Pass records at the configured level, plus DEBUG retry decisions when asked."""

    def __init__(self, level: int, decisions: bool) -> None:
        super().__init__()
        self.level = level
        self.decisions = decisions

    def filter(self, record: py_logging.LogRecord) -> bool:
        if record.levelno >= self.level:
            return True
        return self.decisions and (
            record.name == DECISION_LOGGER or record.name.startswith(f"{DECISION_LOGGER}.")
        )


def _remove_installed_handlers(logger: py_logging.Logger) -> None:
    while _installed_handlers:
        handler = _installed_handlers.pop()
        logger.removeHandler(handler)
        handler.close()


def configure_logging(
    level: str | int = "INFO",
    stream: TextIO | None = None,
    *,
    log_file: str | Path | None = None,
    decisions: bool = False,
) -> py_logging.Logger:
    """Send ``recurrent`` log records to ``stream`` (stderr by default).

    With ``decisions`` the DEBUG retry decisions of every invocation are shown
    regardless of ``level``. A ``log_file`` receives everything down to DEBUG.
    Calling this again replaces the handlers it installed before; handlers
    added by the application are left in place.
    """
    resolved = _resolve_level(level)
    logger = py_logging.getLogger(LOGGER_NAME)
    _remove_installed_handlers(logger)
    formatter = py_logging.Formatter(_FORMAT)

    handler = py_logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(py_logging.DEBUG if decisions else resolved)
    handler.addFilter(_DecisionFilter(resolved, decisions))
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    _installed_handlers.append(handler)
    logger.setLevel(py_logging.DEBUG if decisions else resolved)
    logger.propagate = False

    if log_file:
        log_path = Path(log_file).expanduser()
        if not log_path.is_absolute():
            log_path = log_path.resolve()
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = py_logging.FileHandler(log_path, encoding="utf-8")
        except OSError as exc:
            logger.warning("Log file unavailable path=%s error=%s", log_path, exc)
        else:
            logger.setLevel(py_logging.DEBUG)
            file_handler.setLevel(py_logging.DEBUG)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
            _installed_handlers.append(file_handler)

    return logger


def reset_logging() -> None:
    """Undo :func:`configure_logging` and hand records back to the root logger."""
    logger = py_logging.getLogger(LOGGER_NAME)
    _remove_installed_handlers(logger)
    logger.setLevel(py_logging.NOTSET)
    logger.propagate = True
