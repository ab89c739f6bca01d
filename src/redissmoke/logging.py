"""Logging for smoke runs: console plus a DEBUG log file, with credentials masked."""

from __future__ import annotations

import logging as py_logging
import sys
from collections.abc import Iterable
from pathlib import Path
from typing import TextIO

from redissmoke.security import mask_secrets

PACKAGE_LOGGER = "redissmoke"
LOG_LEVELS = {
    "DEBUG": py_logging.DEBUG,
    "INFO": py_logging.INFO,
    "WARN": py_logging.WARNING,
    "WARNING": py_logging.WARNING,
    "ERROR": py_logging.ERROR,
}
DEFAULT_LOG_PATH = Path("~/.config/redissmoke/logs/redissmoke.log")
_FALLBACK_LOG_PATH = Path(".redissmoke/logs/redissmoke.log")
_FORMAT = "%(asctime)s %(levelname)s %(name)s:%(lineno)d %(message)s"

# Passwords registered during a run; every formatter below masks them.
_masked_values: set[str] = set()


class SecretMaskingFormatter(py_logging.Formatter):
    """Masks registered passwords, URL credentials and ``"password"`` fields.

    Masking happens on the fully formatted line, so secrets passed as
    ``%s`` arguments or carried in a traceback are hidden too.
    """

    def format(self, record: py_logging.LogRecord) -> str:
        return mask_secrets(super().format(record), _masked_values)


def mask_in_logs(*values: str) -> None:
    """Register credentials that must never appear in console or file logs."""
    _masked_values.update(value for value in values if value)


def masked_values() -> frozenset[str]:
    return frozenset(_masked_values)


def reset_masked_values(values: Iterable[str] = ()) -> None:
    _masked_values.clear()
    mask_in_logs(*values)


def default_log_path() -> Path:
    try:
        resolved = DEFAULT_LOG_PATH.expanduser()
    except RuntimeError:
        resolved = (Path.cwd() / _FALLBACK_LOG_PATH).resolve()
    return resolved if resolved.is_absolute() else resolved.resolve()


def _resolve_level(level: str) -> int:
    normalized = level.upper()
    if normalized == "WARNING":
        normalized = "WARN"
    return LOG_LEVELS.get(normalized, py_logging.INFO)


def _open_log_file(log_file: str | Path) -> py_logging.Handler | None:
    try:
        log_path = Path(log_file).expanduser()
    except RuntimeError:
        log_path = Path(log_file)
    try:
        log_path.resolve().parent.mkdir(parents=True, exist_ok=True)
        return py_logging.FileHandler(log_path.resolve(), encoding="utf-8")
    except OSError:
        return None


def configure_logging(
    level: str = "INFO",
    stream: TextIO | None = None,
    *,
    log_file: str | Path | None = None,
) -> py_logging.Logger:
    """(Re)configure the ``redissmoke`` logger for one smoke run.

    The console handler follows ``level``. When ``log_file`` can be opened a
    second handler records everything at DEBUG, including each cf command
    line. Both handlers share one :class:`SecretMaskingFormatter`.
    """
    resolved = _resolve_level(level)
    logger = py_logging.getLogger(PACKAGE_LOGGER)
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()
    formatter = SecretMaskingFormatter(_FORMAT)

    console = py_logging.StreamHandler(stream or sys.stderr)
    console.setLevel(resolved)
    console.setFormatter(formatter)
    logger.addHandler(console)

    file_handler = _open_log_file(log_file) if log_file else None
    if file_handler is not None:
        file_handler.setLevel(py_logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    logger.setLevel(py_logging.DEBUG if file_handler is not None else resolved)

    logger.propagate = False
    return logger
