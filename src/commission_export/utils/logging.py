from __future__ import annotations

import contextvars
import logging
import uuid
from contextlib import contextmanager
from typing import IO, Iterator, Optional, Union

LOGGER_NAME = "commission_export"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(run_id)s] %(name)s: %(message)s"
NO_RUN = "-"

LogLevel = Union[int, str]

_ACTIVE_RUN: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "commission_export_run", default=None
)


class _RunIdStamp(logging.Filter):
    """Copy the active export run id onto each record as ``run_id``."""

    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - trivial
        record.run_id = _ACTIVE_RUN.get() or NO_RUN
        return True


def _stamped(logger: logging.Logger) -> logging.Logger:
    if not any(isinstance(existing, _RunIdStamp) for existing in logger.filters):
        logger.addFilter(_RunIdStamp())
    return logger


def _as_level(level: LogLevel) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def init_logger(
    name: str = LOGGER_NAME,
    level: LogLevel = "INFO",
    stream: Optional[IO[str]] = None,
) -> logging.Logger:
    """Configure ``name`` once with a run-id aware stream handler.

    Repeated calls only adjust the level. Unknown level names fall back to
    INFO. Records do not propagate to the root logger.
    """
    logger = _stamped(logging.getLogger(name))
    numeric = _as_level(level)
    logger.setLevel(numeric)

    if not logger.handlers:
        handler = logging.StreamHandler(stream)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    for handler in logger.handlers:
        handler.setLevel(numeric)

    logger.propagate = False
    return logger


def get_logger(name: str = LOGGER_NAME) -> logging.Logger:
    return _stamped(logging.getLogger(name))


def current_run_id() -> Optional[str]:
    return _ACTIVE_RUN.get()


@contextmanager
def run_context(logger: logging.Logger, run_id: Optional[str] = None) -> Iterator[str]:
    """Bind ``run_id`` (or a fresh one) to every record logged inside the block."""
    _stamped(logger)
    token = _ACTIVE_RUN.set(run_id or uuid.uuid4().hex[:12])
    try:
        yield _ACTIVE_RUN.get() or NO_RUN
    finally:
        _ACTIVE_RUN.reset(token)


__all__ = [
    "LOGGER_NAME",
    "current_run_id",
    "get_logger",
    "init_logger",
    "run_context",
]
