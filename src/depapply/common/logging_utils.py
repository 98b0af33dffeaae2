"""Centralized logging helpers.

Provides a single place to configure the root logger and a small set of
helpers used across modules to emit structured DEBUG traces:

- ``configure_logging`` sets handler/format/level from the environment
- ``extra_context`` builds the ``extra=`` payload for structured records
- ``is_debug_enabled`` guards expensive debug-only work
- ``Timer`` measures durations for ``duration_ms`` fields
"""
from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict, Optional

from ..constants import Constants

_STRUCTURED_KEYS = (
    "event",
    "component",
    "action",
    "outcome",
    "target",
    "package_id",
    "duration_ms",
    "count",
)


def configure_logging(level: Optional[str] = None) -> None:
    """Configure the root logger once.

    Level precedence: explicit argument, then ``DEPAPPLY_LOG_LEVEL``, then INFO.
    Calling this more than once only updates the level.
    """
    level_name = (level or os.environ.get(Constants.ENV_LOG_LEVEL) or "INFO").upper()
    level_value = getattr(logging, level_name, logging.INFO)
    root = logging.getLogger()
    if not any(getattr(h, "_depapply", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(Constants.LOG_FORMAT))
        handler._depapply = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    root.setLevel(level_value)


def extra_context(**fields: Any) -> Dict[str, Any]:
    """Build an ``extra`` mapping for a structured log record.

    ``None`` values are dropped so records only carry what was provided.
    """
    return {k: v for k, v in fields.items() if v is not None}


def is_debug_enabled(logger: logging.Logger) -> bool:
    """Return True when DEBUG records would be emitted by ``logger``."""
    return logger.isEnabledFor(logging.DEBUG)


def structured_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Return the structured fields attached to a record (used in tests and filters)."""
    return {k: getattr(record, k) for k in _STRUCTURED_KEYS if hasattr(record, k)}


class Timer:
    """Context manager measuring elapsed wall time."""

    def __init__(self) -> None:
        self._start = 0.0
        self._end: Optional[float] = None

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        self._end = None
        return self

    def __exit__(self, *exc: Any) -> None:
        self._end = time.perf_counter()

    def duration_ms(self) -> int:
        """Elapsed milliseconds so far (or total, once exited)."""
        end = self._end if self._end is not None else time.perf_counter()
        return int((end - self._start) * 1000)
