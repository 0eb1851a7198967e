"""Logging configuration for assess-record.

WHY TWO FORMATTERS
--------------------
  _ContainerFormatter: human-readable, single-line, for local dev.
    You read these with your eyes in a terminal.

  _JsonFormatter: machine-parseable, for production.
    Log aggregation systems parse JSON natively, so a line like

      {"level": "WARNING", "assessment_id": 12, "user_id": 7, ...}

    can be filtered with `assessment_id == 12 AND level == "WARNING"`
    instead of fragile regex patterns.

    Set LOG_JSON=true in production to switch to JSON output.

RECORD CONTEXT
----------------
Everything interesting in this package happens inside one record's
load → mutate → save cycle.  When two students submit at the same time
their log lines interleave, so every line emitted inside a record
session is tagged with the record identity:

  WARNING  assessrec.services.codec  [aid=12 uid=7 gid=0] scored data is malformed

The identity lives in a ContextVar (not a thread-local) because the
session runs in async code where many tasks share one thread.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class RecordContext:
    assessment_id: int
    user_id: int
    group_id: int = 0


record_context_var: ContextVar[RecordContext | None] = ContextVar(
    "record_context", default=None
)


@contextmanager
def record_context(
    assessment_id: int, user_id: int, group_id: int = 0
) -> Iterator[RecordContext]:
    """Tag every log line emitted inside the block with the record identity."""
    ctx = RecordContext(assessment_id=assessment_id, user_id=user_id, group_id=group_id)
    token = record_context_var.set(ctx)
    try:
        yield ctx
    finally:
        record_context_var.reset(token)


class _RecordContextFilter(logging.Filter):
    """Logging filter that injects the current record identity into every LogRecord.

    Formatters can only read fields that already exist on the LogRecord;
    a filter can ADD them before formatting.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        ctx = record_context_var.get()
        record.assessment_id = ctx.assessment_id if ctx else None  # type: ignore[attr-defined]
        record.user_id = ctx.user_id if ctx else None  # type: ignore[attr-defined]
        record.group_id = ctx.group_id if ctx else None  # type: ignore[attr-defined]
        return True


class _ContainerFormatter(logging.Formatter):
    """Single-line formatter tuned for container stdout.

    - Always: ISO-8601 timestamp, level, logger name, message
    - Inside a record session: [aid= uid= gid=] prefix on the message
    - WARNING+: appends [filename:lineno] so you can locate the guard clause
    """

    _BASE_FMT = "%(asctime)s %(levelname)-8s %(name)s  %(record_prefix)s%(message)s"
    _LOC_SUFFIX = "  [%(filename)s:%(lineno)d]"

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        base = super().formatTime(record, datefmt)
        ms = int(record.msecs)
        # Insert .NNN before the timezone offset (last 5 chars: +0000)
        return f"{base[:-5]}.{ms:03d}{base[-5:]}"

    def format(self, record: logging.LogRecord) -> str:
        if record.levelno >= logging.WARNING:
            self._style._fmt = self._BASE_FMT + self._LOC_SUFFIX
        else:
            self._style._fmt = self._BASE_FMT
        aid = getattr(record, "assessment_id", None)
        if aid is None:
            record.record_prefix = ""  # type: ignore[attr-defined]
        else:
            uid = getattr(record, "user_id", None)
            gid = getattr(record, "group_id", 0)
            record.record_prefix = f"[aid={aid} uid={uid} gid={gid}] "  # type: ignore[attr-defined]
        return super().format(record)


class _JsonFormatter(logging.Formatter):
    """JSON formatter for machine-parseable log output (JSON Lines)."""

    _CONTEXT_FIELDS = (
        "assessment_id",
        "user_id",
        "group_id",
    )

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, object] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in self._CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_entry[key] = value

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level_name: str, *, json_format: bool = False) -> None:
    """Configure root logger for container environments.

    - Sends everything to stdout (Docker captures stdout/stderr)
    - Applies the appropriate formatter based on json_format
    - Installs the record-context filter on the handler
    - Quiets noisy third-party loggers

    Args:
        level_name: Log level string (debug/info/warning/error)
        json_format: If True, emit JSON lines. If False, human-readable.
                     Controlled by LOG_JSON env var in Settings.
    """
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JsonFormatter() if json_format else _ContainerFormatter())
    handler.addFilter(_RecordContextFilter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    # Keep third-party loggers from flooding at DEBUG
    for name in ("sqlalchemy.engine", "sqlalchemy.pool", "asyncpg", "alembic"):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
