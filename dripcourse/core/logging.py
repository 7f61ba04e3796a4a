"""Logging configuration for dripcourse.

Two output formats share one root handler on stdout:

  _ContainerFormatter: single-line, human-readable, for local dev.
  _JsonFormatter: one JSON object per line, for log aggregation.
    Set LOG_JSON=true in production.

Structured context travels on the LogRecord as attributes.  HTTP requests
get theirs from RequestContextMiddleware; the daily unlock pass passes
``extra={"membership_id": ..., "module_id": ...}`` so every skipped or
failed notification can be traced back to its (membership, module) pair.
"""

from __future__ import annotations

import json
import logging
import sys


class _ContainerFormatter(logging.Formatter):
    """Single-line formatter tuned for container stdout.

    - Always: ISO-8601 timestamp, level, logger name, message
    - WARNING+: appends [filename:lineno]
    - Pair context (membership/module) appended when present
    """

    _BASE_FMT = "%(asctime)s %(levelname)-8s %(name)s  %(message)s"
    _LOC_SUFFIX = "  [%(filename)s:%(lineno)d]"

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        base = super().formatTime(record, datefmt)
        ms = int(record.msecs)
        return f"{base[:-5]}.{ms:03d}{base[-5:]}"

    def format(self, record: logging.LogRecord) -> str:
        if record.levelno >= logging.WARNING:
            self._style._fmt = self._BASE_FMT + self._LOC_SUFFIX
        else:
            self._style._fmt = self._BASE_FMT
        line = super().format(record)

        membership_id = getattr(record, "membership_id", None)
        if membership_id is not None:
            pair = f"membership={membership_id}"
            module_id = getattr(record, "module_id", None)
            if module_id is not None:
                pair += f" module={module_id}"
            first, sep, rest = line.partition("\n")
            line = f"{first}  ({pair}){sep}{rest}"
        return line


class _JsonFormatter(logging.Formatter):
    """JSON Lines formatter.

    Context fields found on the record become top-level keys, so the
    aggregator can filter on e.g. ``membership_id == "..."``.
    """

    _CONTEXT_FIELDS = (
        "request_id",
        "method",
        "path",
        "status_code",
        "duration_ms",
        "membership_id",
        "module_id",
        "run_date",
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
    """Configure the root logger: stdout handler, chosen formatter, quiet deps."""
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JsonFormatter() if json_format else _ContainerFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    for name in (
        "uvicorn",
        "uvicorn.access",
        "uvicorn.error",
        "httpcore",
        "httpx",
        "sqlalchemy.engine",
    ):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
