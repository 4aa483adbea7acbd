# src/reqlog/core/logging/formatters.py

"""
Custom logging formatters.

  - JsonFormatter: one JSON object per line for log collectors. Access-log fields
    passed through `extra={...}` (statusCode, latency, clientIP, ...) become
    top-level keys next to the standard ones (timestamp, level, logger, message,
    request_id, service, env, version).

  - KeyValueFormatter: human-readable line for local consoles; the same extras
    are appended as `key=value` pairs so text logs keep the access-log fields.

Both formatters must never raise: values that cannot be JSON-serialized are
converted with str().
"""

import json
import logging
from typing import Any
from logging import LogRecord
from reqlog.utils.logging import get_project_version

PROJECT_VERSION = get_project_version()

# Attributes every LogRecord has; anything else on the record came from `extra=`.
RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "asctime", "request_id", "taskName"}


def record_extras(record: LogRecord) -> dict[str, Any]:
    """Return the attributes attached to the record via `extra={...}`."""
    return {
        k: v
        for k, v in record.__dict__.items()
        if k not in RESERVED_ATTRS and not k.startswith("_")
    }


class JsonFormatter(logging.Formatter):
    """
    Structured JSON formatter.

    Construction:
      - env: environment name (e.g., "development" | "production"); optional.
      - service: logical service name to include in logs.
      - datefmt: optional date format passed to logging.Formatter (used by formatTime).
    """

    def __init__(self, *, env: str | None = None, service: str | None = "reqlog", datefmt: str | None = None):
        super().__init__(datefmt=datefmt)
        self.env = env
        self.service = service

    def format(self, record: LogRecord) -> str:
        log_record: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "pathname": record.pathname,
            "lineno": record.lineno,
            "request_id": getattr(record, "request_id", "-"),
            "service": self.service,
            "env": self.env,
            "version": PROJECT_VERSION,
        }

        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            log_record["stack_info"] = self.formatStack(record.stack_info)

        # Extras never override the canonical fields.
        for k, v in record_extras(record).items():
            if k in log_record:
                continue
            try:
                json.dumps(v)
                log_record[k] = v
            except (TypeError, ValueError):
                log_record[k] = str(v)

        return json.dumps(log_record, ensure_ascii=False, default=str)


class KeyValueFormatter(logging.Formatter):
    """
    Plain text formatter: the base `fmt` line followed by ` key=value` for every extra.

    String values containing whitespace are quoted with repr() so multi-line
    error texts stay on one line.
    """

    DEFAULT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(request_id)s | %(message)s"

    def __init__(self, fmt: str | None = None, datefmt: str | None = None) -> None:
        super().__init__(fmt=fmt or self.DEFAULT_FORMAT, datefmt=datefmt)

    def format(self, record: LogRecord) -> str:
        if not hasattr(record, "request_id"):
            record.request_id = "-"
        base = super().format(record)

        pairs = []
        for k, v in record_extras(record).items():
            text = str(v)
            if not text or any(c.isspace() for c in text):
                text = repr(text)
            pairs.append(f"{k}={text}")

        if not pairs:
            return base
        # keep a traceback (appended by the base class) after the key/value pairs
        head, sep, tail = base.partition("\n")
        return f"{head} {' '.join(pairs)}{sep}{tail}"
