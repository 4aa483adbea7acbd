# src/reqlog/core/logging/filters.py
"""
Logging filters

Request ID filter and helpers for logging.

The request id is kept in a `contextvars.ContextVar` so it follows the request
across `await` boundaries (RequestIDMiddleware sets it, RequestIdFilter stamps it
onto every LogRecord). Records without an id get the sentinel "-" so format
strings referencing `%(request_id)s` never KeyError.

RedactFilter masks well-known sensitive attributes passed through `extra={...}`
before any formatter sees them.
"""

import logging
from logging import LogRecord
import contextvars

_request_id_ctx: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "request_id", default=None
)


def set_request_id(request_id: str | None):
    """
    Set the request id in the current context and return the token to allow reset.
    """
    return _request_id_ctx.set(request_id)


def reset_request_id(token):
    """
    Reset the contextvar to the previously saved token returned by set_request_id().
    """
    _request_id_ctx.reset(token)


def get_request_id() -> str | None:
    """
    Retrieve the current context's request id, or None if none has been set.
    """
    return _request_id_ctx.get()


class RequestIdFilter(logging.Filter):
    """
    Logging filter that guarantees every LogRecord has a `request_id` attribute.

    Priority: explicit `extra={"request_id": ...}` > contextvar > "-".
    Always returns True; the filter only annotates.
    """

    def filter(self, record: LogRecord) -> bool:
        record.request_id = (
            getattr(record, "request_id", None) or get_request_id() or "-"
        )
        return True


class RedactFilter(logging.Filter):
    """Mask record attributes whose name is a known secret (password, token, ...)."""

    SENSITIVE = {"password", "secret", "token", "access_token", "refresh_token", "ssn", "authorization", "cookie"}
    MASK = "***REDACTED***"

    def filter(self, record: LogRecord) -> bool:
        for key in list(record.__dict__.keys()):
            if key.lower() in self.SENSITIVE:
                record.__dict__[key] = self.MASK
        return True


__all__ = [
    "set_request_id",
    "reset_request_id",
    "get_request_id",
    "RequestIdFilter",
    "RedactFilter",
]
