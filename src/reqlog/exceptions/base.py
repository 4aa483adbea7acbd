"""
Per-request error accumulation.

Handlers attach errors to the current request instead of (or before) raising,
and the middlewares read them back once the downstream handler is done:

  - RequestLoggerMiddleware renders them into the `error` field of the access log.
  - ErrorReporterMiddleware serializes the matching ones as a JSON body when the
    handler did not write a body itself.

Errors live on `request.state.errors`, which Starlette stores in the ASGI scope,
so every middleware and endpoint that shares the scope sees the same list.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from enum import IntFlag
from typing import Any

from pydantic import BaseModel
from starlette.requests import HTTPConnection


class ErrorType(IntFlag):
    """
    Bit flags used to classify request errors.

    A reporter configured with a type only picks errors whose flags overlap it;
    ANY matches everything.
    """

    PRIVATE = 1 << 0
    PUBLIC = 1 << 1
    RENDER = 1 << 62
    BIND = 1 << 63
    ANY = PRIVATE | PUBLIC | RENDER | BIND


class RequestError(Exception):
    """
    An error recorded against a single request.

    - err: the underlying exception or a plain message
    - type: ErrorType flags used for filtering
    - meta: optional extra data; mappings are merged into the JSON payload,
      dataclasses / pydantic models replace it, anything else lands under "meta"
    """

    def __init__(self, err: BaseException | str, *, type: ErrorType = ErrorType.PRIVATE,
                 meta: Any = None):
        super().__init__(str(err))
        self.err = err
        self.type = ErrorType(type)
        self.meta = meta

    def __str__(self) -> str:
        return str(self.err)

    def __repr__(self) -> str:
        return f"RequestError({str(self.err)!r}, type={self.type!r}, meta={self.meta!r})"

    def is_type(self, flags: ErrorType) -> bool:
        return (self.type & flags) > 0

    def to_payload(self) -> Any:
        """
        Return a JSON-serializable representation of this error.

        Shape:
            {"error": "<message>", ...meta items}    # mapping meta
            {"error": "<message>", "meta": <meta>}   # scalar / list meta
            <meta as dict>                           # dataclass / pydantic meta
        """
        meta = self.meta
        if isinstance(meta, BaseModel):
            return meta.model_dump(mode="json")
        if dataclasses.is_dataclass(meta) and not isinstance(meta, type):
            return dataclasses.asdict(meta)

        payload: dict[str, Any] = {}
        if isinstance(meta, Mapping):
            payload.update({str(k): v for k, v in meta.items()})
        elif meta is not None:
            payload["meta"] = meta

        payload.setdefault("error", str(self.err))
        return payload


class ErrorList(list):
    """List of RequestError with the filtering/rendering helpers the middlewares use."""

    def by_type(self, flags: ErrorType) -> ErrorList:
        if not self:
            return ErrorList()
        if flags == ErrorType.ANY:
            return ErrorList(self)
        return ErrorList(e for e in self if e.is_type(flags))

    def last(self) -> RequestError | None:
        return self[-1] if self else None

    def messages(self) -> list[str]:
        return [str(e) for e in self]

    def to_json(self) -> Any:
        """None when empty, the single payload for one error, a list otherwise."""
        if not self:
            return None
        if len(self) == 1:
            return self[0].to_payload()
        return [e.to_payload() for e in self]

    def __str__(self) -> str:
        if not self:
            return ""
        lines = []
        for i, e in enumerate(self, start=1):
            lines.append(f"Error #{i:02d}: {e.err}\n")
            if e.meta is not None:
                lines.append(f"     Meta: {e.meta}\n")
        return "".join(lines)


def get_errors(conn: HTTPConnection) -> ErrorList:
    """Return the error list of the request, creating it on first access."""
    errors = getattr(conn.state, "errors", None)
    if errors is None:
        errors = ErrorList()
        conn.state.errors = errors
    return errors


def record_error(conn: HTTPConnection, err: BaseException | str, *,
                 type: ErrorType | None = None, meta: Any = None) -> RequestError:
    """
    Attach an error to the request and return the recorded RequestError.

    Passing an existing RequestError keeps its type/meta unless overridden.
    New errors default to ErrorType.PRIVATE.
    """
    if isinstance(err, RequestError):
        error = err
        if type is not None:
            error.type = ErrorType(type)
        if meta is not None:
            error.meta = meta
    else:
        error = RequestError(err, type=ErrorType.PRIVATE if type is None else type, meta=meta)
    get_errors(conn).append(error)
    return error


__all__ = [
    "ErrorType",
    "RequestError",
    "ErrorList",
    "get_errors",
    "record_error",
]
