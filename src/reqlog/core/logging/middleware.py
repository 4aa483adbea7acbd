# src/reqlog/core/logging/middleware.py
"""
Request middlewares for FastAPI / Starlette.

RequestIDMiddleware
    Stores a per-request correlation id in a contextvar (picked up by
    RequestIdFilter) and returns it in the `X-Request-ID` response header.

RequestLoggerMiddleware
    Pure ASGI middleware. Times the downstream app until the response body is
    complete and emits one access-log entry per request,
    at a severity derived from the response status:

        400-499 -> WARNING
        >= 500  -> ERROR
        other   -> INFO

    Every entry carries the same fields: statusCode, latency, clientIP, method,
    path, error (the request's recorded errors, see reqlog.exceptions).

ErrorReporterMiddleware
    Pure ASGI middleware. If the downstream handler finished without writing any
    body bytes, the request errors matching `error_type` are written as a JSON
    body, keeping the status the handler already set.

Register them outermost-first:

    app.add_middleware(ErrorReporterMiddleware)
    app.add_middleware(RequestLoggerMiddleware, logger=access_logger)
    app.add_middleware(RequestIDMiddleware)

(`add_middleware` wraps, so the last one added runs first.)
"""

from __future__ import annotations

import json
import logging
import re
import time
import uuid
from collections.abc import Iterable
from typing import Any

from starlette.datastructures import MutableHeaders
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import HTTPConnection, Request
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from reqlog.exceptions import ErrorType, get_errors
from .filters import set_request_id, reset_request_id

REQUEST_ID_HEADER = "X-Request-ID"
DEFAULT_ACCESS_LOGGER = "reqlog.access"
DEFAULT_ACCESS_MESSAGE = "[HTTP]"

# Accept only opaque ids from upstream; anything else (newlines, huge values) is replaced.
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")

# Statuses that must not carry a body
_NO_BODY_STATUSES = {204, 304}


def level_for_status(status_code: int) -> int:
    """Map a response status to the access-log level."""
    if 400 <= status_code <= 499:
        return logging.WARNING
    if status_code >= 500:
        return logging.ERROR
    return logging.INFO


def _trim(value: float, decimals: int) -> str:
    return f"{value:.{decimals}f}".rstrip("0").rstrip(".")


def format_latency(seconds: float) -> str:
    """
    Render a duration the compact way: "850ns", "12.5µs", "3.2ms", "1.5s".
    """
    ns = round(seconds * 1e9)
    if ns <= 0:
        return "0s"
    if ns < 1_000:
        return f"{ns}ns"
    if ns < 1_000_000:
        return f"{_trim(ns / 1e3, 3)}µs"
    if ns < 1_000_000_000:
        return f"{_trim(ns / 1e6, 6)}ms"
    return f"{_trim(ns / 1e9, 9)}s"


def client_ip(conn: HTTPConnection, trust_forwarded_headers: bool = True) -> str:
    """
    Best guess of the client address: first X-Forwarded-For hop, then X-Real-IP,
    then the ASGI peer. Proxy headers are ignored when `trust_forwarded_headers` is False.
    """
    if trust_forwarded_headers:
        ip = conn.headers.get("x-forwarded-for", "").split(",")[0].strip()
        if ip:
            return ip
        ip = conn.headers.get("x-real-ip", "").strip()
        if ip:
            return ip
    return conn.client.host if conn.client else ""


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Sets a request id for each incoming request.

    Uses the `X-Request-ID` header when it is present and looks like an opaque id;
    otherwise generates a UUID4. The id is stored in a contextvar for the duration
    of the request and echoed back in the response header.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        incoming = request.headers.get(REQUEST_ID_HEADER)
        rid = incoming if incoming and _VALID_REQUEST_ID.match(incoming) else str(uuid.uuid4())

        token = set_request_id(rid)
        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = rid
            return response
        finally:
            reset_request_id(token)


class RequestLoggerMiddleware:
    """
    Access-log middleware (pure ASGI).

    Args:
        app: downstream ASGI app.
        logger: logger to emit on (defaults to "reqlog.access").
        message: log message of every entry.
        skip_paths: request paths that are not logged (health checks, metrics).
        trust_forwarded_headers: honor X-Forwarded-For / X-Real-IP for clientIP.

    The entry is written once the downstream app has returned, i.e. after the
    whole body was sent, so streamed responses are timed end to end and errors
    recorded while streaming are included. The status comes from the
    `http.response.start` message. If the downstream app raises, the entry is
    logged with status 500 and the exception keeps propagating.
    """

    def __init__(
        self,
        app: ASGIApp,
        logger: logging.Logger | None = None,
        message: str = DEFAULT_ACCESS_MESSAGE,
        skip_paths: Iterable[str] = (),
        trust_forwarded_headers: bool = True,
    ) -> None:
        self.app = app
        self.logger = logger or logging.getLogger(DEFAULT_ACCESS_LOGGER)
        self.message = message
        self.skip_paths = frozenset(skip_paths)
        self.trust_forwarded_headers = trust_forwarded_headers

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        conn = HTTPConnection(scope)
        start = time.perf_counter()
        status_code = 500

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception:
            status_code = 500
            raise
        finally:
            if conn.url.path not in self.skip_paths:
                self.log_request(conn, status_code, time.perf_counter() - start)

    def log_request(self, conn: HTTPConnection, status_code: int, elapsed: float) -> None:
        fields = {
            "statusCode": status_code,
            "latency": format_latency(elapsed),
            "clientIP": client_ip(conn, self.trust_forwarded_headers),
            "method": conn.scope["method"],
            "path": conn.url.path,
            "error": str(get_errors(conn)),
        }
        self.logger.log(level_for_status(status_code), self.message, extra=fields)


class ErrorReporterMiddleware:
    """
    Writes accumulated request errors as a JSON body when the handler wrote none.

    The `http.response.start` message is held back until the first non-empty body
    chunk; if the handler completes without one and there are errors matching
    `error_type`, the held status and headers are sent with the JSON body instead
    (content-type and content-length replaced). Without matching errors the
    original messages go out unchanged.
    """

    def __init__(self, app: ASGIApp, error_type: ErrorType = ErrorType.ANY) -> None:
        self.app = app
        self.error_type = ErrorType(error_type)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        conn = HTTPConnection(scope)
        start_message: Message | None = None
        written = False
        finished = False

        async def send_wrapper(message: Message) -> None:
            nonlocal start_message, written, finished
            if written:
                await send(message)
                return

            if message["type"] == "http.response.start":
                start_message = message
                return

            if message["type"] == "http.response.body" and not message.get("body"):
                if not message.get("more_body", False):
                    finished = True
                return

            # first real output: release the held start message
            written = True
            if start_message is not None:
                await send(start_message)
            await send(message)

        await self.app(scope, receive, send_wrapper)

        if written:
            return

        payload = get_errors(conn).by_type(self.error_type).to_json()
        if payload is None:
            if start_message is not None:
                await send(start_message)
            if start_message is not None or finished:
                await send({"type": "http.response.body", "body": b"", "more_body": False})
            return

        await self.send_errors(send, start_message, payload)

    async def send_errors(self, send: Send, start_message: Message | None, payload: Any) -> None:
        status = start_message["status"] if start_message is not None else 200
        raw_headers = list(start_message.get("headers", [])) if start_message is not None else []
        headers = MutableHeaders(raw=raw_headers)

        if status < 200 or status in _NO_BODY_STATUSES:
            body = b""
        else:
            body = json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str).encode("utf-8")
            headers["content-type"] = "application/json"
        headers["content-length"] = str(len(body))

        await send({"type": "http.response.start", "status": status, "headers": headers.raw})
        await send({"type": "http.response.body", "body": body, "more_body": False})


__all__ = [
    "REQUEST_ID_HEADER",
    "level_for_status",
    "format_latency",
    "client_ip",
    "RequestIDMiddleware",
    "RequestLoggerMiddleware",
    "ErrorReporterMiddleware",
]
