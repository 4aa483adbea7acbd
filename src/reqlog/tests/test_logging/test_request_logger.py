# src/reqlog/tests/test_logging/test_request_logger.py
import asyncio
import logging
import re

import pytest
from fastapi import Request, Response
from fastapi.responses import StreamingResponse
from starlette.testclient import TestClient

from reqlog.core.logging.middleware import (
    RequestLoggerMiddleware,
    format_latency,
    level_for_status,
)
from reqlog.exceptions import record_error

ACCESS_FIELDS = ("statusCode", "latency", "clientIP", "method", "path", "error")


def make_client(app, access_logger, **kwargs) -> TestClient:
    app.add_middleware(RequestLoggerMiddleware, logger=access_logger, **kwargs)

    @app.api_route("/status/{code}", methods=["GET", "POST", "DELETE"])
    async def with_status(code: int):
        return Response(status_code=code)

    @app.get("/fails")
    async def fails(request: Request):
        record_error(request, "upstream timed out", meta={"upstream": "billing"})
        record_error(request, ValueError("bad amount"))
        return Response(status_code=502)

    @app.get("/explodes")
    async def explodes():
        raise RuntimeError("kaboom")

    @app.get("/health")
    async def health():
        return {"ok": True}

    return TestClient(app, raise_server_exceptions=False)


@pytest.mark.parametrize("code", [100, 200, 201, 204, 304, 399])
def test_level_for_status_info(code):
    assert level_for_status(code) == logging.INFO


@pytest.mark.parametrize("code", [400, 401, 404, 422, 499])
def test_level_for_status_warning(code):
    assert level_for_status(code) == logging.WARNING


@pytest.mark.parametrize("code", [500, 502, 503, 599, 600])
def test_level_for_status_error(code):
    assert level_for_status(code) == logging.ERROR


@pytest.mark.parametrize(
    "seconds, expected",
    [
        (0, "0s"),
        (850e-9, "850ns"),
        (12.5e-6, "12.5µs"),
        (0.0032, "3.2ms"),
        (1.5, "1.5s"),
        (2, "2s"),
    ],
)
def test_format_latency(seconds, expected):
    assert format_latency(seconds) == expected


@pytest.mark.parametrize(
    "code, level",
    [
        (200, logging.INFO),
        (204, logging.INFO),
        (404, logging.WARNING),
        (429, logging.WARNING),
        (500, logging.ERROR),
        (503, logging.ERROR),
    ],
)
def test_entry_level_follows_status(app, access_logger, access_records, code, level):
    client = make_client(app, access_logger)

    resp = client.get(f"/status/{code}")
    assert resp.status_code == code

    records = access_records()
    assert len(records) == 1
    rec = records[0]
    assert rec.levelno == level
    assert rec.getMessage() == "[HTTP]"
    # same field set regardless of severity
    for field in ACCESS_FIELDS:
        assert hasattr(rec, field), field
    assert rec.statusCode == code
    assert rec.method == "GET"
    assert rec.path == f"/status/{code}"
    assert rec.error == ""


def test_entry_fields(app, access_logger, access_records):
    client = make_client(app, access_logger, message="[API]")

    client.post("/status/201?verbose=1")

    rec = access_records()[0]
    assert rec.getMessage() == "[API]"
    assert rec.method == "POST"
    # query string is not part of the path
    assert rec.path == "/status/201"
    assert rec.clientIP == "testclient"
    assert re.fullmatch(r"\d+(\.\d+)?(ns|µs|ms|s)", rec.latency)


def test_error_text_lists_recorded_errors(app, access_logger, access_records):
    client = make_client(app, access_logger)

    client.get("/fails")

    rec = access_records()[0]
    assert rec.levelno == logging.ERROR
    assert rec.statusCode == 502
    assert rec.error == (
        "Error #01: upstream timed out\n"
        "     Meta: {'upstream': 'billing'}\n"
        "Error #02: bad amount\n"
    )


def test_unhandled_exception_logged_as_500(app, access_logger, access_records):
    client = make_client(app, access_logger)

    resp = client.get("/explodes")
    assert resp.status_code == 500

    rec = access_records()[0]
    assert rec.levelno == logging.ERROR
    assert rec.statusCode == 500
    assert rec.path == "/explodes"


def test_client_ip_from_forwarded_headers(app, access_logger, access_records):
    client = make_client(app, access_logger)

    client.get("/status/200", headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"})
    client.get("/status/200", headers={"X-Real-IP": "198.51.100.2"})

    first, second = access_records()
    assert first.clientIP == "203.0.113.7"
    assert second.clientIP == "198.51.100.2"


def test_client_ip_ignores_forwarded_headers_when_untrusted(app, access_logger, access_records):
    client = make_client(app, access_logger, trust_forwarded_headers=False)

    client.get("/status/200", headers={"X-Forwarded-For": "203.0.113.7"})

    assert access_records()[0].clientIP == "testclient"


def test_skip_paths(app, access_logger, access_records):
    client = make_client(app, access_logger, skip_paths=["/health"])

    assert client.get("/health").status_code == 200
    client.get("/status/200")

    assert [r.path for r in access_records()] == ["/status/200"]


def test_default_logger_name(app, caplog):
    caplog.set_level(logging.INFO, logger="reqlog.access")
    app.add_middleware(RequestLoggerMiddleware)

    @app.get("/")
    async def index():
        return {"ok": True}

    TestClient(app).get("/")

    assert [r.statusCode for r in caplog.records if r.name == "reqlog.access"] == [200]


LATENCY_UNITS = {"ns": 1e-9, "µs": 1e-6, "ms": 1e-3, "s": 1.0}


def latency_seconds(text: str) -> float:
    value, unit = re.fullmatch(r"([\d.]+)(ns|µs|ms|s)", text).groups()
    return float(value) * LATENCY_UNITS[unit]


def test_streamed_response_logged_after_body(app, access_logger, access_records):
    app.add_middleware(RequestLoggerMiddleware, logger=access_logger)

    @app.get("/export")
    async def export(request: Request):
        async def chunks():
            yield b"a"
            await asyncio.sleep(0.2)
            record_error(request, "export truncated")
            yield b"b"

        return StreamingResponse(chunks(), media_type="text/plain")

    resp = TestClient(app).get("/export")
    assert resp.content == b"ab"

    rec = access_records()[0]
    assert rec.statusCode == 200
    assert rec.error == "Error #01: export truncated\n"
    assert latency_seconds(rec.latency) >= 0.2


async def test_status_is_500_when_app_sends_nothing(access_logger, access_records):
    async def silent_app(scope, receive, send):
        raise RuntimeError("no response")

    middleware = RequestLoggerMiddleware(silent_app, logger=access_logger)
    scope = {"type": "http", "method": "GET", "path": "/", "headers": [], "query_string": b""}

    async def receive():
        return {"type": "http.request", "body": b"", "more_body": False}

    async def send(message):
        pass

    with pytest.raises(RuntimeError):
        await middleware(scope, receive, send)

    rec = access_records()[0]
    assert rec.statusCode == 500
    assert rec.levelno == logging.ERROR
