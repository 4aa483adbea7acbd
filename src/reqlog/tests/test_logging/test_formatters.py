# src/reqlog/tests/test_logging/test_formatters.py
import json
import logging
import sys

from reqlog.core.logging.formatters import JsonFormatter, KeyValueFormatter, record_extras

def make_record(**extras):
    rec = logging.LogRecord("reqlog.access", logging.WARNING, __file__, 10, "[HTTP]", (), None)
    for k, v in extras.items():
        setattr(rec, k, v)
    return rec

def access_extras():
    return {
        "statusCode": 404,
        "latency": "1.2ms",
        "clientIP": "10.0.0.1",
        "method": "GET",
        "path": "/missing",
        "error": "",
    }

def test_record_extras_only_returns_extras():
    rec = make_record(**access_extras())
    assert record_extras(rec) == access_extras()

def test_json_formatter_access_fields():
    rec = make_record(request_id="req-1", **access_extras())
    data = json.loads(JsonFormatter(env="testing", service="svc").format(rec))

    assert data["message"] == "[HTTP]"
    assert data["level"] == "WARNING"
    assert data["service"] == "svc"
    assert data["env"] == "testing"
    assert data["request_id"] == "req-1"
    assert "timestamp" in data
    assert "version" in data
    for k, v in access_extras().items():
        assert data[k] == v
    # standard LogRecord attributes are not dumped as extras
    assert "levelno" not in data
    assert "args" not in data

def test_json_formatter_non_serializable_extra():
    class X:
        def __repr__(self):
            return "<X>"
    data = json.loads(JsonFormatter(env="dev", service="svc").format(make_record(obj=X())))
    assert data["obj"] == "<X>"

def test_json_formatter_extras_do_not_override_canonical_fields():
    data = json.loads(JsonFormatter(service="svc").format(make_record(service="spoofed")))
    assert data["service"] == "svc"

def test_json_formatter_exception():
    try:
        raise ValueError("boom")
    except ValueError:
        rec = logging.LogRecord("app", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())
    data = json.loads(JsonFormatter().format(rec))
    assert "ValueError: boom" in data["exc_info"]

def test_key_value_formatter_appends_extras():
    rec = make_record(request_id="req-9", **access_extras())
    line = KeyValueFormatter().format(rec)

    assert "| WARNING | reqlog.access | req-9 | [HTTP]" in line
    assert "statusCode=404" in line
    assert "clientIP=10.0.0.1" in line
    assert "path=/missing" in line
    # empty values stay visible
    assert "error=''" in line

def test_key_value_formatter_quotes_multiline_values():
    rec = make_record(error="Error #01: boom\n")
    line = KeyValueFormatter().format(rec)
    assert "\n" not in line
    assert "error='Error #01: boom\\n'" in line

def test_key_value_formatter_without_request_id():
    line = KeyValueFormatter().format(make_record())
    assert "| - | [HTTP]" in line
