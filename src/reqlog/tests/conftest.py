"""
Core pytest configuration for the test suite.

Installs the package logging configuration once per session and provides the
small app / logger fixtures shared by the middleware tests.
"""

from __future__ import annotations

import logging

# -------------------------------
# Early logging tuning
# -------------------------------
# Quiet noisy third-party loggers before anything imports them.
NOISY_LOGGERS = (
    "asyncio",
    "httpx",
    "httpcore",
    "urllib3",
)
for _name in NOISY_LOGGERS:
    logging.getLogger(_name).setLevel(logging.WARNING)

import pytest
from fastapi import FastAPI

from reqlog.config.settings import Settings
from reqlog.core.logging.builder import setup_logging, stop_queue_logging


def make_test_settings(**overrides) -> Settings:
    """Settings for tests; never reads the developer's .env file."""
    values = {
        "ENV": "testing",
        "SERVICE_NAME": "reqlog-tests",
        "LOG_LEVEL": "INFO",
        "LOG_FORMAT": "text",
        "LOG_TO_STDOUT": True,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


TEST_SETTINGS = make_test_settings()


@pytest.fixture(scope="session", autouse=True)
def configure_logging():
    """
    Install the package logging configuration for the whole session.

    Tests assert on records through caplog, whose handler pytest attaches to the
    root logger around every test phase, so it survives this dictConfig call.
    """
    setup_logging(TEST_SETTINGS)
    yield
    stop_queue_logging()


@pytest.fixture()
def restore_logging():
    """For tests that call setup_logging() themselves: put the session config back afterwards."""
    yield
    stop_queue_logging()
    setup_logging(TEST_SETTINGS)


@pytest.fixture()
def access_logger() -> logging.Logger:
    logger = logging.getLogger("tests.access")
    logger.setLevel(logging.DEBUG)
    return logger


@pytest.fixture()
def app() -> FastAPI:
    return FastAPI()


@pytest.fixture()
def access_records(caplog):
    """Callable returning the captured records of the test access logger."""
    caplog.set_level(logging.DEBUG, logger="tests.access")

    def _records(name: str = "tests.access") -> list[logging.LogRecord]:
        return [r for r in caplog.records if r.name == name]

    return _records


@pytest.fixture()
def settings_factory():
    return make_test_settings
