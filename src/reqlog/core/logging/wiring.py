# src/reqlog/core/logging/wiring.py
"""
Helpers that put the pieces together on a FastAPI / Starlette app.

    settings = get_settings()
    setup_logging(settings)

    flusher = create_flusher(settings)
    app = FastAPI(lifespan=flusher_lifespan(flusher))
    install_request_logging(app, settings=settings)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable

from starlette.types import ASGIApp

from reqlog.config.settings import Settings, get_settings
from reqlog.exceptions import ErrorType
from .flusher import Flushable, PeriodicFlusher
from .middleware import ErrorReporterMiddleware, RequestIDMiddleware, RequestLoggerMiddleware

Lifespan = Callable[[Any], Any]


def create_flusher(settings: Settings | None = None, sink: Flushable | logging.Logger | None = None) -> PeriodicFlusher:
    """PeriodicFlusher for `sink` (the access logger by default) at LOG_FLUSH_INTERVAL."""
    settings = settings or get_settings()
    if sink is None:
        sink = logging.getLogger(settings.ACCESS_LOGGER_NAME)
    return PeriodicFlusher(settings.LOG_FLUSH_INTERVAL, sink)


def flusher_lifespan(flusher: PeriodicFlusher, lifespan: Lifespan | None = None) -> Lifespan:
    """
    Build a `lifespan=` callable that starts `flusher` on startup and stops it on shutdown.

    An existing lifespan can be wrapped; its state is passed through.
    """

    @asynccontextmanager
    async def _lifespan(app: ASGIApp) -> AsyncIterator[Any]:
        flusher.start()
        try:
            if lifespan is None:
                yield None
            else:
                async with lifespan(app) as state:
                    yield state
        finally:
            flusher.stop()

    return _lifespan


def install_request_logging(app, logger: logging.Logger | None = None, settings: Settings | None = None) -> None:
    """
    Register ErrorReporterMiddleware, RequestLoggerMiddleware and RequestIDMiddleware
    (outermost) on `app`, configured from settings.
    """
    settings = settings or get_settings()
    access_logger = logger or logging.getLogger(settings.ACCESS_LOGGER_NAME)

    app.add_middleware(ErrorReporterMiddleware, error_type=ErrorType[settings.ERROR_REPORTER_TYPE])
    app.add_middleware(
        RequestLoggerMiddleware,
        logger=access_logger,
        message=settings.ACCESS_LOG_MESSAGE,
        skip_paths=settings.access_log_skip_paths,
        trust_forwarded_headers=settings.TRUST_FORWARDED_HEADERS,
    )
    app.add_middleware(RequestIDMiddleware)
