"""Request logging and error reporting middleware for FastAPI / Starlette."""

from reqlog.core.logging import (
    ErrorReporterMiddleware,
    PeriodicFlusher,
    RequestIDMiddleware,
    RequestLoggerMiddleware,
    flusher_lifespan,
    install_request_logging,
    setup_logging,
)
from reqlog.exceptions import ErrorType, RequestError, get_errors, record_error

__all__ = [
    "ErrorReporterMiddleware",
    "PeriodicFlusher",
    "RequestIDMiddleware",
    "RequestLoggerMiddleware",
    "flusher_lifespan",
    "install_request_logging",
    "setup_logging",
    "ErrorType",
    "RequestError",
    "get_errors",
    "record_error",
]
