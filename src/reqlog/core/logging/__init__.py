# src/reqlog/core/logging/
# ├─ __init__.py            # public API
# ├─ builder.py             # make_dict_config(settings) + setup_logging(settings) + flush helpers
# ├─ formatters.py          # JsonFormatter, KeyValueFormatter
# ├─ filters.py             # RequestIdFilter, RedactFilter (+ contextvar helpers)
# ├─ handlers.py            # handler config factories (console/file)
# ├─ flusher.py             # PeriodicFlusher
# ├─ middleware.py          # RequestIDMiddleware, RequestLoggerMiddleware, ErrorReporterMiddleware
# └─ wiring.py              # install_request_logging(), flusher_lifespan(), create_flusher()


from .builder import setup_logging, make_dict_config, stop_queue_logging, flush_logging
from .filters import set_request_id, get_request_id, RequestIdFilter
from .flusher import PeriodicFlusher, LoggerSink
from .middleware import (
    RequestIDMiddleware,
    RequestLoggerMiddleware,
    ErrorReporterMiddleware,
    level_for_status,
)
from .wiring import create_flusher, flusher_lifespan, install_request_logging

__all__ = [
    "setup_logging", "make_dict_config", "stop_queue_logging", "flush_logging",
    "set_request_id", "get_request_id", "RequestIdFilter",
    "PeriodicFlusher", "LoggerSink",
    "RequestIDMiddleware", "RequestLoggerMiddleware", "ErrorReporterMiddleware", "level_for_status",
    "create_flusher", "flusher_lifespan", "install_request_logging",
]
