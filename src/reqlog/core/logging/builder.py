# src/reqlog/core/logging/builder.py
"""
Logging builder: create and apply a dictConfig logging configuration and optionally
wire a background QueueListener to decouple log IO from request handling.

This module:
 - builds a dictConfig-compatible mapping from Settings
 - allows a queue-backed logging mode (LOG_USE_QUEUE) that moves the actual writes
   to a background thread (QueueListener) while producers only enqueue records
 - provides NonBlockingQueueHandler, which drops (and counts) records instead of
   blocking producers when a bounded queue is full
 - stamps producer-side filters (RequestIdFilter, RedactFilter) on the QueueHandler
   so contextvars and redaction run in the producing context
 - exposes stop_queue_logging() to flush & stop the listener at shutdown, and
   flush_logging() / get_active_handlers() used by the periodic flusher.
"""

from __future__ import annotations

from pathlib import Path
import logging
import logging.config
import queue as _queue
import threading
from typing import Optional
from logging.handlers import QueueHandler, QueueListener

from reqlog.utils.logging import get_project_name
from reqlog.config.settings import Settings

from .formatters import JsonFormatter, KeyValueFormatter
from .filters import RequestIdFilter, RedactFilter
from .handlers import (
    get_console_handler,
    get_file_handler,
    get_error_file_handler,
    get_error_console_handler,
)

logger = logging.getLogger(__name__)

# Running QueueListener and its queue, so they can be flushed and stopped.
_QUEUE_LISTENER: Optional[QueueListener] = None
_QUEUE: Optional[_queue.Queue] = None

# Diagnostics for dropped logs (bounded, non-blocking queue)
_DROPPED_LOGS_COUNT = 0
_DROPPED_LOGS_LOCK = threading.Lock()


class NonBlockingQueueHandler(QueueHandler):
    """
    QueueHandler variant that never blocks producers when a bounded queue is full.

    On a full queue the record is dropped, the module-level drop counter is
    incremented and handleError(record) reports the failure on stderr.
    """

    def emit(self, record: logging.LogRecord) -> None:
        global _DROPPED_LOGS_COUNT
        try:
            self.queue.put_nowait(self.prepare(record))
        except _queue.Full:
            with _DROPPED_LOGS_LOCK:
                _DROPPED_LOGS_COUNT += 1
            self.handleError(record)


def get_queue_stats() -> dict:
    """Return small diagnostics about queue usage (dropped logs count)."""
    with _DROPPED_LOGS_LOCK:
        return {"dropped_logs": _DROPPED_LOGS_COUNT, "queue_present": _QUEUE is not None}


# -----------------------
# dictConfig builder
# -----------------------
def make_dict_config(settings: Settings) -> dict:
    """
    Build the dictConfig mapping using the provided settings.

    The returned mapping includes:
      - formatters: "standard" (key=value text) and "json"
      - filters: "request_id", "redact"
      - handlers: console, (file/error_file) OR error_console depending on LOG_TO_STDOUT
      - loggers: root, the access logger, uvicorn.error, uvicorn.access
    """
    formatters = {
        "standard": {"()": KeyValueFormatter},
        "json": {
            "()": JsonFormatter,
            "env": settings.ENV,
            "service": getattr(settings, "SERVICE_NAME", None) or get_project_name(),
        },
    }

    filters = {
        "request_id": {"()": RequestIdFilter},
        "redact": {"()": RedactFilter},
    }

    handlers: dict[str, dict] = {"console": get_console_handler(settings)}

    if (not settings.LOG_TO_STDOUT) and (settings.LOG_DIR):
        handlers["file"] = get_file_handler(settings)
        handlers["error_file"] = get_error_file_handler(settings)
    else:
        handlers["error_console"] = get_error_console_handler(settings)

    access_logger_name = getattr(settings, "ACCESS_LOGGER_NAME", "reqlog.access")

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "filters": filters,
        "handlers": handlers,
        "loggers": {
            "": {
                "handlers": list(handlers.keys()),
                "level": settings.LOG_LEVEL,
                "propagate": True,
            },
            # access entries go through the root handlers
            access_logger_name: {
                "level": "INFO",
                "handlers": [],
                "propagate": True,
            },
            "uvicorn.error": {
                "level": settings.LOG_LEVEL,
                "handlers": list(handlers.keys()),
                "propagate": False,
            },
            # RequestLoggerMiddleware replaces uvicorn's own access lines
            "uvicorn.access": {
                "level": "WARNING",
                "handlers": ["console"],
                "propagate": False,
            },
        },
    }


# --------------------------
# Entrypoint: setup & optional queue wiring
# --------------------------
def setup_logging(settings: Settings) -> None:
    """
    Initialize logging using settings and optionally switch to queue-backed logging.

    Steps:
      1. Ensure LOG_DIR exists when writing files.
      2. Apply dictConfig(make_dict_config(settings)).
      3. Register a RequestIdFilter on the root logger as a safety net.
      4. If settings.LOG_USE_QUEUE: move the root handlers behind a QueueListener
         and attach a (NonBlocking)QueueHandler carrying the producer-side filters.
    """
    global _QUEUE_LISTENER, _QUEUE

    # a previous listener would keep writing to handlers dictConfig just closed
    stop_queue_logging()

    if (not settings.LOG_TO_STDOUT) and (settings.LOG_DIR):
        Path(settings.LOG_DIR).mkdir(parents=True, exist_ok=True)

    logging.config.dictConfig(make_dict_config(settings))
    logging.getLogger().addFilter(RequestIdFilter())

    if not getattr(settings, "LOG_USE_QUEUE", False):
        return

    max_size = getattr(settings, "LOG_QUEUE_MAX_SIZE", 0) or 0
    blocking = bool(getattr(settings, "LOG_QUEUE_BLOCKING", False))

    root_logger = logging.getLogger()
    current_handlers = list(root_logger.handlers)
    if not current_handlers:
        return

    # Remove the real handler instances from every logger so they only run in the listener thread.
    handlers_to_move = set(current_handlers)
    for logger_obj in list(logging.Logger.manager.loggerDict.values()):
        if isinstance(logger_obj, logging.Logger):
            for h in list(logger_obj.handlers):
                if h in handlers_to_move:
                    logger_obj.removeHandler(h)
    for h in current_handlers:
        root_logger.removeHandler(h)

    log_queue: _queue.Queue = _queue.Queue(max_size) if max_size > 0 else _queue.Queue()

    if max_size > 0 and not blocking:
        queue_handler_cls = NonBlockingQueueHandler
    else:
        queue_handler_cls = QueueHandler

    listener = QueueListener(log_queue, *current_handlers, respect_handler_level=True)
    listener.start()

    qh = queue_handler_cls(log_queue)
    qh.addFilter(RequestIdFilter())
    qh.addFilter(RedactFilter())
    root_logger.addHandler(qh)

    _QUEUE_LISTENER = listener
    _QUEUE = log_queue


def stop_queue_logging() -> None:
    """
    Stop the QueueListener (drains the queue and joins its thread) and clear module refs.
    """
    global _QUEUE_LISTENER, _QUEUE
    listener = _QUEUE_LISTENER
    if listener is None:
        return

    try:
        listener.stop()
    except Exception:
        logger.exception("Failed to stop QueueListener cleanly")
    finally:
        _QUEUE_LISTENER = None
        _QUEUE = None


def get_active_handlers(target: logging.Logger | None = None) -> list[logging.Handler]:
    """
    Handlers that actually write records for `target` (root by default):
    the handlers on the logger and its ancestors (honoring propagate), plus the
    QueueListener's handlers when queue logging is active.
    """
    found: list[logging.Handler] = []
    current: logging.Logger | None = target or logging.getLogger()
    while current is not None:
        for h in current.handlers:
            if h not in found:
                found.append(h)
        if not current.propagate:
            break
        current = current.parent

    listener = _QUEUE_LISTENER
    if listener is not None:
        for h in listener.handlers:
            if h not in found:
                found.append(h)
    return found


def flush_logging(target: logging.Logger | None = None) -> None:
    """Flush every active handler for `target` (root by default)."""
    for h in get_active_handlers(target):
        h.flush()
