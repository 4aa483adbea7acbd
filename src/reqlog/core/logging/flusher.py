# src/reqlog/core/logging/flusher.py
"""
Periodic flush of the log sink.

PeriodicFlusher runs one daemon thread that calls `sink.flush()` every
`interval` seconds until stop() is called. The stop signal is a
threading.Event, so stop() returns after at most one wake-up instead of
waiting for a whole interval, and a final flush runs once the thread is gone.

The sink is anything with a flush() method (a logging.Handler, a stream, ...).
A logging.Logger is wrapped in LoggerSink, which flushes every handler that
writes for that logger, including the QueueListener handlers when
queue-backed logging is active.

Typical use with FastAPI:

    flusher = PeriodicFlusher(settings.LOG_FLUSH_INTERVAL, logging.getLogger())
    app = FastAPI(lifespan=flusher_lifespan(flusher))
"""

from __future__ import annotations

import logging
import threading
from typing import Protocol, runtime_checkable

from .builder import flush_logging

logger = logging.getLogger(__name__)


@runtime_checkable
class Flushable(Protocol):
    def flush(self) -> None: ...


class LoggerSink:
    """Adapts a logging.Logger (which has no flush()) to the Flushable protocol."""

    def __init__(self, target: logging.Logger):
        self.logger = target

    def flush(self) -> None:
        flush_logging(self.logger)

    def __repr__(self) -> str:
        return f"LoggerSink({self.logger.name!r})"


def as_sink(sink: Flushable | logging.Logger) -> Flushable:
    if isinstance(sink, logging.Logger):
        return LoggerSink(sink)
    if not callable(getattr(sink, "flush", None)):
        raise TypeError(f"sink must have a flush() method or be a logging.Logger, got {sink!r}")
    return sink


class PeriodicFlusher:
    """
    Flush `sink` every `interval` seconds on a background thread.

    Lifecycle: start() -> running -> stop(). A stopped flusher can be started again.
    Also usable as a context manager.
    """

    def __init__(self, interval: float, sink: Flushable | logging.Logger, *, name: str = "reqlog-flusher"):
        if interval <= 0:
            raise ValueError(f"flush interval must be > 0, got {interval!r}")
        self.interval = float(interval)
        self.sink = as_sink(sink)
        self.name = name
        self.flush_count = 0
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self.running:
                raise RuntimeError(f"{self.name} is already running")
            self._stop_event.clear()
            self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
            self._thread.start()
        logger.debug("Started %s (interval=%.3fs, sink=%r)", self.name, self.interval, self.sink)

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Signal the thread to stop, wait up to `timeout` seconds for it, then flush once more.
        No-op when the flusher is not running.

        If the thread does not exit in time it stays attached: `running` keeps
        reporting True, start() refuses to run a second thread, and stop() can be
        called again.
        """
        with self._lock:
            thread = self._thread
            if thread is None:
                return
            self._stop_event.set()
            thread.join(timeout)
            if thread.is_alive():
                logger.warning("%s did not stop within %.1fs", self.name, timeout)
                return
            self._thread = None
        self.flush()
        logger.debug("Stopped %s after %d flushes", self.name, self.flush_count)

    def flush(self) -> None:
        """Flush the sink now. Errors are logged, never raised."""
        try:
            self.sink.flush()
        except Exception:
            logger.exception("Flushing %r failed", self.sink)
        else:
            self.flush_count += 1

    def _run(self) -> None:
        # Event.wait returns True once stop() sets the event
        while not self._stop_event.wait(self.interval):
            self.flush()

    def __enter__(self) -> PeriodicFlusher:
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()


__all__ = ["Flushable", "LoggerSink", "PeriodicFlusher", "as_sink"]
