"""Queue-based logging so log I/O never runs on the cycle worker thread."""

from __future__ import annotations

import logging
import queue
from collections.abc import Iterable
from logging.handlers import QueueHandler, QueueListener

DEFAULT_LOGGERS = ("robocaty.server.engine", "robocaty.backends")


def _effective_handlers(lg: logging.Logger) -> list[logging.Handler]:
    """Handlers a record from ``lg`` would reach, walking up the hierarchy."""
    current: logging.Logger | None = lg
    while current is not None:
        if current.handlers:
            return current.handlers[:]
        if not current.propagate:
            break
        current = current.parent
    return []


class AsyncLogHandler:
    """Route selected loggers through a QueueHandler + QueueListener.

    Records are queued without blocking on the calling thread and written
    by the listener thread. ``stop()`` flushes the queue and restores the
    original handler/propagation setup; both calls are idempotent.
    """

    def __init__(self, logger_names: Iterable[str] = DEFAULT_LOGGERS):
        self._queue: queue.Queue[logging.LogRecord] = queue.Queue(-1)
        self._listener: QueueListener | None = None
        self._loggers = [logging.getLogger(name) for name in logger_names]
        self._saved: list[tuple[logging.Logger, list[logging.Handler], bool]] = []
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    def start(self) -> None:
        """Swap the wrapped loggers onto the queue. Call before the worker starts."""
        if self._started:
            return

        targets: list[logging.Handler] = []
        for lg in self._loggers:
            for h in _effective_handlers(lg):
                if h not in targets:
                    targets.append(h)
        if not targets:
            # Nothing configured downstream, nothing to wrap
            return

        queue_handler = QueueHandler(self._queue)
        for lg in self._loggers:
            self._saved.append((lg, lg.handlers[:], lg.propagate))
            lg.handlers = [queue_handler]
            lg.propagate = False

        self._listener = QueueListener(
            self._queue, *targets, respect_handler_level=True
        )
        self._listener.start()
        self._started = True

    def stop(self) -> None:
        """Flush queued records and restore the original logger setup."""
        if not self._started:
            return

        if self._listener:
            self._listener.stop()
            self._listener = None

        for lg, handlers, propagate in self._saved:
            lg.handlers = handlers
            lg.propagate = propagate
        self._saved = []
        self._started = False
