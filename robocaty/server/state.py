"""
Shared runtime state for the worker and the operator threads.
"""

from __future__ import annotations

import threading
from enum import Enum


class LifecycleState(Enum):
    """Bridge lifecycle: STARTING -> RUNNING -> STOP_REQUESTED -> DRAINING -> STOPPED."""

    STARTING = "starting"
    RUNNING = "running"
    STOP_REQUESTED = "stop_requested"
    DRAINING = "draining"
    STOPPED = "stopped"


class EngineState:
    """
    Flags shared by the cycle worker and the operator input loop.

    ``running`` and ``dashboard_enabled`` are guarded by one reentrant lock
    held only for the read or update itself. The stop token is a
    ``threading.Event`` so the worker can sleep on it and wake as soon as a
    stop is requested. Requesting a stop never blocks, so a signal handler
    may do it while the interrupted thread holds the flag lock.
    """

    __slots__ = ("_lock", "_running", "_dashboard_enabled", "_stop", "_stop_claim")

    def __init__(self, dashboard_enabled: bool = False) -> None:
        self._lock = threading.RLock()
        self._running = False
        self._dashboard_enabled = dashboard_enabled
        self._stop = threading.Event()
        self._stop_claim = threading.Lock()

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    def mark_running(self) -> None:
        with self._lock:
            self._running = True

    def mark_stopped(self) -> None:
        with self._lock:
            self._running = False

    @property
    def dashboard_enabled(self) -> bool:
        with self._lock:
            return self._dashboard_enabled

    def set_dashboard(self, enabled: bool) -> None:
        with self._lock:
            self._dashboard_enabled = enabled

    def toggle_dashboard(self) -> bool:
        """Flip the dashboard flag; returns the new value."""
        with self._lock:
            self._dashboard_enabled = not self._dashboard_enabled
            return self._dashboard_enabled

    def request_stop(self) -> bool:
        """Trigger the stop token. Returns True only for the first request."""
        # Claimed once and never released; a non-blocking acquire picks one winner
        first = self._stop_claim.acquire(blocking=False)
        self._stop.set()
        return first

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def wait_for_stop(self, timeout: float | None = None) -> bool:
        """Block until stop is requested or ``timeout`` elapses."""
        return self._stop.wait(timeout)
