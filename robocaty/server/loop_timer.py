"""Cycle pacing with a stop-aware sleep, plus rolling cycle statistics."""

from __future__ import annotations

import time

import numpy as np

from robocaty import config as cfg
from robocaty.server.state import EngineState

# Power of 2 so the ring index can wrap with a bitmask
BUFFER_SIZE = 256
BUFFER_MASK = BUFFER_SIZE - 1


class CycleMetrics:
    """Rolling statistics over the most recent cycle durations.

    Durations cover the work of one cycle only (all directives), not the
    sleep that follows it. Stats are recomputed every ``stats_interval``
    cycles from a pre-allocated ring buffer.
    """

    __slots__ = (
        "cycle_count",
        "overrun_count",
        "mean_cycle_s",
        "max_cycle_s",
        "p95_cycle_s",
        "last_cycle_s",
        "_buffer",
        "_buffer_idx",
        "_buffer_count",
        "_budget_s",
        "_stats_interval",
        "_last_log_time",
        "_last_warn_time",
    )

    def __init__(self, budget_s: float, stats_interval: int = 20) -> None:
        self.cycle_count = 0
        self.overrun_count = 0
        self.mean_cycle_s = 0.0
        self.max_cycle_s = 0.0
        self.p95_cycle_s = 0.0
        self.last_cycle_s = 0.0
        self._buffer = np.zeros(BUFFER_SIZE, dtype=np.float64)
        self._buffer_idx = 0
        self._buffer_count = 0
        self._budget_s = budget_s
        self._stats_interval = max(1, stats_interval)
        self._last_log_time = 0.0
        self._last_warn_time = 0.0

    def record(self, duration_s: float) -> None:
        """Record one cycle duration."""
        self.last_cycle_s = duration_s
        self._buffer[self._buffer_idx] = duration_s
        self._buffer_idx = (self._buffer_idx + 1) & BUFFER_MASK
        if self._buffer_count < BUFFER_SIZE:
            self._buffer_count += 1
        self.cycle_count += 1
        if duration_s > self._budget_s:
            self.overrun_count += 1
        if self.cycle_count % self._stats_interval == 0:
            self.compute_stats()

    def compute_stats(self) -> None:
        if self._buffer_count == 0:
            return
        samples = self._buffer[: self._buffer_count]
        self.mean_cycle_s = float(np.mean(samples))
        self.max_cycle_s = float(np.max(samples))
        self.p95_cycle_s = float(np.percentile(samples, 95))

    def should_log(self, now: float, interval: float) -> bool:
        """Returns True and updates timestamp if interval has passed."""
        if now - self._last_log_time >= interval:
            self._last_log_time = now
            return True
        return False

    def check_overrun(self, now: float, rate_limit: float) -> bool:
        """True (rate-limited) when the last cycle took longer than the interval."""
        if self.last_cycle_s <= self._budget_s:
            return False
        if now - self._last_warn_time < rate_limit:
            return False
        self._last_warn_time = now
        return True

    def reset_stats(self) -> None:
        self._buffer.fill(0.0)
        self._buffer_idx = 0
        self._buffer_count = 0
        self.mean_cycle_s = 0.0
        self.max_cycle_s = 0.0
        self.p95_cycle_s = 0.0
        self.overrun_count = 0


def format_cycle_summary(m: CycleMetrics) -> str:
    """Format metrics as 'n=XXX mean=X.XXms p95=X.XXms max=X.XXms ov=N'."""
    return (
        f"n={m.cycle_count} mean={m.mean_cycle_s * 1000:.2f}ms "
        f"p95={m.p95_cycle_s * 1000:.2f}ms max={m.max_cycle_s * 1000:.2f}ms "
        f"ov={m.overrun_count}"
    )


class CycleTimer:
    """Separates cycles by a fixed interval and wakes early on stop.

    The interval is slept in slices of at most ``quantum_s`` on the stop
    token, so a stop request is observed within one quantum rather than one
    full interval.
    """

    def __init__(
        self,
        interval_s: float,
        state: EngineState,
        quantum_s: float = cfg.STOP_POLL_QUANTUM_S,
        stats_interval: int = 20,
    ) -> None:
        self._interval = interval_s
        self._state = state
        self._quantum = max(1e-3, quantum_s)
        self._cycle_start = 0.0
        self.metrics = CycleMetrics(interval_s, stats_interval)

    @property
    def interval(self) -> float:
        """Configured gap between two cycles in seconds."""
        return self._interval

    def begin_cycle(self) -> float:
        """Mark the start of a cycle; returns the wall-clock start time."""
        self._cycle_start = time.perf_counter()
        return time.time()

    def end_cycle(self) -> float:
        """Mark the end of a cycle; returns its duration in seconds."""
        duration = time.perf_counter() - self._cycle_start
        self.metrics.record(duration)
        return duration

    def wait_for_next_cycle(self) -> bool:
        """Sleep for the interval. Returns False if a stop was requested."""
        deadline = time.perf_counter() + self._interval
        while True:
            if self._state.stop_requested:
                return False
            remaining = deadline - time.perf_counter()
            if remaining <= 0:
                return True
            if self._state.wait_for_stop(min(self._quantum, remaining)):
                return False
