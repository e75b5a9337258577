"""Live dashboard rendering of cycle reports."""

from __future__ import annotations

import sys
import threading
import time
from collections.abc import Callable
from datetime import datetime
from typing import TextIO

from robocaty import config as cfg
from robocaty.protocol.types import CycleLogEntry, CycleReport, TransferStatus
from robocaty.server.state import EngineState

RULE_WIDTH = 80
CLEAR_SCREEN = "\x1b[2J\x1b[H"

StatusScreen = Callable[[TextIO], None]


def format_entry(entry: CycleLogEntry) -> str:
    """One dashboard row: DIR | ADS VARIABLE | VAL | ROBOT SIGNAL."""
    if entry.status is TransferStatus.TRANSFER_ERROR:
        return f"[ERR] {entry.source_path}: {entry.message}"
    suffix = ""
    if entry.status is TransferStatus.MISSING_SOURCE:
        suffix = " (Missing)"
    elif entry.status is TransferStatus.MISSING_TARGET:
        suffix = " (Sig Missing)"
    return (
        f"{entry.direction.label:<8} | {entry.source_path:<30} | "
        f"{entry.display_value:<8} | {entry.target_signal}{suffix}"
    )


def format_report(
    report: CycleReport,
    cycle_time_ms: int,
    redraw_interval_ms: int,
    now: datetime | None = None,
) -> str:
    """Full dashboard text for one report."""
    now = now or datetime.now()
    lines = [
        f"--- RoboCaty LIVE DASHBOARD ({now:%H:%M:%S}) ---",
        f"Data Cycle: {cycle_time_ms}ms | Display Update: {redraw_interval_ms}ms",
        f"{'DIR':<8} | {'ADS VARIABLE':<30} | {'VAL':<8} | {'ROBOT SIGNAL':<30}",
        "-" * RULE_WIDTH,
    ]
    lines.extend(format_entry(e) for e in report.entries)
    lines.append("-" * RULE_WIDTH)
    lines.append(
        f"Cycle #{report.cycle}: {report.ok_count} ok, {report.failed_count} failed, "
        f"{report.duration_s * 1000:.1f} ms"
    )
    return "\n".join(lines)


class Reporter:
    """
    Keeps the latest CycleReport and redraws the dashboard when it is enabled.

    Sampling happens every cycle; redraws happen at most once per
    ``redraw_interval_s`` (0 redraws every cycle). When the dashboard is off
    nothing is formatted or written.
    """

    def __init__(
        self,
        state: EngineState,
        stream: TextIO | None = None,
        redraw_interval_s: float = cfg.DISPLAY_INTERVAL_MS / 1000.0,
        cycle_time_ms: int = cfg.CYCLE_TIME_MS,
        status_screen: StatusScreen | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._state = state
        self._stream = stream if stream is not None else sys.stdout
        self._redraw_interval = max(0.0, redraw_interval_s)
        self._cycle_time_ms = cycle_time_ms
        self.status_screen = status_screen
        self._clock = clock
        self._last_render: float | None = None
        self._showing = False
        self.latest: CycleReport | None = None
        self.render_count = 0
        # Serialises everything written to the operator stream
        self.lock = threading.RLock()

    @property
    def stream(self) -> TextIO:
        return self._stream

    def submit(self, report: CycleReport) -> bool:
        """Accept a fresh report; returns True if it was rendered."""
        self.latest = report
        with self.lock:
            if not self._state.dashboard_enabled:
                return False
            now = self._clock()
            if (
                self._last_render is not None
                and now - self._last_render < self._redraw_interval
            ):
                return False
            self._write(
                CLEAR_SCREEN
                + format_report(
                    report, self._cycle_time_ms, int(self._redraw_interval * 1000)
                )
                + "\n"
            )
            self._last_render = now
            self._showing = True
            self.render_count += 1
            return True

    def hide(self) -> None:
        """Leave dashboard mode: clear it and bring back the status screen."""
        with self.lock:
            self._last_render = None
            if not self._showing:
                return
            self._showing = False
            self._write(CLEAR_SCREEN)
            if self.status_screen is not None:
                self.status_screen(self._stream)
            self._stream.flush()

    def print(self, text: str) -> None:
        """Write operator text without interleaving with a dashboard redraw."""
        with self.lock:
            self._write(text + "\n")

    def _write(self, text: str) -> None:
        if not self._stream.isatty():
            text = text.replace(CLEAR_SCREEN, "")
        self._stream.write(text)
        self._stream.flush()
