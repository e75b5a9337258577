"""
Synchronization engine: one cycle is one ordered pass over the mapping table.

Per directive:

  r (ADS -> robot)  read symbol, resolve signal, convert, write the signal
                    under an exclusive-write scope (mastership). BOOL writes
                    are skipped when the signal already has the value.
  w (robot -> ADS)  resolve signal, read it, narrow to the declared width,
                    always overwrite the symbol. No mastership needed.
                    The dashboard shows the value actually written, so a
                    robot 300.0 into an 8-bit symbol reads as 44.

Every directive yields exactly one CycleLogEntry. Failures are contained at
the directive boundary and never abort the cycle; unexpected errors at the
cycle boundary are logged and the loop carries on with the next cycle.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from robocaty import config as cfg
from robocaty.backends.base import SourceSystem, TargetSystem
from robocaty.config import TRACE
from robocaty.mapping import MappingTable
from robocaty.protocol import codec
from robocaty.protocol.types import (
    CycleLogEntry,
    CycleReport,
    Direction,
    MappingDirective,
    SignalHandle,
    SignalKind,
    TransferStatus,
    Width,
    WriteResult,
)
from robocaty.server.loop_timer import CycleTimer, format_cycle_summary
from robocaty.server.state import EngineState

logger = logging.getLogger("robocaty.server.engine")

ReportCallback = Callable[[CycleReport], None]


@dataclass
class EngineStats:
    """Cumulative counters since the engine was created."""

    cycles: int = 0
    writes: int = 0
    suppressed: int = 0
    failures: int = 0


class SynchronizationEngine:
    """Runs transfer cycles between a source and a target system."""

    def __init__(
        self,
        table: MappingTable,
        source: SourceSystem,
        target: TargetSystem,
        state: EngineState,
        interval_s: float = cfg.CYCLE_TIME_MS / 1000.0,
        quantum_s: float = cfg.STOP_POLL_QUANTUM_S,
    ) -> None:
        self.table = table
        self._source = source
        self._target = target
        self._state = state
        self.timer = CycleTimer(interval_s, state, quantum_s)
        self.stats = EngineStats()
        self._last_status: list[TransferStatus] = [TransferStatus.OK] * len(table)

    # ------------------------------------------------------------------
    # Cycle loop
    # ------------------------------------------------------------------

    def run(self, on_report: ReportCallback | None = None) -> None:
        """Run cycles until the stop token is triggered.

        The in-flight cycle always completes; the stop token is only
        observed between cycles.
        """
        self._state.mark_running()
        logger.info(
            "Cycle loop started: %d directives, interval %.0f ms",
            len(self.table),
            self.timer.interval * 1000,
        )
        try:
            while not self._state.stop_requested:
                try:
                    report = self.run_cycle()
                    if on_report is not None:
                        on_report(report)
                    self._log_periodic_status()
                except Exception as e:
                    logger.error(f"Error in cycle loop: {e}", exc_info=True)
                if not self.timer.wait_for_next_cycle():
                    break
        finally:
            self._state.mark_stopped()
            logger.info("Cycle loop finished after %d cycles", self.stats.cycles)

    def run_cycle(self) -> CycleReport:
        """Transfer every directive once, in table order."""
        started_at = self.timer.begin_cycle()
        entries = []
        for idx, directive in enumerate(self.table):
            entry = self._transfer_isolated(directive)
            self._track_status(idx, directive, entry)
            entries.append(entry)
        duration = self.timer.end_cycle()
        self.stats.cycles += 1
        return CycleReport(
            cycle=self.stats.cycles,
            started_at=started_at,
            duration_s=duration,
            entries=tuple(entries),
        )

    def _log_periodic_status(self) -> None:
        now = time.perf_counter()
        m = self.timer.metrics
        if m.check_overrun(now, cfg.OVERRUN_WARN_INTERVAL_S):
            logger.warning(
                "Cycle took %.1f ms, longer than the %.0f ms interval (%s)",
                m.last_cycle_s * 1000,
                self.timer.interval * 1000,
                format_cycle_summary(m),
            )
        if m.should_log(now, cfg.STATS_LOG_INTERVAL_S):
            logger.debug(
                "cycles: %s writes=%d suppressed=%d failures=%d",
                format_cycle_summary(m),
                self.stats.writes,
                self.stats.suppressed,
                self.stats.failures,
            )

    # ------------------------------------------------------------------
    # Directive transfer
    # ------------------------------------------------------------------

    def _transfer_isolated(self, d: MappingDirective) -> CycleLogEntry:
        try:
            return self.transfer(d)
        except Exception as e:
            reason = str(e) or type(e).__name__
            return self._entry(d, "ERR", TransferStatus.TRANSFER_ERROR, reason)

    def transfer(self, d: MappingDirective) -> CycleLogEntry:
        """Transfer one directive. Exceptions propagate to the caller."""
        match d.direction:
            case Direction.SOURCE_TO_TARGET:
                return self._source_to_target(d)
            case Direction.TARGET_TO_SOURCE:
                return self._target_to_source(d)
        raise ValueError(f"Unknown direction: {d.direction!r}")

    def _source_to_target(self, d: MappingDirective) -> CycleLogEntry:
        value = self._source.read_value(d.source_path)
        if value is None:
            return self._entry(d, "ERR", TransferStatus.MISSING_SOURCE)

        handle = self._target.get_signal(d.target_signal)
        if handle is None:
            return self._entry(d, "---", TransferStatus.MISSING_TARGET)

        width = d.width
        out = codec.to_target(width, value)
        if width is Width.BOOL:
            current = self._target.read_signal_value(handle) == 1
            if current == out:
                self.stats.suppressed += 1
                return self._entry(d, codec.display(width, out))
            result = self._write_target(handle, 1.0 if out else 0.0)
        else:
            match handle.kind:
                case SignalKind.DIGITAL:
                    return self._entry(
                        d,
                        codec.display(width, out),
                        TransferStatus.TRANSFER_ERROR,
                        f"{d.target_signal} is a digital signal; "
                        f"width {d.width_bits} needs a group or analog signal",
                    )
                case SignalKind.GROUP | SignalKind.ANALOG:
                    result = self._write_target(handle, out)
        return self._finish(d, codec.display(width, out), result)

    def _target_to_source(self, d: MappingDirective) -> CycleLogEntry:
        """Copy a robot signal into an ADS symbol.

        The entry shows the narrowed value that was written, not the raw
        signal double, so wrap-around on integer widths is visible.
        """
        handle = self._target.get_signal(d.target_signal)
        if handle is None:
            return self._entry(d, "---", TransferStatus.MISSING_TARGET)

        raw = self._target.read_signal_value(handle)
        out = codec.to_source(d.width, raw)
        result = self._source.write_value(d.source_path, out)
        return self._finish(d, codec.display(d.width, out), result)

    def _write_target(self, handle: SignalHandle, value: float) -> WriteResult:
        with self._target.exclusive_write(handle) as writable:
            return writable.write(value)

    def _finish(self, d: MappingDirective, shown: str, result: WriteResult) -> CycleLogEntry:
        if not result.ok:
            return self._entry(d, shown, TransferStatus.TRANSFER_ERROR, result.reason)
        self.stats.writes += 1
        return self._entry(d, shown)

    @staticmethod
    def _entry(
        d: MappingDirective,
        shown: str,
        status: TransferStatus = TransferStatus.OK,
        message: str = "",
    ) -> CycleLogEntry:
        return CycleLogEntry(
            direction=d.direction,
            source_path=d.source_path,
            display_value=shown,
            target_signal=d.target_signal,
            status=status,
            message=message,
        )

    def _track_status(self, idx: int, d: MappingDirective, entry: CycleLogEntry) -> None:
        """Log status transitions instead of repeating the same failure every cycle."""
        if not entry.ok:
            self.stats.failures += 1
        previous = self._last_status[idx]
        logger.log(
            TRACE,
            "%s %s <-> %s = %s [%s]",
            d.direction.label,
            d.source_path,
            d.target_signal,
            entry.display_value,
            entry.status.value,
        )
        if entry.status is previous:
            return
        self._last_status[idx] = entry.status
        if entry.ok:
            logger.info("%s %s -> %s recovered", d.direction.label, d.source_path, d.target_signal)
        else:
            logger.warning(
                "%s %s -> %s: %s%s",
                d.direction.label,
                d.source_path,
                d.target_signal,
                _describe(entry.status),
                f" ({entry.message})" if entry.message else "",
            )


def _describe(status: TransferStatus) -> str:
    match status:
        case TransferStatus.OK:
            return "ok"
        case TransferStatus.MISSING_SOURCE:
            return "ADS symbol missing"
        case TransferStatus.MISSING_TARGET:
            return "robot signal missing"
        case TransferStatus.TRANSFER_ERROR:
            return "transfer failed"
