"""
Operator console: startup banner, status screen, and single-key controls.

Keys while running:
  V        toggle the live dashboard
  Q / Esc  stop the bridge
"""

from __future__ import annotations

import logging
import os
import select
import sys
import time
from typing import TYPE_CHECKING, TextIO

from robocaty import config as cfg
from robocaty._version import __version__

if TYPE_CHECKING:
    from robocaty.server.controller import LifecycleController

logger = logging.getLogger("robocaty.server.console")

BANNER_WIDTH = 47
ESCAPE = "\x1b"
ESCAPE_SEQUENCE_TIMEOUT_S = 0.02


def print_header(config: cfg.BridgeConfig, stream: TextIO | None = None) -> None:
    """Startup banner with the effective connection settings."""
    out = stream if stream is not None else sys.stdout
    bar = "#" * BANNER_WIDTH
    inner = BANNER_WIDTH - 2
    lines = [
        bar,
        f"#{f'RoboCaty v{__version__}':^{inner}}#",
        f"#{'TwinCAT <-> ABB Robot Interface':^{inner}}#",
        bar,
        f"NetID:   {config.ams_net_id}",
        f"Port:    {config.ads_port}",
        f"File:    {config.mapping_file}",
        f"Cycle:   {config.cycle_time_ms} ms",
        "-" * BANNER_WIDTH,
    ]
    out.write("\n".join(lines) + "\n")
    out.flush()


def format_status_screen(controller: LifecycleController) -> str:
    """Home screen shown while the dashboard is off."""
    target = controller.target
    robot = getattr(target, "system_name", "") or target.describe()
    robot_line = (
        f"[OK] Robot connected:  {robot}"
        if target.is_connected()
        else "[--] Robot connected:  Waiting..."
    )
    table = controller.table
    stats = controller.engine.stats
    rule = "-" * 51
    lines = [
        f"[OK] Variables loaded: {len(table)} "
        f"({table.source_to_target} ADS->ROB, {table.target_to_source} ROB->ADS)",
        robot_line,
        f"[OK] TwinCAT Status:   {controller.source.describe()}",
        f"     Cycles: {stats.cycles}, writes: {stats.writes}, "
        f"suppressed: {stats.suppressed}, failures: {stats.failures}",
        "",
        rule,
        " SYSTEM RUNNING (Background Mode).",
        " Press [V] -> Toggle Live Dashboard",
        " Press [Q] -> Quit Program",
        rule,
    ]
    return "\n".join(lines)


def print_status_screen(controller: LifecycleController, stream: TextIO) -> None:
    stream.write(format_status_screen(controller) + "\n")


class KeyReader:
    """Non-blocking single-key reader for the foreground thread.

    Uses ``msvcrt`` on Windows and cbreak mode plus ``select`` on POSIX
    terminals. When stdin is not a terminal no keys are ever reported, and
    the bridge can only be stopped by a signal.
    """

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream if stream is not None else sys.stdin
        self._saved_attrs = None
        self._fd: int | None = None
        self._windows = os.name == "nt"
        self.interactive = self._stream.isatty()
        if self.interactive and not self._windows:
            self._enter_cbreak()

    def _enter_cbreak(self) -> None:
        import termios
        import tty

        try:
            self._fd = self._stream.fileno()
            self._saved_attrs = termios.tcgetattr(self._fd)
            tty.setcbreak(self._fd)
        except (termios.error, OSError, ValueError) as e:
            logger.warning(f"Keyboard input unavailable: {e}")
            self._fd = None
            self._saved_attrs = None
            self.interactive = False

    def read_key(self) -> str | None:
        """Return one pending key (upper-cased), or None if nothing is waiting."""
        if not self.interactive:
            return None
        if self._windows:
            import msvcrt

            if not msvcrt.kbhit():
                return None
            ch = msvcrt.getwch()
            if ch in ("\x00", "\xe0"):
                # Function/arrow key prefix, discard the scan code
                msvcrt.getwch()
                return None
            return ch.upper()

        if self._fd is None:
            return None
        ready, _, _ = select.select([self._fd], [], [], 0.0)
        if not ready:
            return None
        data = os.read(self._fd, 1)
        if not data:
            return None
        if data == ESCAPE.encode() and self._discard_sequence():
            # Arrow/function keys arrive as ESC followed by more bytes
            return None
        return data.decode("utf-8", errors="ignore").upper() or None

    def _discard_sequence(self) -> bool:
        """Consume the rest of an escape sequence; True if an ESC was not a lone key.

        Stops at the sequence's final byte so keys typed right after it are kept.
        """
        discarded = False
        while select.select([self._fd], [], [], ESCAPE_SEQUENCE_TIMEOUT_S)[0]:
            data = os.read(self._fd, 1)
            if not data:
                break
            first = not discarded
            discarded = True
            if first and data in (b"[", b"O"):
                continue
            if first or 0x40 <= data[0] <= 0x7E:
                break
        return discarded

    def drain(self) -> int:
        """Discard keys already buffered (auto-repeat). Returns how many."""
        count = 0
        while self.read_key() is not None:
            count += 1
        return count

    def close(self) -> None:
        """Restore the terminal settings. Safe to call more than once."""
        if self._fd is None or self._saved_attrs is None:
            return
        import termios

        try:
            termios.tcsetattr(self._fd, termios.TCSADRAIN, self._saved_attrs)
        except (termios.error, OSError) as e:
            logger.warning(f"Could not restore terminal settings: {e}")
        self._saved_attrs = None

    def __enter__(self) -> KeyReader:
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def run_operator_loop(
    controller: LifecycleController,
    reader: KeyReader,
    poll_interval_s: float = cfg.KEY_POLL_INTERVAL_S,
    debounce_s: float = cfg.KEY_DEBOUNCE_S,
) -> None:
    """Map keys to controller actions until a stop is requested."""
    state = controller.state
    while not state.stop_requested:
        key = reader.read_key()
        if key in ("Q", ESCAPE):
            controller.request_stop()
            break
        if key == "V":
            controller.toggle_dashboard()
            time.sleep(debounce_s)
            reader.drain()
        # The main thread never blocks on the stop Event; signal handlers set it
        time.sleep(poll_interval_s)
