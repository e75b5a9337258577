"""
Type definitions shared by the mapping table, the engine and the backends.

Directives and per-cycle report records are frozen msgspec structs: they
are created once per directive per cycle on the worker thread, so they are
kept cheap to construct and immutable once handed to the reporter.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any

import msgspec


class Direction(Enum):
    """Transfer direction of a directive."""

    SOURCE_TO_TARGET = "r"  # ADS symbol -> robot signal
    TARGET_TO_SOURCE = "w"  # robot signal -> ADS symbol

    @property
    def label(self) -> str:
        return "ADS->ROB" if self is Direction.SOURCE_TO_TARGET else "ROB->ADS"


class Width(IntEnum):
    """Width tag of a directive. REAL covers every undeclared bit count."""

    REAL = 0
    BOOL = 1
    UINT8 = 8
    UINT16 = 16
    UINT32 = 32

    @classmethod
    def from_bits(cls, bits: int) -> "Width":
        if bits in (1, 8, 16, 32):
            return cls(bits)
        return cls.REAL


class SignalKind(Enum):
    """Robot I/O signal category, resolved once per handle lookup."""

    DIGITAL = "digital"
    GROUP = "group"
    ANALOG = "analog"


class TransferStatus(Enum):
    OK = "ok"
    MISSING_SOURCE = "missing_source"
    MISSING_TARGET = "missing_target"
    TRANSFER_ERROR = "transfer_error"


class MappingDirective(msgspec.Struct, frozen=True):
    """One parsed line of the mapping file."""

    direction: Direction
    source_path: str
    target_signal: str
    width_bits: int
    line_no: int = 0

    @property
    def width(self) -> Width:
        return Width.from_bits(self.width_bits)


class CycleLogEntry(msgspec.Struct, frozen=True):
    """Outcome of a single directive within one cycle."""

    direction: Direction
    source_path: str
    display_value: str
    target_signal: str
    status: TransferStatus = TransferStatus.OK
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status is TransferStatus.OK


class CycleReport(msgspec.Struct, frozen=True):
    """Ordered log entries of one full pass over the mapping table."""

    cycle: int
    started_at: float
    duration_s: float
    entries: tuple[CycleLogEntry, ...] = ()

    @property
    def ok_count(self) -> int:
        return sum(1 for e in self.entries if e.ok)

    @property
    def failed_count(self) -> int:
        return len(self.entries) - self.ok_count


@dataclass(slots=True, frozen=True)
class SignalHandle:
    """Resolved robot signal. ``ref`` is adapter-private addressing data."""

    name: str
    kind: SignalKind
    ref: Any = None


@dataclass(slots=True, frozen=True)
class WriteResult:
    """Result of a write against either side: ok, or failed with a reason."""

    ok: bool
    reason: str = ""

    @classmethod
    def success(cls) -> "WriteResult":
        return cls(True)

    @classmethod
    def failure(cls, reason: str) -> "WriteResult":
        return cls(False, reason)
