"""
In-memory source and target used for simulation runs and tests.

Both sides behave like the real adapters at the interface level: missing
items return None, failing writes return a WriteResult failure, and
exclusive-write scopes are counted so callers can check they were released.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from robocaty.backends.base import SourceSystem, TargetSystem
from robocaty.errors import BackendConnectionError
from robocaty.protocol.types import (
    Direction,
    MappingDirective,
    SignalHandle,
    SignalKind,
    Width,
    WriteResult,
)

logger = logging.getLogger(__name__)


def kind_for_width(width: Width) -> SignalKind:
    """Signal category a directive of the given width would normally target."""
    match width:
        case Width.BOOL:
            return SignalKind.DIGITAL
        case Width.UINT8 | Width.UINT16 | Width.UINT32:
            return SignalKind.GROUP
        case Width.REAL:
            return SignalKind.ANALOG
    raise ValueError(f"Unknown width tag: {width!r}")


class SimulatedSource(SourceSystem):
    """Dictionary-backed variable table."""

    name = "SIMULATED-ADS"

    def __init__(self, values: Mapping[str, Any] | None = None) -> None:
        self._lock = threading.RLock()
        self._values: dict[str, Any] = dict(values or {})
        self._connected = False
        self.fail_connect = False
        self.connect_count = 0
        self.close_count = 0
        self.write_counts: dict[str, int] = {}
        # Injected failures
        self.read_errors: dict[str, Exception] = {}
        self.write_failures: dict[str, str] = {}

    @classmethod
    def from_mappings(cls, directives: Iterable[MappingDirective]) -> "SimulatedSource":
        values: dict[str, Any] = {}
        for d in directives:
            values.setdefault(d.source_path, False if d.width is Width.BOOL else 0)
        return cls(values)

    def connect(self) -> None:
        if self.fail_connect:
            raise BackendConnectionError("Could not connect to simulated ADS source")
        with self._lock:
            self._connected = True
            self.connect_count += 1

    def close(self) -> None:
        with self._lock:
            if not self._connected:
                return
            self._connected = False
            self.close_count += 1

    def is_connected(self) -> bool:
        return self._connected

    def read_value(self, path: str) -> Any | None:
        with self._lock:
            err = self.read_errors.get(path)
            if err is not None:
                raise err
            return self._values.get(path)

    def write_value(self, path: str, value: Any) -> WriteResult:
        with self._lock:
            reason = self.write_failures.get(path)
            if reason is not None:
                return WriteResult.failure(reason)
            if path not in self._values:
                return WriteResult.failure(f"symbol not found: {path}")
            self._values[path] = value
            self.write_counts[path] = self.write_counts.get(path, 0) + 1
            return WriteResult.success()

    def set(self, path: str, value: Any) -> None:
        """Change a value from the outside (the PLC program side)."""
        with self._lock:
            self._values[path] = value

    def get(self, path: str) -> Any | None:
        with self._lock:
            return self._values.get(path)

    def remove(self, path: str) -> None:
        with self._lock:
            self._values.pop(path, None)


@dataclass
class _SimSignal:
    kind: SignalKind
    value: float = 0.0
    writes: list[float] = field(default_factory=list)


class SimulatedTarget(TargetSystem):
    """Dictionary-backed robot I/O system with mastership accounting."""

    name = "SIMULATED-IRC5"

    def __init__(self, signals: Mapping[str, SignalKind] | None = None) -> None:
        super().__init__()
        self._lock = threading.RLock()
        self._signals: dict[str, _SimSignal] = {
            name: _SimSignal(kind) for name, kind in (signals or {}).items()
        }
        self._connected = False
        self.fail_connect = False
        self.fail_mastership = False
        self.connect_count = 0
        self.close_count = 0
        self.mastership_requests = 0
        self.mastership_releases = 0
        self.mastership_held = False
        # Injected failures
        self.signal_errors: dict[str, Exception] = {}
        self.write_failures: dict[str, str] = {}

    @classmethod
    def from_mappings(cls, directives: Iterable[MappingDirective]) -> "SimulatedTarget":
        return cls({d.target_signal: kind_for_width(d.width) for d in directives})

    def connect(self) -> None:
        if self.fail_connect:
            raise BackendConnectionError("No simulated robot controller found")
        with self._lock:
            self._connected = True
            self.connect_count += 1

    def close(self) -> None:
        with self._lock:
            if not self._connected:
                return
            self._connected = False
            self.close_count += 1

    def is_connected(self) -> bool:
        return self._connected

    def get_signal(self, name: str) -> SignalHandle | None:
        with self._lock:
            err = self.signal_errors.get(name)
            if err is not None:
                raise err
            sig = self._signals.get(name)
            if sig is None:
                return None
            return SignalHandle(name=name, kind=sig.kind)

    def read_signal_value(self, handle: SignalHandle) -> float:
        with self._lock:
            return self._signals[handle.name].value

    def _acquire_exclusive(self) -> None:
        with self._lock:
            self.mastership_requests += 1
            if self.fail_mastership:
                raise RuntimeError("Mastership held by another client")
            self.mastership_held = True

    def _release_exclusive(self) -> None:
        with self._lock:
            if self.mastership_held:
                self.mastership_held = False
                self.mastership_releases += 1

    def _write_signal(self, handle: SignalHandle, value: float) -> WriteResult:
        with self._lock:
            if not self.mastership_held:
                return WriteResult.failure("mastership not held")
            reason = self.write_failures.get(handle.name)
            if reason is not None:
                return WriteResult.failure(reason)
            sig = self._signals[handle.name]
            sig.value = float(value)
            sig.writes.append(sig.value)
            return WriteResult.success()

    def add_signal(self, name: str, kind: SignalKind, value: float = 0.0) -> None:
        with self._lock:
            self._signals[name] = _SimSignal(kind, float(value))

    def set(self, name: str, value: float) -> None:
        """Change a signal from the outside (the RAPID program side)."""
        with self._lock:
            self._signals[name].value = float(value)

    def get(self, name: str) -> float:
        with self._lock:
            return self._signals[name].value

    def write_count(self, name: str) -> int:
        with self._lock:
            return len(self._signals[name].writes)

    @property
    def total_writes(self) -> int:
        with self._lock:
            return sum(len(s.writes) for s in self._signals.values())


def seed_from_table(
    directives: Iterable[MappingDirective],
) -> tuple[SimulatedSource, SimulatedTarget]:
    """Build a matching simulated source/target pair for a mapping table."""
    directives = tuple(directives)
    source = SimulatedSource.from_mappings(directives)
    target = SimulatedTarget.from_mappings(directives)
    n_r = sum(1 for d in directives if d.direction is Direction.SOURCE_TO_TARGET)
    logger.info(
        "Simulated backends seeded: %d symbols, %d signals (%d outbound directives)",
        len(source._values),
        len(target._signals),
        n_r,
    )
    return source, target
