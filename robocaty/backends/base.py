"""
Collaborator interfaces for the two data spaces bridged by RoboCaty.

SourceSystem is the automation controller's variable table (ADS symbols),
TargetSystem is the robot controller's I/O signal table. Adapters report
absent items as ``None`` and failed writes as ``WriteResult.failure``;
anything else they cannot handle propagates to the engine, which contains it
at the directive boundary.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from robocaty.protocol.types import SignalHandle, WriteResult


class SourceSystem(ABC):
    """Named-variable data space (read and write by path)."""

    name: str = "source"

    @abstractmethod
    def connect(self) -> None:
        """Open the connection. Raises BackendConnectionError on failure."""

    @abstractmethod
    def close(self) -> None:
        """Release the connection. Calling it again is a no-op."""

    @abstractmethod
    def is_connected(self) -> bool: ...

    @abstractmethod
    def read_value(self, path: str) -> Any | None:
        """Read a variable; None when the path does not exist."""

    @abstractmethod
    def write_value(self, path: str, value: Any) -> WriteResult: ...

    def describe(self) -> str:
        return self.name


class WritableSignal:
    """Write access to one signal, valid only inside an exclusive-write scope."""

    __slots__ = ("_target", "handle", "_open")

    def __init__(self, target: "TargetSystem", handle: SignalHandle) -> None:
        self._target = target
        self.handle = handle
        self._open = True

    def write(self, value: float) -> WriteResult:
        if not self._open:
            return WriteResult.failure(
                f"write to {self.handle.name} outside of its exclusive-write scope"
            )
        return self._target._write_signal(self.handle, value)

    def _invalidate(self) -> None:
        self._open = False


class TargetSystem(ABC):
    """Named I/O signal data space with exclusive (mastership) writes."""

    name: str = "target"

    def __init__(self) -> None:
        # Mastership is a single resource; never hold two scopes at once
        self._exclusive_lock = threading.Lock()

    @abstractmethod
    def connect(self) -> None:
        """Open the session. Raises BackendConnectionError on failure."""

    @abstractmethod
    def close(self) -> None:
        """Release the session. Calling it again is a no-op."""

    @abstractmethod
    def is_connected(self) -> bool: ...

    @abstractmethod
    def get_signal(self, name: str) -> SignalHandle | None:
        """Resolve a signal by name; None when it does not exist."""

    @abstractmethod
    def read_signal_value(self, handle: SignalHandle) -> float: ...

    @abstractmethod
    def _acquire_exclusive(self) -> None:
        """Request write permission from the controller (raise on refusal)."""

    @abstractmethod
    def _release_exclusive(self) -> None: ...

    @abstractmethod
    def _write_signal(self, handle: SignalHandle, value: float) -> WriteResult: ...

    @contextmanager
    def exclusive_write(self, handle: SignalHandle) -> Iterator[WritableSignal]:
        """Hold write permission for the duration of the ``with`` block.

        The permission is released when the block exits, whether the write
        succeeded, failed or raised.
        """
        with self._exclusive_lock:
            self._acquire_exclusive()
            writable = WritableSignal(self, handle)
            try:
                yield writable
            finally:
                writable._invalidate()
                self._release_exclusive()

    def describe(self) -> str:
        return self.name
