"""Data types and value conversion shared across RoboCaty."""

from .codec import display, to_source, to_target
from .types import (
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

__all__ = [
    "CycleLogEntry",
    "CycleReport",
    "Direction",
    "MappingDirective",
    "SignalHandle",
    "SignalKind",
    "TransferStatus",
    "Width",
    "WriteResult",
    "display",
    "to_source",
    "to_target",
]
