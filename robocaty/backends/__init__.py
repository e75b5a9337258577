"""
Source and target adapters.

The ADS and RWS adapters import their vendor libraries at module load, so
they are not re-exported here; use ``create_backends`` or import them
directly.
"""

from .base import SourceSystem, TargetSystem, WritableSignal
from .factory import create_backends, is_simulation_mode
from .simulated import SimulatedSource, SimulatedTarget

__all__ = [
    "SourceSystem",
    "TargetSystem",
    "WritableSignal",
    "SimulatedSource",
    "SimulatedTarget",
    "create_backends",
    "is_simulation_mode",
]
