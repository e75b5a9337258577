"""
RoboCaty Python Package

Keeps ADS variables of a TwinCAT PLC and I/O signals of an ABB robot
controller in sync, driven by a plain-text mapping table.

Key components:
- MappingTable: Parsed, ordered list of transfer directives
- SynchronizationEngine: Runs transfer cycles between the two systems
- LifecycleController: Owns connections, worker thread and shutdown
- create_backends: Builds the real or simulated system adapters
"""

from ._version import __version__
from .backends import create_backends
from .errors import BackendConnectionError, ConfigError, RoboCatyError
from .mapping import MappingTable
from .server.controller import LifecycleController
from .server.engine import SynchronizationEngine

__all__ = [
    "__version__",
    "MappingTable",
    "SynchronizationEngine",
    "LifecycleController",
    "create_backends",
    "RoboCatyError",
    "ConfigError",
    "BackendConnectionError",
]
