"""
Central configuration for RoboCaty tunables and shared constants.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from robocaty.errors import ConfigError

TRACE: int = 5
logging.addLevelName(TRACE, "TRACE")
# Add Logger.trace if missing
if not hasattr(logging.Logger, "trace"):

    def _trace(self, msg, *args, **kwargs):
        if self.isEnabledFor(TRACE):
            self._log(TRACE, msg, args, **kwargs)

    logging.Logger.trace = _trace  # type: ignore[attr-defined]
    logging.TRACE = TRACE  # type: ignore[attr-defined]

TRACE_ENABLED = str(os.getenv("ROBOCATY_TRACE", "0")).lower() in (
    "1",
    "true",
    "yes",
    "on",
)

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    s = raw.strip().lower()
    if s in ("1", "true", "yes", "on"):
        return True
    if s in ("0", "false", "no", "off"):
        return False
    return default


# TwinCAT ADS (source side)
AMS_NET_ID: str = os.getenv("ROBOCATY_AMS_NET_ID", "127.0.0.1.1.1")
ADS_PORT: int = int(os.getenv("ROBOCATY_ADS_PORT", "851"))
# Optional router address for non-Windows hosts without a local TwinCAT router
ADS_IP: str | None = os.getenv("ROBOCATY_ADS_IP") or None

# ABB Robot Web Services (target side)
RWS_HOST: str = os.getenv("ROBOCATY_RWS_HOST", "127.0.0.1")
RWS_USER: str = os.getenv("ROBOCATY_RWS_USER", "Default User")
RWS_PASSWORD: str = os.getenv("ROBOCATY_RWS_PASSWORD", "robotics")
RWS_TIMEOUT_S: float = float(os.getenv("ROBOCATY_RWS_TIMEOUT_S", "2.0"))

# Mapping file, relative paths resolve against the working directory
MAPPING_FILE: str = os.getenv("ROBOCATY_MAPPING_FILE", "vars_robot.txt")

# Cycle interval between two full scans of the mapping table (ms)
CYCLE_TIME_MS: int = int(os.getenv("ROBOCATY_CYCLE_TIME_MS", "100"))

# Minimum time between two dashboard redraws (ms); 0 redraws every cycle
DISPLAY_INTERVAL_MS: int = int(os.getenv("ROBOCATY_DISPLAY_INTERVAL_MS", "500"))

# Upper bound on how long shutdown waits for the worker to drain (s)
SHUTDOWN_GRACE_S: float = float(os.getenv("ROBOCATY_SHUTDOWN_GRACE_S", "4.0"))

# Worker re-checks the stop token at this granularity while sleeping (s)
STOP_POLL_QUANTUM_S: float = float(os.getenv("ROBOCATY_STOP_POLL_QUANTUM_S", "0.05"))

# Foreground key polling period and post-toggle debounce (s)
KEY_POLL_INTERVAL_S: float = 0.05
KEY_DEBOUNCE_S: float = 0.2

# Periodic cycle statistics log and overrun warning rate limit (s)
STATS_LOG_INTERVAL_S: float = 3.0
OVERRUN_WARN_INTERVAL_S: float = 10.0

SIMULATE: bool = _env_bool("ROBOCATY_SIMULATE")
HIGH_PRIORITY: bool = _env_bool("ROBOCATY_HIGH_PRIORITY", True)

LOG_LEVEL_DEFAULT: str = "INFO"


@dataclass
class BridgeConfig:
    """Runtime configuration assembled by the CLI."""

    ams_net_id: str = AMS_NET_ID
    ads_port: int = ADS_PORT
    ads_ip: str | None = ADS_IP
    mapping_file: str = MAPPING_FILE
    cycle_time_ms: int = CYCLE_TIME_MS
    display_interval_ms: int = DISPLAY_INTERVAL_MS
    dashboard: bool = False
    grace_s: float = SHUTDOWN_GRACE_S
    stop_quantum_s: float = STOP_POLL_QUANTUM_S
    rws_host: str = RWS_HOST
    rws_user: str = RWS_USER
    rws_password: str = RWS_PASSWORD
    rws_timeout_s: float = RWS_TIMEOUT_S
    simulate: bool = SIMULATE
    high_priority: bool = HIGH_PRIORITY

    @property
    def cycle_interval_s(self) -> float:
        return self.cycle_time_ms / 1000.0

    @property
    def display_interval_s(self) -> float:
        return self.display_interval_ms / 1000.0

    @property
    def mapping_path(self) -> Path:
        return Path(self.mapping_file)

    def validate(self) -> None:
        """
        Check value ranges.

        Raises:
            ConfigError: if any tunable is out of range
        """
        if self.cycle_time_ms <= 0:
            raise ConfigError(f"Cycle time must be positive, got {self.cycle_time_ms} ms")
        if self.display_interval_ms < 0:
            raise ConfigError(
                f"Display interval must not be negative, got {self.display_interval_ms} ms"
            )
        if self.grace_s <= 0:
            raise ConfigError(f"Grace period must be positive, got {self.grace_s} s")
        if not 0 < self.ads_port < 65536:
            raise ConfigError(f"ADS port out of range: {self.ads_port}")
