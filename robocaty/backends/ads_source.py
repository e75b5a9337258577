"""
TwinCAT ADS source backed by pyads.

Symbols are read and written by name; pyads resolves the PLC data type from
the symbol table, so the mapping file does not need to repeat it.
"""

from __future__ import annotations

import logging
from typing import Any

import pyads

from robocaty.backends.base import SourceSystem
from robocaty.errors import BackendConnectionError
from robocaty.protocol.types import WriteResult

logger = logging.getLogger(__name__)

# ADS return code for "symbol not found"
ADSERR_DEVICE_SYMBOLNOTFOUND = 0x710

_ADS_STATE_NAMES = {
    pyads.ADSSTATE_INVALID: "Invalid",
    pyads.ADSSTATE_IDLE: "Idle",
    pyads.ADSSTATE_RESET: "Reset",
    pyads.ADSSTATE_INIT: "Init",
    pyads.ADSSTATE_START: "Start",
    pyads.ADSSTATE_RUN: "Running",
    pyads.ADSSTATE_STOP: "Stop",
    pyads.ADSSTATE_CONFIG: "Config",
}


def _plain(value: Any) -> Any:
    """Unwrap numpy scalars so pyads packs a native Python value."""
    item = getattr(value, "item", None)
    return item() if callable(item) else value


class AdsSource(SourceSystem):
    """ADS symbol access on a TwinCAT runtime."""

    def __init__(
        self, ams_net_id: str, port: int = 851, ip_address: str | None = None
    ) -> None:
        self.ams_net_id = ams_net_id
        self.port = port
        self.ip_address = ip_address
        self.name = f"ADS {ams_net_id}:{port}"
        self._conn: pyads.Connection | None = None
        self.state_text = "Disconnected"

    def connect(self) -> None:
        if self._conn is not None:
            return
        conn = pyads.Connection(self.ams_net_id, self.port, self.ip_address)
        try:
            conn.open()
            ads_state, _device_state = conn.read_state()
        except pyads.ADSError as e:
            try:
                conn.close()
            except pyads.ADSError as close_err:
                logger.debug("Error closing failed ADS connection: %s", close_err)
            raise BackendConnectionError(
                f"Could not connect to TwinCAT at {self.ams_net_id}:{self.port}: {e}"
            ) from e
        self._conn = conn
        self.state_text = _ADS_STATE_NAMES.get(ads_state, f"State {ads_state}")
        if ads_state != pyads.ADSSTATE_RUN:
            logger.warning("TwinCAT runtime is not running (state: %s)", self.state_text)
        logger.info("Connected to TwinCAT %s (%s)", self.name, self.state_text)

    def close(self) -> None:
        conn, self._conn = self._conn, None
        if conn is None:
            return
        try:
            conn.close()
            logger.info("ADS connection closed")
        except pyads.ADSError as e:
            logger.warning("Error closing ADS connection: %s", e)
        finally:
            self.state_text = "Disconnected"

    def is_connected(self) -> bool:
        return self._conn is not None and self._conn.is_open

    def _connection(self) -> pyads.Connection:
        if self._conn is None:
            raise RuntimeError("ADS connection is not open")
        return self._conn

    def read_value(self, path: str) -> Any | None:
        try:
            return self._connection().read_by_name(path)
        except pyads.ADSError as e:
            if e.err_code == ADSERR_DEVICE_SYMBOLNOTFOUND:
                return None
            raise

    def write_value(self, path: str, value: Any) -> WriteResult:
        try:
            self._connection().write_by_name(path, _plain(value))
        except pyads.ADSError as e:
            if e.err_code == ADSERR_DEVICE_SYMBOLNOTFOUND:
                return WriteResult.failure(f"symbol not found: {path}")
            return WriteResult.failure(str(e))
        return WriteResult.success()

    def describe(self) -> str:
        return f"{self.name} ({self.state_text})"
