"""
ABB robot controller target over Robot Web Services (RWS 1.0).

Uses a persistent requests session with HTTP digest authentication; the
controller hands out a session cookie on the first authenticated request,
which is released again by ``close()``.
"""

from __future__ import annotations

import logging
from urllib.parse import quote

import msgspec
import requests
from requests.auth import HTTPDigestAuth

from robocaty.backends.base import TargetSystem
from robocaty.errors import BackendConnectionError
from robocaty.protocol.types import SignalHandle, SignalKind, WriteResult

logger = logging.getLogger(__name__)

_SIGNAL_KINDS: dict[str, SignalKind] = {
    "DI": SignalKind.DIGITAL,
    "DO": SignalKind.DIGITAL,
    "GI": SignalKind.GROUP,
    "GO": SignalKind.GROUP,
    "AI": SignalKind.ANALOG,
    "AO": SignalKind.ANALOG,
}


class _StateItem(msgspec.Struct):
    name: str = ""
    type: str = ""
    lvalue: str = "0"


class _Embedded(msgspec.Struct):
    state: list[_StateItem] = msgspec.field(default_factory=list, name="_state")


class _Resource(msgspec.Struct):
    embedded: _Embedded = msgspec.field(default_factory=_Embedded, name="_embedded")


_decoder = msgspec.json.Decoder(_Resource)


def _first_state(payload: bytes) -> _StateItem | None:
    resource = _decoder.decode(payload)
    return resource.embedded.state[0] if resource.embedded.state else None


class RwsTarget(TargetSystem):
    """IOSystem signal access on an IRC5/OmniCore controller via RWS."""

    def __init__(
        self,
        host: str,
        user: str = "Default User",
        password: str = "robotics",
        timeout_s: float = 2.0,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__()
        self.host = host
        self.base_url = host if host.startswith(("http://", "https://")) else f"http://{host}"
        self.base_url = self.base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.system_name = ""
        self.name = f"RWS {host}"
        self._auth = HTTPDigestAuth(user, password)
        self._session = session
        self._owns_session = session is None

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def connect(self) -> None:
        if self._session is None:
            self._session = requests.Session()
        self._session.auth = self._auth
        try:
            response = self._session.get(
                f"{self.base_url}/rw/system",
                params={"json": "1"},
                timeout=self.timeout_s,
            )
            response.raise_for_status()
            state = _first_state(response.content)
        except (requests.exceptions.RequestException, msgspec.DecodeError) as e:
            self._drop_session()
            raise BackendConnectionError(
                f"No robot controller reachable at {self.base_url}: {e}"
            ) from e
        self.system_name = state.name if state is not None else "unknown"
        self.name = f"{self.system_name} ({self.host})"
        logger.info("Logged on to robot controller %s", self.name)

    def close(self) -> None:
        session = self._session
        if session is None:
            return
        try:
            session.get(f"{self.base_url}/logout", timeout=self.timeout_s)
            logger.info("Logged off from robot controller %s", self.name)
        except requests.exceptions.RequestException as e:
            logger.warning("Robot controller logoff failed: %s", e)
        finally:
            self._drop_session()

    def _drop_session(self) -> None:
        session, self._session = self._session, None
        if session is not None and self._owns_session:
            session.close()

    def is_connected(self) -> bool:
        return self._session is not None

    def _http(self) -> requests.Session:
        if self._session is None:
            raise RuntimeError("Robot controller session is not open")
        return self._session

    def _signal_url(self, name: str) -> str:
        return f"{self.base_url}/rw/iosystem/signals/" + "/".join(
            quote(part, safe="") for part in name.split("/")
        )

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def get_signal(self, name: str) -> SignalHandle | None:
        response = self._http().get(
            self._signal_url(name), params={"json": "1"}, timeout=self.timeout_s
        )
        if response.status_code in (400, 404):
            return None
        response.raise_for_status()
        state = _first_state(response.content)
        if state is None:
            return None
        kind = _SIGNAL_KINDS.get(state.type.upper())
        if kind is None:
            raise ValueError(f"Unsupported signal type {state.type!r} for {name}")
        return SignalHandle(name=name, kind=kind, ref=self._signal_url(name))

    def read_signal_value(self, handle: SignalHandle) -> float:
        response = self._http().get(
            handle.ref or self._signal_url(handle.name),
            params={"json": "1"},
            timeout=self.timeout_s,
        )
        response.raise_for_status()
        state = _first_state(response.content)
        if state is None:
            raise ValueError(f"Signal {handle.name} returned no value")
        return float(state.lvalue)

    def _write_signal(self, handle: SignalHandle, value: float) -> WriteResult:
        match handle.kind:
            case SignalKind.DIGITAL | SignalKind.GROUP:
                lvalue = str(int(value))
            case SignalKind.ANALOG:
                lvalue = repr(float(value))
        try:
            response = self._http().post(
                handle.ref or self._signal_url(handle.name),
                params={"action": "set"},
                data={"lvalue": lvalue},
                timeout=self.timeout_s,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            return WriteResult.failure(str(e))
        return WriteResult.success()

    # ------------------------------------------------------------------
    # Mastership
    # ------------------------------------------------------------------

    def _acquire_exclusive(self) -> None:
        response = self._http().post(
            f"{self.base_url}/rw/mastership",
            params={"action": "request"},
            timeout=self.timeout_s,
        )
        response.raise_for_status()

    def _release_exclusive(self) -> None:
        try:
            response = self._http().post(
                f"{self.base_url}/rw/mastership",
                params={"action": "release"},
                timeout=self.timeout_s,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.warning("Mastership release failed: %s", e)

    def describe(self) -> str:
        return self.name
