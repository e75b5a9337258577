"""Unit tests for the TwinCAT ADS source, with pyads.Connection mocked."""

from unittest.mock import MagicMock, patch

import numpy as np
import pytest

pyads = pytest.importorskip("pyads")

from robocaty.backends.ads_source import ADSERR_DEVICE_SYMBOLNOTFOUND, AdsSource  # noqa: E402
from robocaty.errors import BackendConnectionError  # noqa: E402


@pytest.fixture
def connection():
    conn = MagicMock()
    conn.read_state.return_value = (pyads.ADSSTATE_RUN, 0)
    conn.is_open = True
    with patch("robocaty.backends.ads_source.pyads.Connection", return_value=conn) as factory:
        conn.factory = factory
        yield conn


class TestConnect:
    def test_connect_opens_and_reads_state(self, connection):
        source = AdsSource("5.1.2.3.1.1", 851)
        source.connect()

        connection.factory.assert_called_once_with("5.1.2.3.1.1", 851, None)
        connection.open.assert_called_once()
        assert source.is_connected()
        assert source.describe() == "ADS 5.1.2.3.1.1:851 (Running)"

    def test_connect_failure_raises(self, connection):
        connection.open.side_effect = pyads.ADSError(err_code=6, text="target port not found")
        source = AdsSource("5.1.2.3.1.1")
        with pytest.raises(BackendConnectionError):
            source.connect()
        assert not source.is_connected()

    def test_close_is_idempotent(self, connection):
        source = AdsSource("5.1.2.3.1.1")
        source.connect()
        source.close()
        source.close()
        connection.close.assert_called_once()


class TestReadWrite:
    def test_missing_symbol_reads_as_none(self, connection):
        connection.read_by_name.side_effect = pyads.ADSError(err_code=ADSERR_DEVICE_SYMBOLNOTFOUND)
        source = AdsSource("5.1.2.3.1.1")
        source.connect()
        assert source.read_value("MAIN.gone") is None

    def test_other_read_errors_propagate(self, connection):
        connection.read_by_name.side_effect = pyads.ADSError(err_code=0x745)
        source = AdsSource("5.1.2.3.1.1")
        source.connect()
        with pytest.raises(pyads.ADSError):
            source.read_value("MAIN.x")

    def test_write_unwraps_numpy_scalars(self, connection):
        source = AdsSource("5.1.2.3.1.1")
        source.connect()
        result = source.write_value("MAIN.nByte", np.uint8(44))

        assert result.ok
        _, value = connection.write_by_name.call_args.args
        assert value == 44
        assert type(value) is int

    def test_write_missing_symbol_is_failure(self, connection):
        connection.write_by_name.side_effect = pyads.ADSError(err_code=ADSERR_DEVICE_SYMBOLNOTFOUND)
        source = AdsSource("5.1.2.3.1.1")
        source.connect()
        result = source.write_value("MAIN.gone", 1)
        assert not result.ok
        assert "symbol not found" in result.reason
