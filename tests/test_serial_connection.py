"""Tests for the serial transport with pyserial mocked out."""

from unittest.mock import MagicMock, PropertyMock, patch

import pytest
import serial

from ezo_stamp_mcp.transport.serial_connection import (
    SerialConnection,
    list_serial_ports,
)

SERIAL_CLS = "ezo_stamp_mcp.transport.serial_connection.serial.Serial"


def _open_conn(port_mock: MagicMock) -> SerialConnection:
    with patch(SERIAL_CLS, return_value=port_mock) as serial_cls:
        conn = SerialConnection("/dev/ttyUSB0", 19200)
        conn.open()
    serial_cls.assert_called_once()
    assert serial_cls.call_args.kwargs["baudrate"] == 19200
    return conn


def _port_mock() -> MagicMock:
    port = MagicMock()
    port.is_open = True
    port.timeout = 0.1
    port.in_waiting = 0
    return port


def test_open_failure_raises_connection_error():
    with patch(SERIAL_CLS, side_effect=serial.SerialException("busy")):
        conn = SerialConnection("/dev/ttyUSB9")
        with pytest.raises(ConnectionError):
            conn.open()
    assert not conn.connected


def test_write_requires_connection():
    conn = SerialConnection("/dev/ttyUSB0")
    with pytest.raises(ConnectionError):
        conn.write(b"R\r")


def test_read_requires_connection():
    conn = SerialConnection("/dev/ttyUSB0")
    with pytest.raises(ConnectionError):
        conn.read()


def test_write_frame():
    port = _port_mock()
    port.write.return_value = 2
    conn = _open_conn(port)
    assert conn.write(b"R\r") == 2
    port.write.assert_called_once_with(b"R\r")
    port.flush.assert_called_once()


def test_write_rejects_unterminated_frame():
    """Frames must end in \\r and carry no \\n."""
    conn = _open_conn(_port_mock())
    with pytest.raises(ValueError):
        conn.write(b"R")
    with pytest.raises(ValueError):
        conn.write(b"R\r\n")


def test_read_returns_available_bytes():
    port = _port_mock()
    port.read.return_value = b"7.0"
    conn = _open_conn(port)
    assert conn.read() == b"7.0"


def test_read_timeout_returns_none():
    port = _port_mock()
    port.read.return_value = b""
    conn = _open_conn(port)
    assert conn.read(timeout_ms=50) is None
    assert port.timeout == 0.05


def test_read_reconfigures_timeout_only_on_change():
    port = _port_mock()
    port.read.return_value = b""
    timeout = PropertyMock(return_value=0.1)
    type(port).timeout = timeout
    conn = _open_conn(port)

    conn.read()
    conn.read()
    assert all(c.args == () for c in timeout.call_args_list)

    conn.read(timeout_ms=50)
    timeout.assert_called_with(0.05)


def test_read_error_returns_none():
    port = _port_mock()
    port.read.side_effect = serial.SerialException("unplugged")
    conn = _open_conn(port)
    assert conn.read() is None


def test_close():
    port = _port_mock()
    conn = _open_conn(port)
    conn.close()
    port.close.assert_called_once()
    assert not conn.connected


def test_list_serial_ports():
    fake = [
        MagicMock(device="/dev/ttyUSB1", description="FT232R", hwid="USB VID:PID=0403:6015"),
        MagicMock(device="/dev/ttyUSB0", description=None, hwid=None),
    ]
    with patch("ezo_stamp_mcp.transport.serial_connection.list_ports.comports",
               return_value=fake):
        ports = list_serial_ports()
    assert [p.device for p in ports] == ["/dev/ttyUSB0", "/dev/ttyUSB1"]
    assert ports[0].description == ""
    assert ports[1].to_dict()["description"] == "FT232R"
