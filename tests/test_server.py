"""Tests for the MCP tools with FastMCP and the serial port mocked."""

from __future__ import annotations

import json
import sys
from unittest.mock import MagicMock, patch

import pytest

from ezo_stamp_mcp.protocol.commands import Addressing
from ezo_stamp_mcp.stamp import EZOStamp


def _get_server_module():
    """Import server module with FastMCP mocked to avoid init issues."""
    mock_fastmcp_cls = MagicMock()
    mock_fastmcp_instance = MagicMock()
    # Make the @mcp.tool() decorator a no-op that returns the function unchanged
    mock_fastmcp_instance.tool.return_value = lambda fn: fn
    mock_fastmcp_instance.resource.return_value = lambda fn: fn
    mock_fastmcp_instance.prompt.return_value = lambda fn: fn
    mock_fastmcp_cls.return_value = mock_fastmcp_instance

    with patch("mcp.server.fastmcp.FastMCP", mock_fastmcp_cls):
        sys.modules.pop("ezo_stamp_mcp.server", None)
        import ezo_stamp_mcp.server as server_mod

    return server_mod


def _attach_stamp(server, chunks: list[bytes | None], addressing=Addressing.serial()):
    """Install a stamp session whose serial reads return ``chunks``."""
    conn = MagicMock()
    conn.connected = True
    conn.baudrate = 9600
    conn.port = "/dev/ttyUSB0"
    remaining = list(chunks)
    conn.read.side_effect = lambda timeout_ms=100: remaining.pop(0) if remaining else None
    stamp = EZOStamp(conn, addressing, sleep=lambda s: None)
    server._stamp = stamp
    return stamp, conn


@pytest.fixture
def server():
    mod = _get_server_module()
    yield mod
    mod._stamp = None


def test_tools_require_connection(server):
    with pytest.raises(RuntimeError):
        server.read_measurement()


def test_read_measurement_identifies_first(server):
    stamp, conn = _attach_stamp(server, [
        b"?I,pH,1.0\r", None,
        b"?STATUS,P,5.000\r", None,
        b"?NAME,tank1\r", None,
        b"7.123\r",
    ])
    result = server.read_measurement()
    assert result == {"probe_type": "pH", "value": 7.123, "unit": "pH"}
    assert conn.write.call_args_list[-1].args[0] == b"R\r"


def test_read_measurement_without_reading(server):
    _attach_stamp(server, [b"?I,ORP,1.0\r", None, None, None, b"*ER\r"])
    result = server.read_measurement()
    assert "error" in result
    assert result["statuses"] == ["unknown_command"]


def test_sample_measurements_stats(server):
    stamp, _ = _attach_stamp(server, [b"?I,pH,1.0\r"])
    stamp.poll()
    chunks = [b"7.000\r", None, b"7.200\r", None]
    stamp.connection.read.side_effect = lambda timeout_ms=100: chunks.pop(0) if chunks else None
    result = server.sample_measurements(samples=2, interval_s=0)
    assert result["values"] == [7.0, 7.2]
    assert result["min"] == 7.0
    assert result["max"] == 7.2


def test_sample_measurements_bounds(server):
    assert "error" in server.sample_measurements(samples=0)
    assert "error" in server.sample_measurements(samples=5, interval_s=-1)


def test_set_temperature(server):
    _, conn = _attach_stamp(server, [b"OK\r", None, b"?T,21.30\r"])
    result = server.set_temperature(21.3)
    assert result["temperature"] == 21.3
    assert result["statuses"] == ["success"]
    assert conn.write.call_args_list[0].args[0] == b"T,21.30\r"


def test_set_temperature_out_of_range(server):
    _, conn = _attach_stamp(server, [])
    assert "error" in server.set_temperature(150.0)
    conn.write.assert_not_called()


def test_calibrate_ph(server):
    _, conn = _attach_stamp(server, [b"OK\r", None, b"?CAL,1\r"])
    result = server.calibrate_ph("mid")
    assert result["calibration_state"] == "mid"
    assert conn.write.call_args_list[0].args[0] == b"Cal,mid,7.00\r"


def test_calibrate_ph_unknown_stage(server):
    _, conn = _attach_stamp(server, [])
    result = server.calibrate_ph("extreme")
    assert "error" in result
    conn.write.assert_not_called()


def test_calibrate_ph_rejects_orp_stamp(server):
    stamp, conn = _attach_stamp(server, [b"?I,ORP,1.0\r"])
    stamp.poll()
    assert "error" in server.calibrate_ph("mid")
    conn.write.assert_not_called()


def test_get_slope(server):
    _attach_stamp(server, [b"?SLOPE,98.7,101.2\r"])
    result = server.get_slope()
    assert result["acid_slope"] == 98.7
    assert result["basic_slope"] == 101.2


def test_set_name_validation(server):
    _, conn = _attach_stamp(server, [])
    assert "error" in server.set_name("a,b")
    conn.write.assert_not_called()


def test_change_baud_validation(server):
    _, conn = _attach_stamp(server, [])
    assert "error" in server.change_baud(12345)
    assert server.change_baud(57600)["reconnect_required"] is True
    conn.write.assert_called_once_with(b"SERIAL,57600\r")


def test_change_i2c_address_retargets_tentacle_session(server):
    stamp, conn = _attach_stamp(server, [], Addressing.i2c(99))
    server.change_i2c_address(100)
    conn.write.assert_called_once_with(b"99:I2C,100\r")
    assert stamp.encoder.read_led() == b"100:L,?\r"


def test_factory_reset_confirmation(server):
    _attach_stamp(server, [None, b"?STATUS,S,5.000\r"])
    result = server.factory_reset()
    assert result["confirmed"] is True


def test_send_raw_uses_addressing(server):
    _, conn = _attach_stamp(server, [b"?CAL,2\r"], Addressing.i2c(99))
    result = server.send_raw("Cal,?")
    conn.write.assert_called_once_with(b"99:Cal,?\r")
    assert result["events"] == [{"category": "info"}]
    assert result["snapshot"]["calibration_state"] == "low"


def test_send_raw_rejects_line_breaks(server):
    _attach_stamp(server, [])
    assert "error" in server.send_raw("R\rR")


def test_connect_rejects_bad_address(server):
    assert "error" in server.connect("/dev/ttyUSB0", i2c_address=300)


def test_connect_opens_and_identifies(server):
    conn = MagicMock()
    conn.connected = True
    conn.baudrate = 9600
    chunks = [b"?I,pH,1.0\r", b"?STATUS,P,5.000\r", b"?NAME,tank1\r"]
    conn.read.side_effect = lambda timeout_ms=100: chunks.pop(0) if chunks else None
    with patch.object(server, "SerialConnection", return_value=conn):
        result = server.connect("/dev/ttyUSB0")
    conn.open.assert_called_once()
    assert result["connected"] is True
    assert result["probe_type"] == "pH"
    assert result["device_name"] == "tank1"


def test_disconnect(server):
    _, conn = _attach_stamp(server, [])
    assert server.disconnect() == {"disconnected": True}
    conn.close.assert_called_once()
    assert server._stamp is None


def test_resources(server):
    assert json.loads(server.resource_snapshot()) == {"connected": False}
    assert json.loads(server.resource_device_status()) == {"connected": False}

    _attach_stamp(server, [], Addressing.i2c(99))
    status = json.loads(server.resource_device_status())
    assert status["i2c_address"] == 99
    catalog = json.loads(server.resource_command_catalog())
    assert "calibrate_ph" in catalog["operations"]
