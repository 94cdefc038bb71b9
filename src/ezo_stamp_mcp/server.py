"""MCP server entry point for Atlas Scientific EZO stamps.

Exposes tools, resources, and prompts via the Model Context Protocol
using the official Python MCP SDK with stdio transport.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from mcp.server.fastmcp import FastMCP

from .models.snapshot import PROBE_ORP, PROBE_PH, RESET_CODES
from .protocol.commands import (
    SUPPORTED_BAUDRATES,
    Addressing,
    CalibrationStage,
    InvalidArgument,
    Operation,
    build_command,
)
from .protocol.parser import Category, ChangeEvent
from .stamp import EZOStamp
from .transport.serial_connection import (
    DEFAULT_BAUDRATE,
    SerialConnection,
    list_serial_ports,
)

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "ezo-stamp",
    instructions="MCP server for Atlas Scientific EZO pH/ORP sensor stamps",
)

# Global session state
_stamp: EZOStamp | None = None


def _get_stamp() -> EZOStamp:
    """Get the active stamp session, raising if not connected."""
    if _stamp is None or not _stamp.connected:
        raise RuntimeError(
            "Not connected to a stamp. Use the 'connect' tool first."
        )
    return _stamp


def _summarize(events: list[ChangeEvent]) -> dict[str, Any]:
    """Collapse a request's events into the fields a tool result needs."""
    statuses = [e.status.name.lower() for e in events if e.status is not None]
    return {
        "statuses": statuses,
        "updated": sorted({e.category.value for e in events
                           if e.category is not Category.TRANSPORT_STATUS}),
    }


def _stage_from_name(stage: str) -> CalibrationStage:
    try:
        return CalibrationStage[stage.upper()]
    except KeyError:
        raise InvalidArgument(
            f"Unknown calibration stage '{stage}'. "
            f"Valid: {[s.name.lower() for s in CalibrationStage]}"
        ) from None


# ─── CONNECTION TOOLS ─────────────────────────────────────────────────

@mcp.tool()
def list_ports() -> dict[str, Any]:
    """List serial ports that may host an EZO stamp or Tentacle board."""
    return {"ports": [p.to_dict() for p in list_serial_ports()]}


@mcp.tool()
def connect(
    port: str,
    baudrate: int = DEFAULT_BAUDRATE,
    i2c_address: int = -1,
) -> dict[str, Any]:
    """Open a serial connection to an EZO stamp and identify it.

    Args:
        port: Serial device, e.g. /dev/ttyUSB0 or COM3.
        baudrate: UART baud rate (default 9600).
        i2c_address: Address (1-127) of a stamp behind a Tentacle I2C
                     multiplexer, or -1 for a stamp on the serial port itself.
    """
    global _stamp
    if _stamp is not None and _stamp.connected:
        return {
            "connected": True,
            "message": "Already connected",
            "port": _stamp.connection.port,
        }

    try:
        addressing = Addressing.i2c(i2c_address) if i2c_address >= 0 else Addressing.serial()
    except InvalidArgument as e:
        return {"error": str(e)}

    stamp = EZOStamp(SerialConnection(port, baudrate), addressing)
    stamp.open()
    _stamp = stamp

    stamp.identify()
    result: dict[str, Any] = {"connected": True, "port": port, "baudrate": baudrate}
    result.update(stamp.snapshot.to_dict())
    return result


@mcp.tool()
def disconnect() -> dict[str, bool]:
    """Close the serial connection and discard the session state."""
    global _stamp
    if _stamp is None:
        return {"disconnected": True}
    _stamp.close()
    _stamp = None
    return {"disconnected": True}


@mcp.tool()
def get_device_info() -> dict[str, Any]:
    """Query probe type, firmware version, reset reason, supply voltage and name."""
    stamp = _get_stamp()
    events = stamp.identify()
    snap = stamp.snapshot
    return {
        "probe_type": snap.probe_type,
        "firmware": snap.firmware_version,
        "name": snap.device_name,
        "reset_code": snap.reset_code,
        "reset_reason": RESET_CODES.get(snap.reset_code, ""),
        "supply_voltage": snap.supply_voltage,
        **_summarize(events),
    }


# ─── MEASUREMENT TOOLS ───────────────────────────────────────────────

@mcp.tool()
def read_measurement() -> dict[str, Any]:
    """Take a single reading (pH, or mV for ORP stamps)."""
    stamp = _get_stamp()
    if not stamp.snapshot.identified:
        stamp.identify()
    events = stamp.read_measurement()
    if not any(e.category is Category.MEASUREMENT for e in events):
        return {"error": "No valid reading received", **_summarize(events)}
    return {
        "probe_type": stamp.snapshot.probe_type,
        "value": stamp.snapshot.measurement,
        "unit": "mV" if stamp.snapshot.probe_type == PROBE_ORP else "pH",
    }


@mcp.tool()
def sample_measurements(samples: int = 10, interval_s: float = 1.0) -> dict[str, Any]:
    """Take several readings at a fixed interval.

    Args:
        samples: Number of readings (1-600).
        interval_s: Seconds between readings (>= 0).
    """
    if not 1 <= samples <= 600:
        return {"error": "Samples must be 1-600"}
    if interval_s < 0:
        return {"error": "Interval must be >= 0"}

    stamp = _get_stamp()
    if not stamp.snapshot.identified:
        stamp.identify()
    values = stamp.sample(samples, interval_s)
    result: dict[str, Any] = {
        "probe_type": stamp.snapshot.probe_type,
        "values": values,
        "requested": samples,
    }
    if values:
        result["min"] = min(values)
        result["max"] = max(values)
        result["mean"] = sum(values) / len(values)
    return result


@mcp.tool()
def get_temperature() -> dict[str, Any]:
    """Read the temperature compensation value (deg C)."""
    stamp = _get_stamp()
    events = stamp.read_temperature()
    return {"temperature": stamp.snapshot.current_temperature, **_summarize(events)}


@mcp.tool()
def set_temperature(temperature: float) -> dict[str, Any]:
    """Set the temperature compensation value.

    Args:
        temperature: Sample temperature in deg C (-5 to 100).
    """
    if not -5.0 <= temperature <= 100.0:
        return {"error": "Temperature must be -5 to 100 deg C"}
    stamp = _get_stamp()
    events = stamp.set_temperature(temperature)
    return {"temperature": stamp.snapshot.current_temperature, **_summarize(events)}


# ─── DEVICE SETTING TOOLS ────────────────────────────────────────────

@mcp.tool()
def get_led() -> dict[str, Any]:
    """Read the state of the stamp's indicator LED."""
    stamp = _get_stamp()
    events = stamp.read_led()
    return {"led_on": stamp.snapshot.led_on, **_summarize(events)}


@mcp.tool()
def set_led(enabled: bool) -> dict[str, Any]:
    """Turn the indicator LED on or off.

    Args:
        enabled: True for on, False for off.
    """
    stamp = _get_stamp()
    events = stamp.set_led(enabled)
    return {"led_on": stamp.snapshot.led_on, **_summarize(events)}


@mcp.tool()
def set_continuous(enabled: bool) -> dict[str, Any]:
    """Enable or disable continuous reading mode (one reading per second).

    Args:
        enabled: True to stream readings, False for readings on request.
    """
    stamp = _get_stamp()
    events = stamp.request(stamp.encoder.write_continuous(enabled))
    return {"continuous": enabled, **_summarize(events)}


@mcp.tool()
def set_name(name: str) -> dict[str, Any]:
    """Store a name on the stamp.

    Args:
        name: Up to 16 ASCII characters, no commas.
    """
    stamp = _get_stamp()
    try:
        frame = stamp.encoder.write_name(name)
    except InvalidArgument as e:
        return {"error": str(e)}
    events = stamp.request(frame)
    events += stamp.request(stamp.encoder.read_name())
    return {"name": stamp.snapshot.device_name, **_summarize(events)}


@mcp.tool()
def set_response_mode(enabled: bool) -> dict[str, Any]:
    """Enable or disable the stamp's OK acknowledgements.

    Args:
        enabled: True to acknowledge every command with OK.
    """
    stamp = _get_stamp()
    events = stamp.request(stamp.encoder.write_response_mode(enabled))
    return {"response_mode": enabled, **_summarize(events)}


@mcp.tool()
def sleep() -> dict[str, Any]:
    """Put the stamp in low power sleep mode. Any command wakes it."""
    stamp = _get_stamp()
    events = stamp.request(stamp.encoder.sleep())
    return {"asleep": True, **_summarize(events)}


# ─── CALIBRATION TOOLS ───────────────────────────────────────────────

@mcp.tool()
def get_calibration() -> dict[str, Any]:
    """Read which calibration points are stored."""
    stamp = _get_stamp()
    events = stamp.read_calibration()
    return {
        "calibration_state": stamp.snapshot.calibration_state.name.lower(),
        **_summarize(events),
    }


@mcp.tool()
def calibrate_ph(stage: str) -> dict[str, Any]:
    """Run one pH calibration step with the probe in the matching buffer.

    Always calibrate 'mid' (pH 7.00) first; it clears the low and high
    points. Then 'low' (pH 4.00) and optionally 'high' (pH 10.00).

    Args:
        stage: One of clear, mid, low, high.
    """
    stamp = _get_stamp()
    if stamp.snapshot.probe_type and stamp.snapshot.probe_type != PROBE_PH:
        return {"error": f"Stamp is a {stamp.snapshot.probe_type} stamp, not pH"}
    try:
        events = stamp.calibrate_ph(_stage_from_name(stage))
    except InvalidArgument as e:
        return {"error": str(e)}
    return {
        "stage": stage.lower(),
        "calibration_state": stamp.snapshot.calibration_state.name.lower(),
        **_summarize(events),
    }


@mcp.tool()
def calibrate_orp(reference_mv: float = 225.0) -> dict[str, Any]:
    """Calibrate an ORP stamp against a reference solution.

    Args:
        reference_mv: Reference solution potential in mV (-1019.9 to 1019.9).
    """
    if not -1019.9 <= reference_mv <= 1019.9:
        return {"error": "Reference must be -1019.9 to 1019.9 mV"}
    stamp = _get_stamp()
    if stamp.snapshot.probe_type and stamp.snapshot.probe_type != PROBE_ORP:
        return {"error": f"Stamp is a {stamp.snapshot.probe_type} stamp, not ORP"}
    events = stamp.calibrate_orp(reference_mv)
    return {
        "reference_mv": reference_mv,
        "calibration_state": stamp.snapshot.calibration_state.name.lower(),
        **_summarize(events),
    }


@mcp.tool()
def get_slope() -> dict[str, Any]:
    """Read pH probe slopes relative to an ideal probe, in percent."""
    stamp = _get_stamp()
    events = stamp.read_slope()
    return {
        "acid_slope": stamp.snapshot.acid_slope,
        "basic_slope": stamp.snapshot.basic_slope,
        **_summarize(events),
    }


# ─── PROTOCOL MODE TOOLS ─────────────────────────────────────────────

@mcp.tool()
def change_baud(baudrate: int) -> dict[str, Any]:
    """Change the stamp's UART baud rate. The session must reconnect afterwards.

    Args:
        baudrate: One of 300, 1200, 2400, 9600, 19200, 38400, 57600, 115200.
    """
    stamp = _get_stamp()
    try:
        frame = stamp.encoder.change_serial_baud(baudrate)
    except InvalidArgument as e:
        return {"error": str(e)}
    stamp.send(frame)
    return {"baudrate": baudrate, "reconnect_required": True}


@mcp.tool()
def change_i2c_address(address: int) -> dict[str, Any]:
    """Switch the stamp to I2C mode at a new address.

    Args:
        address: New I2C address (1-127).
    """
    stamp = _get_stamp()
    try:
        frame = stamp.encoder.change_i2c_address(address)
    except InvalidArgument as e:
        return {"error": str(e)}
    stamp.send(frame)
    if stamp.encoder.addressing.is_i2c:
        stamp.set_i2c_address(address)
    return {"i2c_address": address}


@mcp.tool()
def factory_reset() -> dict[str, Any]:
    """Reset the stamp to factory settings and confirm via STATUS."""
    stamp = _get_stamp()
    events = stamp.factory_reset()
    return {
        "reset_code": stamp.snapshot.reset_code,
        "confirmed": stamp.snapshot.reset_code == "S",
        **_summarize(events),
    }


@mcp.tool()
def send_raw(command: str) -> dict[str, Any]:
    """Send an arbitrary EZO command and report what came back.

    Args:
        command: Command text without the trailing carriage return, e.g. "Cal,?".
    """
    if not command or not command.isascii() or "\r" in command or "\n" in command:
        return {"error": "Command must be non-empty ASCII without line breaks"}
    stamp = _get_stamp()
    events = stamp.request(build_command(command, stamp.encoder.addressing))
    return {
        "command": command,
        "events": [e.to_dict() for e in events],
        "snapshot": stamp.snapshot.to_dict(),
    }


# ─── MCP RESOURCES ───────────────────────────────────────────────────

@mcp.resource("ezo://device/snapshot")
def resource_snapshot() -> str:
    """Last known properties of the connected stamp."""
    if _stamp is None:
        return json.dumps({"connected": False})
    data = _stamp.snapshot.to_dict()
    data["connected"] = _stamp.connected
    return json.dumps(data)


@mcp.resource("ezo://device/status")
def resource_device_status() -> str:
    """Connection state and addressing."""
    connected = _stamp is not None and _stamp.connected
    if not connected:
        return json.dumps({"connected": False})
    return json.dumps({
        "connected": True,
        "port": _stamp.connection.port,
        "baudrate": _stamp.connection.baudrate,
        "i2c_address": _stamp.snapshot.i2c_address,
    })


@mcp.resource("ezo://catalog/commands")
def resource_command_catalog() -> str:
    """Supported logical operations and baud rates."""
    return json.dumps({
        "operations": [op.value for op in Operation],
        "calibration_stages": [s.name.lower() for s in CalibrationStage],
        "baudrates": list(SUPPORTED_BAUDRATES),
    })


# ─── MCP PROMPTS ─────────────────────────────────────────────────────

@mcp.prompt()
def calibrate_ph_probe(points: int = 3) -> str:
    """Walk the user through a pH calibration.

    Args:
        points: 1, 2 or 3 point calibration.
    """
    steps = ["mid (pH 7.00)", "low (pH 4.00)", "high (pH 10.00)"][:max(1, min(points, 3))]
    return f"""Guide the user through a {len(steps)}-point pH calibration.
For each step in order: {', '.join(steps)}
- Ask the user to rinse the probe and place it in the buffer
- Use sample_measurements until readings are stable (spread < 0.02)
- Call calibrate_ph with the stage name

Finish with get_calibration and get_slope. Slopes below 90% suggest
a worn probe."""


@mcp.prompt()
def check_probe_health() -> str:
    """Assess the connected probe from its status and slopes."""
    return """Call get_device_info, get_calibration and get_slope.
Report:
- Probe type and firmware
- Reset reason (brown-out or watchdog resets point at supply problems)
- Supply voltage (should be close to 3.3 V or 5 V)
- Calibration points stored
- Acid and basic slopes (healthy probes stay within 95-105%)"""


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    logging.basicConfig(level=logging.INFO)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
