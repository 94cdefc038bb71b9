"""Serial (UART/USB) connection to an Atlas Scientific EZO stamp.

The stamp enumerates as a virtual COM port (USB carrier board or FTDI
cable) running 8N1. An Arduino with a Tentacle shield shows up the same
way and forwards ``"{address}:"``-prefixed commands to I2C stamps.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import serial
from serial.tools import list_ports

from ..protocol.framing import DELIMITER

logger = logging.getLogger(__name__)

DEFAULT_BAUDRATE = 9600
READ_TIMEOUT_MS = 100
WRITE_TIMEOUT_S = 1.0


@dataclass
class PortInfo:
    """A serial port candidate found on the host."""

    device: str
    description: str = ""
    hwid: str = ""

    def to_dict(self) -> dict:
        return {"device": self.device, "description": self.description, "hwid": self.hwid}


def list_serial_ports() -> list[PortInfo]:
    """List serial ports visible to pyserial."""
    return [
        PortInfo(device=p.device, description=p.description or "", hwid=p.hwid or "")
        for p in sorted(list_ports.comports(), key=lambda p: p.device)
    ]


class SerialConnection:
    """Manages the serial port to one stamp (or one Tentacle host).

    Usage::

        conn = SerialConnection("/dev/ttyUSB0")
        conn.open()
        conn.write(b"R\\r")
        chunk = conn.read()
        conn.close()
    """

    def __init__(self, port: str, baudrate: int = DEFAULT_BAUDRATE) -> None:
        self._port_name = port
        self._baudrate = baudrate
        self._serial: serial.Serial | None = None

    @property
    def port(self) -> str:
        return self._port_name

    @property
    def baudrate(self) -> int:
        return self._baudrate

    @property
    def connected(self) -> bool:
        return self._serial is not None and self._serial.is_open

    def open(self) -> None:
        """Open the port.

        Raises:
            ConnectionError: If the port cannot be opened.
        """
        try:
            self._serial = serial.Serial(
                port=self._port_name,
                baudrate=self._baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=READ_TIMEOUT_MS / 1000,
                write_timeout=WRITE_TIMEOUT_S,
            )
        except serial.SerialException as e:
            raise ConnectionError(
                f"Could not open {self._port_name} at {self._baudrate} baud. "
                f"Ensure the stamp is connected and you have permissions. "
                f"Last error: {e}"
            ) from e
        logger.info("Connected to %s at %d baud", self._port_name, self._baudrate)

    def close(self) -> None:
        """Close the port."""
        if self._serial is None:
            return
        try:
            self._serial.close()
        except serial.SerialException as e:
            logger.warning("Error closing port: %s", e)
        finally:
            self._serial = None
            logger.info("Disconnected")

    def write(self, frame: bytes) -> int:
        """Write one command frame.

        Raises:
            ConnectionError: If not connected.
            ValueError: If the frame is not ``\\r``-terminated.
        """
        if not self.connected:
            raise ConnectionError("Not connected to stamp")
        if not frame.endswith(DELIMITER) or b"\n" in frame:
            raise ValueError(f"Command frame must end in a bare \\r, got {frame!r}")

        logger.debug("Sending %r", frame)
        written = self._serial.write(frame)
        self._serial.flush()
        return written

    def read(self, timeout_ms: int = READ_TIMEOUT_MS) -> bytes | None:
        """Read whatever bytes are available, waiting at most ``timeout_ms``.

        The chunk is not frame-aligned.

        Returns:
            The bytes read, or None if nothing arrived.

        Raises:
            ConnectionError: If not connected.
        """
        if not self.connected:
            raise ConnectionError("Not connected to stamp")

        try:
            timeout = timeout_ms / 1000
            if self._serial.timeout != timeout:
                self._serial.timeout = timeout
            data = self._serial.read(max(1, self._serial.in_waiting))
            if data and self._serial.in_waiting:
                data += self._serial.read(self._serial.in_waiting)
        except serial.SerialException as e:
            logger.debug("Read error: %s", e)
            return None
        if not data:
            return None
        logger.debug("Received %r", data)
        return bytes(data)
