"""One connected EZO stamp: encoder, parser and serial connection together.

The stamp answers asynchronously and only in ASCII, so every request is
"write a frame, then read until the line goes quiet". Commands that change
state are followed by a fixed-delay re-query, since the stamp does not
echo the new value on its own.
"""

from __future__ import annotations

import logging
import time

from .models.snapshot import PropertySnapshot
from .protocol.commands import SERIAL, Addressing, CommandEncoder
from .protocol.parser import Category, ChangeEvent, ResponseParser
from .transport.serial_connection import READ_TIMEOUT_MS, SerialConnection

logger = logging.getLogger(__name__)

# Re-query delays after a state change, in seconds
LED_SETTLE_S = 0.3
TEMPERATURE_SETTLE_S = 0.4
CALIBRATION_SETTLE_S = 2.0
# A reading takes up to ~900 ms on pH/ORP stamps
MEASUREMENT_SETTLE_S = 1.0
QUERY_SETTLE_S = 0.3
SAMPLE_INTERVAL_S = 1.0


class EZOStamp:
    """Session with a single stamp.

    Usage::

        stamp = EZOStamp(SerialConnection("/dev/ttyUSB0"))
        stamp.open()
        stamp.identify()
        stamp.read_measurement()
        stamp.snapshot.current_ph
    """

    def __init__(
        self,
        connection: SerialConnection,
        addressing: Addressing = SERIAL,
        sleep=time.sleep,
    ) -> None:
        self._connection = connection
        self._encoder = CommandEncoder(addressing)
        self._parser = ResponseParser()
        self._sleep = sleep
        self._apply_settings()

    @property
    def connection(self) -> SerialConnection:
        return self._connection

    @property
    def encoder(self) -> CommandEncoder:
        return self._encoder

    @property
    def parser(self) -> ResponseParser:
        return self._parser

    @property
    def snapshot(self) -> PropertySnapshot:
        return self._parser.snapshot

    @property
    def connected(self) -> bool:
        return self._connection.connected

    def _apply_settings(self) -> None:
        addressing = self._encoder.addressing
        self._parser.set_baud(self._connection.baudrate)
        self._parser.set_as_serial(not addressing.is_i2c)
        self._parser.set_i2c_address(addressing.i2c_address if addressing.is_i2c else -1)

    def open(self) -> None:
        """Open the connection and start a fresh session."""
        self._connection.open()
        self._parser.reset()
        self._apply_settings()

    def close(self) -> None:
        self._connection.close()
        self._parser.reset()

    def set_i2c_address(self, address: int) -> None:
        """Re-target the session at another I2C address (-1 for serial)."""
        self._encoder.set_i2c_address(address)
        self._apply_settings()

    # ─── LOW LEVEL ───────────────────────────────────────────────────

    def send(self, frame: bytes) -> None:
        self._connection.write(frame)

    def poll(self, timeout_ms: int = READ_TIMEOUT_MS) -> list[ChangeEvent]:
        """Read one chunk, if any, and feed it to the parser."""
        chunk = self._connection.read(timeout_ms)
        if chunk is None:
            return []
        return self._parser.feed(chunk)

    def drain(self, timeout_ms: int = READ_TIMEOUT_MS) -> list[ChangeEvent]:
        """Poll until a read returns nothing."""
        events: list[ChangeEvent] = []
        while True:
            chunk = self._connection.read(timeout_ms)
            if chunk is None:
                return events
            events.extend(self._parser.feed(chunk))

    def request(self, frame: bytes, settle_s: float = QUERY_SETTLE_S) -> list[ChangeEvent]:
        """Send a frame, wait ``settle_s``, then collect everything that arrived.

        A stamp that never answers leaves the snapshot unchanged and
        yields no events.
        """
        self.send(frame)
        self._sleep(settle_s)
        events = self.drain()
        if not events:
            logger.debug("No usable response to %r", frame)
        return events

    # ─── QUERIES ─────────────────────────────────────────────────────

    def identify(self) -> list[ChangeEvent]:
        """Read probe type, firmware, status and name."""
        events = self.request(self._encoder.read_info())
        events += self.request(self._encoder.read_status())
        events += self.request(self._encoder.read_name())
        return events

    def read_measurement(self) -> list[ChangeEvent]:
        return self.request(self._encoder.read_measurement(), MEASUREMENT_SETTLE_S)

    def sample(
        self, samples: int, interval_s: float = SAMPLE_INTERVAL_S
    ) -> list[float]:
        """Take ``samples`` readings at a fixed interval.

        Readings the parser rejected are skipped, so the result may be
        shorter than ``samples``.
        """
        values: list[float] = []
        for i in range(samples):
            if i:
                self._sleep(interval_s)
            for event in self.read_measurement():
                if event.category is Category.MEASUREMENT:
                    values.append(event.snapshot.measurement)
        return values

    def read_temperature(self) -> list[ChangeEvent]:
        return self.request(self._encoder.read_temperature())

    def read_led(self) -> list[ChangeEvent]:
        return self.request(self._encoder.read_led())

    def read_calibration(self) -> list[ChangeEvent]:
        return self.request(self._encoder.read_calibration_state())

    def read_slope(self) -> list[ChangeEvent]:
        return self.request(self._encoder.read_slope())

    def read_status(self) -> list[ChangeEvent]:
        return self.request(self._encoder.read_status())

    # ─── STATE CHANGES WITH RE-QUERY ─────────────────────────────────

    def set_temperature(self, value: float) -> list[ChangeEvent]:
        events = self.request(self._encoder.write_temperature(value))
        self._sleep(TEMPERATURE_SETTLE_S)
        return events + self.read_temperature()

    def set_led(self, state: bool) -> list[ChangeEvent]:
        events = self.request(self._encoder.write_led(state))
        self._sleep(LED_SETTLE_S)
        return events + self.read_led()

    def calibrate_ph(self, stage: int) -> list[ChangeEvent]:
        frame = self._encoder.calibrate_ph(stage)
        events = self.request(frame)
        self._sleep(CALIBRATION_SETTLE_S)
        return events + self.read_calibration()

    def calibrate_orp(self, reference: float) -> list[ChangeEvent]:
        frame = self._encoder.calibrate_orp(reference)
        events = self.request(frame)
        self._sleep(CALIBRATION_SETTLE_S)
        return events + self.read_calibration()

    def factory_reset(self) -> list[ChangeEvent]:
        """Reset the stamp, then confirm via the STATUS reset code."""
        events = self.request(self._encoder.factory_reset())
        self._sleep(CALIBRATION_SETTLE_S)
        return events + self.read_status()
