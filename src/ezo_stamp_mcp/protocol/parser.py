"""Response parsing for EZO stamp frames.

Each complete frame is classified by a fixed priority order:

1. status codes (``OK``, ``*ER``, ``*OV``, ...) anywhere in the frame
2. ``?L,`` ``?T,`` ``?CAL,`` ``?SLOPE,`` ``?I,`` ``?STATUS,`` ``?NAME,`` prefixes
3. anything else is a bare measurement, accepted only inside the valid
   range of the identified probe

Numeric fields are read at fixed offsets. A field that does not parse to a
finite number leaves the snapshot untouched.
"""

from __future__ import annotations

import logging
import math
import re
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from ..models.snapshot import (
    I2C_ADDRESS_MAX,
    I2C_ADDRESS_MIN,
    I2C_ADDRESS_UNSET,
    ORP_RANGE,
    PH_RANGE,
    PROBE_ORP,
    PROBE_PH,
    CalibrationState,
    PropertySnapshot,
)
from .framing import FrameBuffer

logger = logging.getLogger(__name__)

# Plain decimal as the stamp prints it: no exponent, no digit separators
NUMBER_RE = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)", re.ASCII)


class StatusKind(Enum):
    """Transport-level status reported by the stamp."""

    SUCCESS = "OK"
    UNKNOWN_COMMAND = "*ER"
    OVER_VOLTAGE = "*OV"
    UNDER_VOLTAGE = "*UV"
    DEVICE_RESET = "*RS"
    BOOT_COMPLETE = "*RE"
    DEVICE_ASLEEP = "*SL"
    DEVICE_WOKEN = "*WA"

    @property
    def marker(self) -> str:
        return self.value


class Category(Enum):
    """What changed as a result of one frame."""

    LED = "led"
    INFO = "info"
    MEASUREMENT = "measurement"
    TRANSPORT_STATUS = "transport_status"


@dataclass
class ChangeEvent:
    """Notification emitted for one processed frame.

    ``snapshot`` is a copy taken right after the frame was applied.
    """

    category: Category
    snapshot: PropertySnapshot
    status: StatusKind | None = None
    led_on: bool | None = None

    def to_dict(self) -> dict:
        data = {"category": self.category.value}
        if self.status is not None:
            data["status"] = self.status.name.lower()
        if self.led_on is not None:
            data["led_on"] = self.led_on
        return data


Listener = Callable[[ChangeEvent], None]


def parse_number(text: str) -> float:
    """Parse a numeric field, returning NaN when it is malformed."""
    text = text.strip()
    if not NUMBER_RE.fullmatch(text):
        return math.nan
    return float(text)


def field(frame: str, offset: int, length: int) -> str:
    """Fixed-width field starting at ``offset``; shorter if the frame ends first."""
    return frame[offset : offset + length]


def parse_status(frame: str) -> StatusKind | None:
    for kind in StatusKind:
        if kind.marker in frame:
            return kind
    return None


def in_range(value: float, bounds: tuple[float, float]) -> bool:
    low, high = bounds
    return not math.isnan(value) and low < value < high


class ResponseParser:
    """Turns raw inbound chunks into snapshot updates and change events.

    Chunks may split or join responses at any byte offset. :meth:`feed`
    drains every complete frame before returning.

    Usage::

        parser = ResponseParser()
        parser.subscribe(print)
        parser.feed(b"?I,pH,1.0\\r7.")
        parser.feed(b"234\\r")
        parser.snapshot.current_ph   # 7.234
    """

    def __init__(self, snapshot: PropertySnapshot | None = None) -> None:
        self._buffer = FrameBuffer()
        self._snapshot = snapshot if snapshot is not None else PropertySnapshot()
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()
        self._handlers: list[tuple[str, Callable[[str], Category | None]]] = [
            ("?L,", self._parse_led),
            ("?T,", self._parse_temperature),
            ("?CAL,", self._parse_calibration),
            ("?SLOPE,", self._parse_slope),
            ("?I,", self._parse_info),
            ("?STATUS,", self._parse_device_status),
            ("?NAME,", self._parse_name),
        ]

    @property
    def snapshot(self) -> PropertySnapshot:
        """The live snapshot. Treat it as read-only outside the parser."""
        return self._snapshot

    @property
    def pending(self) -> bytes:
        return self._buffer.pending

    # ─── SUBSCRIPTION ────────────────────────────────────────────────

    def subscribe(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ─── INJECTED SETTINGS ───────────────────────────────────────────

    def set_baud(self, value: int) -> None:
        with self._lock:
            self._snapshot.baud_rate = value

    def set_as_serial(self, value: bool) -> None:
        with self._lock:
            self._snapshot.transport_is_serial = value

    def set_i2c_address(self, value: int) -> None:
        if value != I2C_ADDRESS_UNSET and not I2C_ADDRESS_MIN <= value <= I2C_ADDRESS_MAX:
            raise ValueError(
                f"I2C address must be {I2C_ADDRESS_MIN}-{I2C_ADDRESS_MAX} or -1, got {value}"
            )
        with self._lock:
            self._snapshot.i2c_address = value

    def reset(self) -> None:
        """Start a new session: drop partial bytes and restore defaults.

        Baud rate and addressing settings carry over.
        """
        with self._lock:
            old = self._snapshot
            self._buffer.clear()
            self._snapshot = PropertySnapshot(
                i2c_address=old.i2c_address,
                baud_rate=old.baud_rate,
                transport_is_serial=old.transport_is_serial,
            )

    # ─── FEEDING ─────────────────────────────────────────────────────

    def feed(self, chunk: bytes) -> list[ChangeEvent]:
        """Consume a chunk and return the events it produced, in order.

        Subscribed listeners receive the same events after the buffer has
        been drained.
        """
        with self._lock:
            events: list[ChangeEvent] = []
            for raw in self._buffer.feed(chunk):
                event = self._process(raw.decode("ascii", errors="replace"))
                if event is not None:
                    events.append(event)

        for event in events:
            for listener in list(self._listeners):
                listener(event)
        return events

    def _process(self, frame: str) -> ChangeEvent | None:
        logger.debug("Frame received: %r", frame)

        status = parse_status(frame)
        if status is not None:
            return ChangeEvent(Category.TRANSPORT_STATUS, self._snapshot.copy(), status=status)

        for prefix, handler in self._handlers:
            if frame.startswith(prefix):
                category = handler(frame)
                break
        else:
            category = self._parse_measurement(frame)

        if category is None:
            return None
        led_on = self._snapshot.led_on if category is Category.LED else None
        return ChangeEvent(category, self._snapshot.copy(), led_on=led_on)

    # ─── FRAME HANDLERS ──────────────────────────────────────────────

    def _parse_led(self, frame: str) -> Category | None:
        state = field(frame, 3, 1)
        if state not in ("0", "1"):
            logger.debug("Malformed LED state in %r", frame)
            return None
        self._snapshot.led_on = state == "1"
        return Category.LED

    def _parse_temperature(self, frame: str) -> Category | None:
        value = parse_number(field(frame, 3, 5))
        if math.isnan(value):
            logger.debug("Malformed temperature in %r", frame)
            return None
        self._snapshot.current_temperature = value
        return Category.INFO

    def _parse_calibration(self, frame: str) -> Category | None:
        try:
            state = CalibrationState(int(field(frame, 5, 1)))
        except ValueError:
            logger.debug("Malformed calibration state in %r", frame)
            return None
        if state is CalibrationState.UNSET:
            return None
        self._snapshot.calibration_state = state
        return Category.INFO

    def _parse_slope(self, frame: str) -> Category | None:
        acid = parse_number(field(frame, 7, 4))
        basic = parse_number(field(frame, 12, 6))
        if not math.isnan(acid):
            self._snapshot.acid_slope = acid
        if not math.isnan(basic):
            self._snapshot.basic_slope = basic
        if math.isnan(acid) and math.isnan(basic):
            logger.debug("Malformed slope in %r", frame)
            return None
        return Category.INFO

    def _parse_info(self, frame: str) -> Category | None:
        if field(frame, 3, 2) == PROBE_PH:
            probe_type = PROBE_PH
            version = field(frame, 6, 4)
        else:
            probe_type = field(frame, 3, 3).strip(" ,")
            version = field(frame, 7, 4)
        if not probe_type:
            return None
        if not self._snapshot.probe_type:
            self._snapshot.probe_type = probe_type
        elif probe_type != self._snapshot.probe_type:
            logger.warning(
                "Ignoring probe type %r, stamp already identified as %r",
                probe_type,
                self._snapshot.probe_type,
            )
            return None
        self._snapshot.firmware_version = version.strip()
        return Category.INFO

    def _parse_device_status(self, frame: str) -> Category | None:
        reset_code = field(frame, 8, 1)
        if not reset_code:
            return None
        self._snapshot.reset_code = reset_code
        voltage = parse_number(field(frame, 10, 5))
        if not math.isnan(voltage):
            self._snapshot.supply_voltage = voltage
        return Category.INFO

    def _parse_name(self, frame: str) -> Category | None:
        self._snapshot.device_name = field(frame, 6, 8)
        return Category.INFO

    def _parse_measurement(self, frame: str) -> Category | None:
        value = parse_number(field(frame, 0, 7))
        probe_type = self._snapshot.probe_type
        if probe_type == PROBE_PH and in_range(value, PH_RANGE):
            self._snapshot.current_ph = value
            return Category.MEASUREMENT
        if probe_type == PROBE_ORP and in_range(value, ORP_RANGE):
            self._snapshot.current_orp = value
            return Category.MEASUREMENT
        logger.debug("Dropped frame %r (probe type %r)", frame, probe_type)
        return None
