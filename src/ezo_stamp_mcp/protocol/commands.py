"""EZO command set and command builders.

Every builder returns one ``\\r``-terminated ASCII frame. Addressing is a
configuration value: the same builders serve pure serial (USB) stamps and
stamps behind an I2C multiplexer, which receive an ``"{address}:"`` prefix.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum, IntEnum

from ..models.snapshot import I2C_ADDRESS_MAX, I2C_ADDRESS_MIN
from .framing import build_frame

SUPPORTED_BAUDRATES = (300, 1200, 2400, 9600, 19200, 38400, 57600, 115200)
MAX_NAME_LENGTH = 16


class InvalidArgument(ValueError):
    """A builder was called with a parameter the EZO command set cannot express."""


class Operation(str, Enum):
    """Logical operations understood by :func:`build`."""

    READ_LED = "read_led"
    WRITE_LED = "write_led"
    READ_CONTINUOUS = "read_continuous"
    WRITE_CONTINUOUS = "write_continuous"
    READ_MEASUREMENT = "read_measurement"
    READ_TEMPERATURE = "read_temperature"
    WRITE_TEMPERATURE = "write_temperature"
    READ_CALIBRATION_STATE = "read_calibration_state"
    CALIBRATE_PH = "calibrate_ph"
    CALIBRATE_ORP = "calibrate_orp"
    READ_SLOPE = "read_slope"
    READ_INFO = "read_info"
    READ_STATUS = "read_status"
    READ_NAME = "read_name"
    WRITE_NAME = "write_name"
    READ_RESPONSE_MODE = "read_response_mode"
    WRITE_RESPONSE_MODE = "write_response_mode"
    SLEEP = "sleep"
    CHANGE_SERIAL_BAUD = "change_serial_baud"
    CHANGE_I2C_ADDRESS = "change_i2c_address"
    FACTORY_RESET = "factory_reset"


class CalibrationStage(IntEnum):
    """pH calibration points."""

    CLEAR = 0
    MID = 1
    LOW = 2
    HIGH = 3


# Reference buffer for each pH calibration point
PH_CALIBRATION_BODIES: dict[CalibrationStage, str] = {
    CalibrationStage.CLEAR: "Cal,clear",
    CalibrationStage.MID: "Cal,mid,7.00",
    CalibrationStage.LOW: "Cal,low,4.00",
    CalibrationStage.HIGH: "Cal,high,10.00",
}


@dataclass(frozen=True)
class Addressing:
    """How commands reach the stamp: pure serial, or I2C via a multiplexer."""

    i2c_address: int | None = None

    def __post_init__(self) -> None:
        if self.i2c_address is not None and self.i2c_address >= 0:
            _check_i2c_address(self.i2c_address)

    @property
    def is_i2c(self) -> bool:
        return self.i2c_address is not None and self.i2c_address >= 0

    @classmethod
    def serial(cls) -> Addressing:
        return cls()

    @classmethod
    def i2c(cls, address: int) -> Addressing:
        return cls(i2c_address=address)


SERIAL = Addressing()


def _check_i2c_address(address: int) -> None:
    if not I2C_ADDRESS_MIN <= address <= I2C_ADDRESS_MAX:
        raise InvalidArgument(
            f"I2C address must be {I2C_ADDRESS_MIN}-{I2C_ADDRESS_MAX}, got {address}"
        )


def build_command(body: str, addressing: Addressing = SERIAL) -> bytes:
    """Build a frame for an arbitrary command body."""
    return build_frame(body, addressing.i2c_address if addressing.is_i2c else None)


def _on_off(state: bool) -> str:
    return "1" if state else "0"


def _finite(value: float, name: str) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise InvalidArgument(f"{name} must be a number, got {value!r}") from None
    if not math.isfinite(value):
        raise InvalidArgument(f"{name} must be finite, got {value!r}")
    return value


def build_read_led(addressing: Addressing = SERIAL) -> bytes:
    """Query the LED. Response: ``?L,x``."""
    return build_command("L,?", addressing)


def build_write_led(state: bool, addressing: Addressing = SERIAL) -> bytes:
    """Turn the LED on or off."""
    return build_command(f"L,{_on_off(state)}", addressing)


def build_read_continuous(addressing: Addressing = SERIAL) -> bytes:
    """Query continuous reading mode. Response: ``?C,x``."""
    return build_command("C,?", addressing)


def build_write_continuous(state: bool, addressing: Addressing = SERIAL) -> bytes:
    """Enable (one reading per second) or disable continuous mode."""
    return build_command(f"C,{_on_off(state)}", addressing)


def build_read_measurement(addressing: Addressing = SERIAL) -> bytes:
    """Request a single reading. Response: a bare numeric frame."""
    return build_command("R", addressing)


def build_read_temperature(addressing: Addressing = SERIAL) -> bytes:
    """Query the temperature compensation value. Response: ``?T,xx.xx``."""
    return build_command("T,?", addressing)


def build_write_temperature(value: float, addressing: Addressing = SERIAL) -> bytes:
    """Set temperature compensation in degrees Celsius.

    Raises:
        InvalidArgument: If ``value`` is not a finite number.
    """
    value = _finite(value, "Temperature")
    return build_command(f"T,{value:.2f}", addressing)


def build_read_calibration_state(addressing: Addressing = SERIAL) -> bytes:
    """Query calibration points. Response: ``?CAL,x``."""
    return build_command("Cal,?", addressing)


def build_calibrate_ph(stage: int, addressing: Addressing = SERIAL) -> bytes:
    """Perform a pH calibration step.

    Args:
        stage: One of :class:`CalibrationStage` (0 clear, 1 mid/7.00,
            2 low/4.00, 3 high/10.00).

    Raises:
        InvalidArgument: If ``stage`` is not a known calibration point.
    """
    try:
        stage = CalibrationStage(stage)
    except ValueError:
        raise InvalidArgument(
            f"Calibration stage must be 0-3, got {stage!r}"
        ) from None
    return build_command(PH_CALIBRATION_BODIES[stage], addressing)


def build_calibrate_orp(reference: float, addressing: Addressing = SERIAL) -> bytes:
    """Calibrate an ORP stamp against a reference solution in mV.

    Raises:
        InvalidArgument: If ``reference`` is not a finite number.
    """
    reference = _finite(reference, "ORP reference")
    return build_command(f"Cal,{reference:.1f}", addressing)


def build_read_slope(addressing: Addressing = SERIAL) -> bytes:
    """Query pH probe slopes. Response: ``?SLOPE,acid,basic``."""
    return build_command("SLOPE,?", addressing)


def build_read_info(addressing: Addressing = SERIAL) -> bytes:
    """Query probe type and firmware version. Response: ``?I,type,version``.

    The command text differs by transport: ``I`` on a serial stamp and
    ``?I`` through the I2C multiplexer.
    """
    return build_command("?I" if addressing.is_i2c else "I", addressing)


def build_read_status(addressing: Addressing = SERIAL) -> bytes:
    """Query reset reason and supply voltage. Response: ``?STATUS,x,y.yyy``."""
    return build_command("STATUS", addressing)


def build_read_name(addressing: Addressing = SERIAL) -> bytes:
    """Query the device name. Response: ``?NAME,name``."""
    return build_command("NAME,?", addressing)


def build_write_name(name: str, addressing: Addressing = SERIAL) -> bytes:
    """Set the device name.

    Raises:
        InvalidArgument: If the name is too long, not ASCII, or contains
            characters that would break the frame.
    """
    if len(name) > MAX_NAME_LENGTH:
        raise InvalidArgument(
            f"Name must be at most {MAX_NAME_LENGTH} characters, got {len(name)}"
        )
    if not name.isascii() or any(c in name for c in ",\r\n"):
        raise InvalidArgument(f"Name contains unsupported characters: {name!r}")
    return build_command(f"NAME,{name}", addressing)


def build_read_response_mode(addressing: Addressing = SERIAL) -> bytes:
    """Query whether ``OK`` acknowledgements are enabled."""
    return build_command("RESPONSE,?", addressing)


def build_write_response_mode(state: bool, addressing: Addressing = SERIAL) -> bytes:
    """Enable or disable ``OK`` acknowledgements."""
    return build_command(f"RESPONSE,{_on_off(state)}", addressing)


def build_sleep(addressing: Addressing = SERIAL) -> bytes:
    """Enter low power sleep mode. Any following command wakes the stamp."""
    return build_command("SLEEP", addressing)


def build_change_serial_baud(baudrate: int, addressing: Addressing = SERIAL) -> bytes:
    """Change the UART baud rate (or switch an I2C stamp back to UART).

    Raises:
        InvalidArgument: If ``baudrate`` is not supported by the stamp.
    """
    if baudrate not in SUPPORTED_BAUDRATES:
        raise InvalidArgument(
            f"Baud rate must be one of {SUPPORTED_BAUDRATES}, got {baudrate}"
        )
    return build_command(f"SERIAL,{baudrate}", addressing)


def build_change_i2c_address(new_address: int, addressing: Addressing = SERIAL) -> bytes:
    """Switch the stamp to I2C mode at ``new_address``.

    Raises:
        InvalidArgument: If ``new_address`` is outside 1-127.
    """
    _check_i2c_address(new_address)
    return build_command(f"I2C,{new_address}", addressing)


def build_factory_reset(addressing: Addressing = SERIAL) -> bytes:
    """Reset to factory settings.

    Through the I2C multiplexer this sends ``STATUS``; the caller confirms
    the reset by re-querying STATUS and checking for reset code ``S``.
    """
    return build_command("STATUS" if addressing.is_i2c else "Factory", addressing)


BUILDERS = {
    Operation.READ_LED: build_read_led,
    Operation.WRITE_LED: build_write_led,
    Operation.READ_CONTINUOUS: build_read_continuous,
    Operation.WRITE_CONTINUOUS: build_write_continuous,
    Operation.READ_MEASUREMENT: build_read_measurement,
    Operation.READ_TEMPERATURE: build_read_temperature,
    Operation.WRITE_TEMPERATURE: build_write_temperature,
    Operation.READ_CALIBRATION_STATE: build_read_calibration_state,
    Operation.CALIBRATE_PH: build_calibrate_ph,
    Operation.CALIBRATE_ORP: build_calibrate_orp,
    Operation.READ_SLOPE: build_read_slope,
    Operation.READ_INFO: build_read_info,
    Operation.READ_STATUS: build_read_status,
    Operation.READ_NAME: build_read_name,
    Operation.WRITE_NAME: build_write_name,
    Operation.READ_RESPONSE_MODE: build_read_response_mode,
    Operation.WRITE_RESPONSE_MODE: build_write_response_mode,
    Operation.SLEEP: build_sleep,
    Operation.CHANGE_SERIAL_BAUD: build_change_serial_baud,
    Operation.CHANGE_I2C_ADDRESS: build_change_i2c_address,
    Operation.FACTORY_RESET: build_factory_reset,
}


def build(operation: Operation | str, *params, addressing: Addressing = SERIAL) -> bytes:
    """Dispatch an operation to its builder.

    Raises:
        InvalidArgument: For an unknown operation or invalid parameters.
    """
    try:
        operation = Operation(operation)
    except ValueError:
        raise InvalidArgument(f"Unknown operation {operation!r}") from None
    try:
        return BUILDERS[operation](*params, addressing=addressing)
    except InvalidArgument:
        raise
    except (TypeError, ValueError) as e:
        raise InvalidArgument(f"Bad parameters for {operation.value}: {e}") from e


class CommandEncoder:
    """Builders bound to one stamp's addressing.

    Usage::

        encoder = CommandEncoder(Addressing.i2c(99))
        frame = encoder.write_temperature(25.0)   # b"99:T,25.00\\r"
    """

    def __init__(self, addressing: Addressing = SERIAL) -> None:
        self._addressing = addressing

    @property
    def addressing(self) -> Addressing:
        return self._addressing

    def set_i2c_address(self, address: int) -> None:
        """Address the stamp over I2C, or pass -1 for pure serial mode."""
        self._addressing = Addressing.i2c(address) if address >= 0 else SERIAL

    def set_as_serial(self) -> None:
        self._addressing = SERIAL

    def build(self, operation: Operation | str, *params) -> bytes:
        return build(operation, *params, addressing=self._addressing)

    def read_led(self) -> bytes:
        return build_read_led(self._addressing)

    def write_led(self, state: bool) -> bytes:
        return build_write_led(state, self._addressing)

    def read_continuous(self) -> bytes:
        return build_read_continuous(self._addressing)

    def write_continuous(self, state: bool) -> bytes:
        return build_write_continuous(state, self._addressing)

    def read_measurement(self) -> bytes:
        return build_read_measurement(self._addressing)

    def read_temperature(self) -> bytes:
        return build_read_temperature(self._addressing)

    def write_temperature(self, value: float) -> bytes:
        return build_write_temperature(value, self._addressing)

    def read_calibration_state(self) -> bytes:
        return build_read_calibration_state(self._addressing)

    def calibrate_ph(self, stage: int) -> bytes:
        return build_calibrate_ph(stage, self._addressing)

    def calibrate_orp(self, reference: float) -> bytes:
        return build_calibrate_orp(reference, self._addressing)

    def read_slope(self) -> bytes:
        return build_read_slope(self._addressing)

    def read_info(self) -> bytes:
        return build_read_info(self._addressing)

    def read_status(self) -> bytes:
        return build_read_status(self._addressing)

    def read_name(self) -> bytes:
        return build_read_name(self._addressing)

    def write_name(self, name: str) -> bytes:
        return build_write_name(name, self._addressing)

    def read_response_mode(self) -> bytes:
        return build_read_response_mode(self._addressing)

    def write_response_mode(self, state: bool) -> bytes:
        return build_write_response_mode(state, self._addressing)

    def sleep(self) -> bytes:
        return build_sleep(self._addressing)

    def change_serial_baud(self, baudrate: int) -> bytes:
        return build_change_serial_baud(baudrate, self._addressing)

    def change_i2c_address(self, new_address: int) -> bytes:
        return build_change_i2c_address(new_address, self._addressing)

    def factory_reset(self) -> bytes:
        return build_factory_reset(self._addressing)
