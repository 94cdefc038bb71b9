"""Property snapshot of a single connected EZO stamp.

One ``PropertySnapshot`` exists per stamp session. It is created with the
defaults below, mutated only by :class:`~ezo_stamp_mcp.protocol.parser.ResponseParser`
and replaced wholesale on reconnect.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from enum import IntEnum


class CalibrationState(IntEnum):
    """Calibration points reported by ``?CAL,x``."""

    UNSET = -1
    CLEARED = 0
    MID = 1
    LOW = 2
    HIGH = 3


PROBE_PH = "pH"
PROBE_ORP = "ORP"
PROBE_EC = "EC"
PROBE_DO = "DO"
PROBE_TYPES = (PROBE_PH, PROBE_ORP, PROBE_EC, PROBE_DO)

RESET_CODES: dict[str, str] = {
    "P": "power-on reset",
    "S": "software reset",
    "B": "brown-out",
    "W": "watchdog",
    "U": "unknown",
}

# Open intervals of physically valid readings
PH_RANGE = (0.0, 14.0)
ORP_RANGE = (-1021.0, 1021.0)

I2C_ADDRESS_UNSET = -1
I2C_ADDRESS_MIN = 1
I2C_ADDRESS_MAX = 127

DEFAULT_BAUDRATE = 9600
DEFAULT_NAME = "Stamp"


@dataclass
class PropertySnapshot:
    """Last-known state of one EZO stamp.

    Measurement fields are ``None`` until the stamp has reported a valid
    reading, so a fresh snapshot is distinguishable from a measured value.
    """

    led_on: bool = True
    current_ph: float | None = None
    current_orp: float | None = None
    current_ec: float | None = None
    current_temperature: float | None = None
    calibration_state: CalibrationState = CalibrationState.UNSET
    acid_slope: float = 0.0
    basic_slope: float = 0.0
    probe_type: str = ""
    firmware_version: str = ""
    reset_code: str = ""
    supply_voltage: float = 0.0
    i2c_address: int = I2C_ADDRESS_UNSET
    device_name: str = DEFAULT_NAME
    baud_rate: int = DEFAULT_BAUDRATE
    transport_is_serial: bool = True

    @property
    def identified(self) -> bool:
        return bool(self.probe_type)

    @property
    def measurement(self) -> float | None:
        """The primary reading for the identified probe type."""
        if self.probe_type == PROBE_PH:
            return self.current_ph
        if self.probe_type == PROBE_ORP:
            return self.current_orp
        if self.probe_type == PROBE_EC:
            return self.current_ec
        return None

    def copy(self) -> PropertySnapshot:
        return replace(self)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["calibration_state"] = self.calibration_state.name.lower()
        data["reset_reason"] = RESET_CODES.get(self.reset_code, "")
        return data
