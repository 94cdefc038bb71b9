"""Serial transport to EZO stamps."""

from .serial_connection import SerialConnection, list_serial_ports
