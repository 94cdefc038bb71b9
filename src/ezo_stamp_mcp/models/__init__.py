"""Data models for the EZO stamp property snapshot."""

from .snapshot import CalibrationState, PropertySnapshot
