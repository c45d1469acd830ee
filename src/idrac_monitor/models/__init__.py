"""Data models for iDRAC Monitor."""

from .alert_state import STATE_SCHEMA_VERSION, AlertState
from .enums import UNKNOWN_STATUS, AlertKind, MessageKind, Severity
from .reading import LogRecord, Reading, SensorReading
from .trend import AggregateBucket

__all__ = [
    "AggregateBucket",
    "AlertKind",
    "AlertState",
    "LogRecord",
    "MessageKind",
    "Reading",
    "STATE_SCHEMA_VERSION",
    "SensorReading",
    "Severity",
    "UNKNOWN_STATUS",
]
