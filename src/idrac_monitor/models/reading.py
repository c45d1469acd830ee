"""Reading and log record models."""

from datetime import datetime, tzinfo
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from idrac_monitor.utils.timestamps import normalize_timestamp

from .enums import Severity

LOG_FIELD_SEPARATOR = ","


def _require_aware(v: datetime) -> datetime:
    if v.tzinfo is None:
        raise ValueError("timestamp must be timezone-aware")
    return v


class SensorReading(BaseModel):
    """Raw value returned by the sensor collaborator, before classification."""

    model_config = ConfigDict(frozen=True)

    value: float = Field(..., description="Corrected temperature in Celsius")
    timestamp: datetime = Field(..., description="When the value was sampled")
    sensor_name: Optional[str] = Field(default=None, description="Redfish sensor name")

    @field_validator("timestamp")
    @classmethod
    def timestamp_is_aware(cls, v: datetime) -> datetime:
        return _require_aware(v)


class Reading(BaseModel):
    """A classified temperature sample.

    Produced once per successful fetch (or external ingest) and handed by
    value to the log store, the trend cache and the alert engine.
    """

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(..., description="When the value was sampled")
    value: float = Field(..., description="Temperature in Celsius")
    status: Severity = Field(..., description="Classification against thresholds")
    source: Optional[str] = Field(default=None, description="Origin tag (poll, ingest IP, ...)")

    @field_validator("timestamp")
    @classmethod
    def timestamp_is_aware(cls, v: datetime) -> datetime:
        """Reject naive datetimes so hour bucketing is unambiguous."""
        return _require_aware(v)

    def to_log_record(self) -> "LogRecord":
        return LogRecord(
            timestamp=self.timestamp,
            value=self.value,
            status=self.status,
            source=self.source,
        )


class LogRecord(BaseModel):
    """One line of the append-only temperature log.

    Line format: ``timestamp,value,status[,source]`` with an ISO 8601
    timestamp (seconds precision, with offset) and the value rounded to one
    decimal place.
    """

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    value: float
    status: Severity
    source: Optional[str] = None

    @field_validator("source")
    @classmethod
    def sanitize_source(cls, v: Optional[str]) -> Optional[str]:
        """Strip separators and line breaks so a tag cannot split a record."""
        if v is None:
            return None
        cleaned = " ".join(v.replace(LOG_FIELD_SEPARATOR, " ").split())
        return cleaned or None

    def to_line(self, tz: Optional[tzinfo] = None) -> str:
        """Encode as a single log line, without the trailing newline.

        Args:
            tz: Zone used to render the timestamp (default: as stored)
        """
        ts = self.timestamp.astimezone(tz) if tz is not None else self.timestamp
        fields = [
            ts.isoformat(timespec="seconds"),
            f"{self.value:.1f}",
            self.status.value,
        ]
        if self.source:
            fields.append(self.source)
        return LOG_FIELD_SEPARATOR.join(fields)

    @classmethod
    def from_line(cls, line: str, default_tz: Optional[tzinfo] = None) -> "LogRecord":
        """Parse one log line.

        Accepts both the current ISO format and the legacy
        ``YYYY-MM-DD HH:MM:SS`` form, which is read in ``default_tz``.

        Raises:
            ValueError: If the line is not a well-formed record
        """
        parts = line.rstrip("\r\n").split(LOG_FIELD_SEPARATOR)
        if len(parts) not in (3, 4):
            raise ValueError(f"Expected 3 or 4 fields, got {len(parts)}")

        timestamp = normalize_timestamp(parts[0].strip(), default_tz=default_tz)
        value = float(parts[1])
        status = Severity(parts[2].strip())
        source = parts[3].strip() if len(parts) == 4 else None

        return cls(timestamp=timestamp, value=value, status=status, source=source)
