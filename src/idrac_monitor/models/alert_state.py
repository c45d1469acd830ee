"""Persistent alert state record."""

from dataclasses import asdict, dataclass, fields
from datetime import datetime
from typing import Any, Dict, Optional, Union

from .enums import UNKNOWN_STATUS, Severity

STATE_SCHEMA_VERSION = "1.0"

_DATETIME_FIELDS = ("last_alert_time", "warning_entered_at", "critical_entered_at")
_SEVERITY_FIELDS = ("last_alert_status", "persistent_alerted")


@dataclass(frozen=True)
class AlertState:
    """Process-wide alert bookkeeping, persisted between invocations.

    Instances are immutable; the alert engine returns a new state for every
    transition and the caller decides what gets written to disk.
    """

    last_status: Union[Severity, str] = UNKNOWN_STATUS
    last_alert_status: Optional[Severity] = None
    last_alert_time: Optional[datetime] = None
    warning_entered_at: Optional[datetime] = None
    critical_entered_at: Optional[datetime] = None
    persistent_alerted: Optional[Severity] = None
    last_hourly_digest_hour: Optional[int] = None
    schema_version: str = STATE_SCHEMA_VERSION

    def entered_at(self, status: Severity) -> Optional[datetime]:
        """When the current run of ``status`` began, for abnormal statuses."""
        if status is Severity.WARNING:
            return self.warning_entered_at
        if status is Severity.CRITICAL:
            return self.critical_entered_at
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a flat JSON-compatible dict."""
        data = asdict(self)
        for name in _DATETIME_FIELDS:
            if data[name] is not None:
                data[name] = data[name].isoformat()
        for name in _SEVERITY_FIELDS:
            if data[name] is not None:
                data[name] = data[name].value
        if isinstance(data["last_status"], Severity):
            data["last_status"] = data["last_status"].value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AlertState":
        """Build a state from a persisted dict.

        Unknown keys are ignored and missing keys take their defaults.

        Raises:
            ValueError: If a field holds a value of the wrong shape
        """
        known = {f.name for f in fields(cls)}
        values: Dict[str, Any] = {k: v for k, v in data.items() if k in known}

        for name in _DATETIME_FIELDS:
            raw = values.get(name)
            if raw is not None:
                parsed = datetime.fromisoformat(raw)
                if parsed.tzinfo is None:
                    raise ValueError(f"{name} is not timezone-aware")
                values[name] = parsed

        for name in _SEVERITY_FIELDS:
            if values.get(name) is not None:
                values[name] = Severity(values[name])

        last_status = values.get("last_status", UNKNOWN_STATUS)
        values["last_status"] = (
            UNKNOWN_STATUS if last_status in (None, UNKNOWN_STATUS) else Severity(last_status)
        )

        hour = values.get("last_hourly_digest_hour")
        if hour is not None:
            if isinstance(hour, bool) or not isinstance(hour, int) or not 0 <= hour <= 23:
                raise ValueError(f"last_hourly_digest_hour out of range: {hour!r}")

        return cls(**values)
