"""Timestamp normalization utilities for readings and log lines."""

from datetime import datetime, timezone, tzinfo
from typing import Any, Optional
from zoneinfo import ZoneInfo

from dateutil import parser as dateutil_parser


def normalize_timestamp(
    value: Any,
    default_tz: Optional[tzinfo] = None,
) -> datetime:
    """Convert various timestamp formats to a UTC datetime.

    Handles:
    - int/float: Unix timestamp (auto-detects milliseconds vs seconds)
    - str: ISO format or other parseable formats via dateutil
    - datetime: Converted to UTC; naive values get ``default_tz``

    Args:
        value: Timestamp as int (ms or s), float, str, or datetime
        default_tz: Zone assumed for naive timestamps (default UTC)

    Returns:
        Timezone-aware datetime in UTC

    Raises:
        ValueError: If value cannot be parsed as a timestamp

    Example:
        >>> normalize_timestamp(1705084800000)  # milliseconds
        datetime.datetime(2024, 1, 12, 18, 40, tzinfo=datetime.timezone.utc)
        >>> normalize_timestamp("2024-01-12 20:00:00", ZoneInfo("Asia/Singapore"))
        datetime.datetime(2024, 1, 12, 12, 0, tzinfo=datetime.timezone.utc)
    """
    if isinstance(value, bool):
        raise ValueError(f"Cannot parse timestamp: {value!r} (type: bool)")

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)):
        # Timestamps > 1e12 are milliseconds (after year 2001)
        if value > 1e12:
            value = value / 1000
        return datetime.fromtimestamp(value, tz=timezone.utc)
    elif isinstance(value, str):
        try:
            dt = dateutil_parser.parse(value)
        except (ValueError, OverflowError) as e:
            raise ValueError(f"Cannot parse timestamp: {value!r}") from e
    else:
        raise ValueError(f"Cannot parse timestamp: {value!r} (type: {type(value).__name__})")

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=default_tz or timezone.utc)

    return dt.astimezone(timezone.utc)


def get_zone(name: str) -> ZoneInfo:
    """Resolve an IANA timezone name.

    Raises:
        ValueError: If the name is not a known zone
    """
    try:
        return ZoneInfo(name)
    except (KeyError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {name!r}") from e


def hour_of(moment: datetime, tz: tzinfo) -> int:
    """Hour of day (0-23) of an aware datetime in the given zone."""
    return moment.astimezone(tz).hour


def hour_key(moment: datetime, tz: tzinfo) -> str:
    """Hour bucket key ``YYYY-MM-DD HH`` of an aware datetime in the given zone."""
    return moment.astimezone(tz).strftime("%Y-%m-%d %H")
