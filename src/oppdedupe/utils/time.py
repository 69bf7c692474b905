"""Time utilities for UTC timestamps and date-only deadlines."""

from datetime import date, datetime, timezone
from typing import Union


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def utc_now_z() -> str:
    """
    Get current UTC time as ISO 8601 string with Z suffix.

    Returns:
        ISO 8601 UTC timestamp ending with 'Z' (e.g., '2025-12-23T00:27:07.804867Z')
    """
    return to_utc_z(utc_now())


def ensure_aware(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_utc_z(dt: datetime) -> str:
    """
    Convert datetime to ISO 8601 UTC string with Z suffix.

    Microseconds are always written so that stored strings sort chronologically.

    Args:
        dt: Datetime object (must be timezone-aware)

    Raises:
        ValueError: If datetime is naive (not timezone-aware)

    Example:
        >>> to_utc_z(datetime(2024, 12, 31, tzinfo=timezone.utc))
        '2024-12-31T00:00:00.000000Z'
    """
    if dt.tzinfo is None:
        raise ValueError(
            f"Naive datetime not allowed. Got {dt}. "
            "Use datetime.now(timezone.utc) or dt.replace(tzinfo=timezone.utc)"
        )

    dt_utc = dt.astimezone(timezone.utc)
    return dt_utc.isoformat(timespec="microseconds").replace("+00:00", "Z")


def parse_utc(value: Union[str, datetime]) -> datetime:
    """Parse an ISO 8601 string (with or without 'Z') into an aware UTC datetime."""
    if isinstance(value, datetime):
        return ensure_aware(value)
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_aware(datetime.fromisoformat(text))


def to_date(value: Union[str, date, datetime]) -> date:
    """
    Coerce a deadline value to a date, dropping time-of-day and timezone.

    '2024-12-31', '2024-12-31T00:00:00Z' and datetime(2024, 12, 31, 18, 30)
    all yield date(2024, 12, 31). The calendar day is taken as written, not
    shifted into UTC.

    Raises:
        ValueError: If a string is not an ISO 8601 date or datetime
        TypeError: If the value is not a str, date or datetime
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if len(text) >= 10 and text[4:5] == "-" and text[7:8] == "-":
            return date.fromisoformat(text[:10])
        raise ValueError(f"Unrecognized date value: {value!r}")
    raise TypeError(f"Cannot convert {type(value).__name__} to date")
