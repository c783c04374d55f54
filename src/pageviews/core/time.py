"""UTC discipline helpers.

All instants handled by the engine are timezone-aware UTC datetimes:
- parsing accepts ISO-8601 with ``Z`` or explicit offsets
- naive datetimes are assumed to already be UTC
- persisted timestamps use a fixed-width form so text order equals time order
"""

from __future__ import annotations

from datetime import datetime, timezone

__all__ = [
    "describe_relative",
    "ensure_utc",
    "format_utc_iso8601",
    "format_utc_millis",
    "format_utc_sortable",
    "get_current_utc",
    "parse_utc_iso8601",
]


def get_current_utc() -> datetime:
    """Get current time in UTC.

    Returns
    -------
    datetime
        Current time in UTC with timezone info
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Return ``dt`` as an aware UTC datetime.

    Parameters
    ----------
    dt
        Datetime (naive values are assumed to be UTC)

    Returns
    -------
    datetime
        Datetime in UTC
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_utc_iso8601(dt: datetime) -> str:
    """Format datetime as ISO-8601 UTC string.

    Parameters
    ----------
    dt
        Datetime to format (with or without timezone)

    Returns
    -------
    str
        ISO-8601 UTC string (e.g., "2025-10-08T12:30:00+00:00")

    Example
    -------
    >>> from datetime import datetime, timezone
    >>> format_utc_iso8601(datetime(2025, 10, 8, 12, 30, tzinfo=timezone.utc))
    '2025-10-08T12:30:00+00:00'
    """
    return ensure_utc(dt).isoformat()


def format_utc_millis(dt: datetime) -> str:
    """Format datetime as a millisecond-precision ``Z`` string.

    Example
    -------
    >>> from datetime import datetime, timezone
    >>> format_utc_millis(datetime(2024, 3, 1, 16, 0, tzinfo=timezone.utc))
    '2024-03-01T16:00:00.000Z'
    """
    dt = ensure_utc(dt)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def format_utc_sortable(dt: datetime) -> str:
    """Format datetime for persistence.

    Always carries microseconds and the ``+00:00`` offset, so two stored
    values compare lexically in the same order as the instants they encode.
    """
    return ensure_utc(dt).isoformat(timespec="microseconds")


def parse_utc_iso8601(iso_string: str) -> datetime:
    """Parse ISO-8601 string to UTC datetime.

    Parameters
    ----------
    iso_string
        ISO-8601 formatted string

    Returns
    -------
    datetime
        Datetime in UTC

    Raises
    ------
    ValueError
        If string is not valid ISO-8601

    Example
    -------
    >>> parse_utc_iso8601("2025-10-08T14:30:00+02:00").hour
    12
    """
    if not isinstance(iso_string, str):
        raise ValueError(f"Expected ISO-8601 string, got {type(iso_string).__name__}")

    # Handle 'Z' suffix (Zulu time = UTC)
    iso_string = iso_string.strip().replace("Z", "+00:00")

    return ensure_utc(datetime.fromisoformat(iso_string))


def describe_relative(instant: datetime, now: datetime | None = None) -> str:
    """Describe how long ago ``instant`` was, e.g. ``"2h ago"``.

    Parameters
    ----------
    instant
        Past instant
    now
        Reference instant (default: current UTC time)

    Returns
    -------
    str
        ``"Just now"``, ``"Nm ago"``, ``"Nh ago"`` or ``"Nd ago"``
    """
    if now is None:
        now = get_current_utc()

    minutes = int((ensure_utc(now) - ensure_utc(instant)).total_seconds() // 60)

    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if minutes < 1440:
        return f"{minutes // 60}h ago"
    return f"{minutes // 1440}d ago"
