"""UTC time handling for stored timestamps and cache TTLs.

Every timestamp written to Postgres or mirrored into the cache is UTC and
timezone-aware. Naive datetimes are rejected rather than guessed at.
"""

from datetime import datetime, timezone


def now_utc() -> datetime:
    """Current time in UTC. Use this instead of datetime.now()."""
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    Convert an aware datetime to UTC.

    Raises ValueError if datetime is naive (no timezone).
    """
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot convert naive datetime to UTC. Datetime must be timezone-aware."
        )
    return dt.astimezone(timezone.utc)


def parse_iso(iso_string: str) -> datetime:
    """
    Parse an ISO 8601 string, as written into cache records, to UTC.

    Raises ValueError if string has no timezone info.
    """
    dt = datetime.fromisoformat(iso_string)
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot parse naive datetime string. "
            "Include timezone offset (e.g., 'Z' or '+00:00')."
        )
    return to_utc(dt)


def seconds_until(moment: datetime, now: datetime | None = None) -> int:
    """
    Whole seconds from now until moment, never negative.

    Used to derive cache TTLs from stored expiry timestamps.
    """
    now = now or now_utc()
    return max(int((moment - now).total_seconds()), 0)
