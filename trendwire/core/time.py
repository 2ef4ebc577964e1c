"""Time and timezone utilities for trending windows and cache gates."""

from datetime import datetime, timezone, timedelta
from typing import Union

import pytz


def normalize_timezone(dt: datetime, target_tz: timezone = timezone.utc) -> datetime:
    """
    Normalize datetime to target timezone.

    Args:
        dt: Input datetime
        target_tz: Target timezone (default UTC)

    Returns:
        Datetime in target timezone
    """
    if dt.tzinfo is None:
        # Assume UTC if no timezone
        dt = dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(target_tz)


def get_current_utc_time() -> datetime:
    """Get current time in UTC."""
    return datetime.now(timezone.utc)


def local_midnight(now: datetime, tz_name: str) -> datetime:
    """
    Return the most recent local midnight for ``now`` as a UTC datetime.

    Args:
        now: Reference moment (naive values are taken as UTC)
        tz_name: IANA timezone name, e.g. "Europe/Amsterdam"
    """
    tz = pytz.timezone(tz_name)
    local_now = normalize_timezone(now).astimezone(tz)
    midnight = tz.localize(datetime(local_now.year, local_now.month, local_now.day))
    return midnight.astimezone(timezone.utc)


def window_start(now: datetime, hours: Union[int, float]) -> datetime:
    """Start of the sliding window of ``hours`` ending at ``now`` (UTC)."""
    return normalize_timezone(now) - timedelta(hours=hours)


def to_iso(dt: datetime) -> str:
    """Serialize a datetime as an ISO 8601 UTC string."""
    return normalize_timezone(dt).isoformat()


def from_iso(value: str) -> datetime:
    """Parse an ISO 8601 string produced by ``to_iso``; naive values are taken as UTC."""
    if value.endswith('Z'):
        value = value[:-1] + '+00:00'
    return normalize_timezone(datetime.fromisoformat(value))
