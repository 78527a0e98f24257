# island_tracker/domain/timezone.py
from __future__ import annotations

import datetime as dt
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from island_tracker.domain.errors import InvalidTimezone

UTC = dt.timezone.utc


@lru_cache(maxsize=128)
def resolve_timezone(name: str) -> ZoneInfo:
    if not name:
        raise InvalidTimezone("empty timezone identifier")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidTimezone(f"unknown timezone: {name}") from e


def as_utc(instant: dt.datetime) -> dt.datetime:
    # naive datetimes (e.g. read back from SQLite) are taken as UTC
    if instant.tzinfo is None:
        return instant.replace(tzinfo=UTC)
    return instant.astimezone(UTC)


def civil_date(instant: dt.datetime, timezone: str) -> dt.date:
    """Calendar date of `instant` as observed in `timezone`."""
    return as_utc(instant).astimezone(resolve_timezone(timezone)).date()


def has_crossed_midnight(reference: dt.datetime, now: dt.datetime, timezone: str) -> bool:
    """
    True when the two instants fall on different civil dates in `timezone`.
    This compares calendar dates, not elapsed time:
    23:59 -> 00:00:01 the next day is crossed, 00:10 -> 20:10 the same day is not.
    """
    return civil_date(reference, timezone) != civil_date(now, timezone)


def day_start_utc(instant: dt.datetime, timezone: str) -> dt.datetime:
    """UTC instant of local midnight for the civil day containing `instant`."""
    tz = resolve_timezone(timezone)
    local_day = as_utc(instant).astimezone(tz).date()
    local_midnight = dt.datetime.combine(local_day, dt.time.min, tzinfo=tz)
    return local_midnight.astimezone(UTC)
