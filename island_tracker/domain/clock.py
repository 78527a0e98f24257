# island_tracker/domain/clock.py
from __future__ import annotations

import datetime as dt
from typing import Protocol

from island_tracker.domain.timezone import UTC, as_utc


class Clock(Protocol):
    def now(self) -> dt.datetime:
        ...


class SystemClock:
    def now(self) -> dt.datetime:
        return dt.datetime.now(UTC)


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, current: dt.datetime):
        self.current = as_utc(current)

    def now(self) -> dt.datetime:
        return self.current

    def set(self, current: dt.datetime) -> None:
        self.current = as_utc(current)

    def advance(self, **delta) -> dt.datetime:
        self.current = self.current + dt.timedelta(**delta)
        return self.current
