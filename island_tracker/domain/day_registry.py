# island_tracker/domain/day_registry.py
"""
Ordered day slots of one challenge.

Days are kept as a tuple sorted by day_number. Every function returns a new
tuple; nothing here mutates its input.
"""
from __future__ import annotations

import datetime as dt
import uuid
from typing import Callable, Dict, FrozenSet, Tuple

from island_tracker.domain.entities import ChallengeDay, DayStatus
from island_tracker.domain.errors import InvalidTransition, NotFound

DAY = dt.timedelta(days=1)

ALLOWED_TRANSITIONS: Dict[DayStatus, FrozenSet[DayStatus]] = {
    DayStatus.pending: frozenset({DayStatus.completed, DayStatus.missed}),
    DayStatus.missed: frozenset({DayStatus.compensated}),
    DayStatus.completed: frozenset(),
    DayStatus.compensated: frozenset(),
}

Days = Tuple[ChallengeDay, ...]


def new_id() -> str:
    return uuid.uuid4().hex


def build_days(
    challenge_id: str,
    first_date: dt.datetime,
    count: int,
    *,
    first_number: int = 1,
    is_extension_day: bool = False,
    id_factory: Callable[[], str] = new_id,
) -> Days:
    return tuple(
        ChallengeDay(
            id=id_factory(),
            challenge_id=challenge_id,
            day_number=first_number + i,
            date=first_date + i * DAY,
            is_extension_day=is_extension_day,
        )
        for i in range(count)
    )


def find_by_number(days: Days, day_number: int) -> ChallengeDay:
    for day in days:
        if day.day_number == day_number:
            return day
    raise NotFound(f"day {day_number} not found")


def find_by_id(days: Days, day_id: str) -> ChallengeDay:
    for day in days:
        if day.id == day_id:
            return day
    raise NotFound(f"day {day_id} not found")


def append_makeup(
    days: Days,
    challenge_id: str,
    count: int,
    *,
    id_factory: Callable[[], str] = new_id,
) -> Days:
    """Append `count` pending extension slots after the current last slot."""
    if count < 1:
        raise ValueError("count must be at least 1")
    if not days:
        raise ValueError("cannot extend a challenge without days")

    last = days[-1]
    extra = build_days(
        challenge_id,
        last.date + DAY,
        count,
        first_number=len(days) + 1,
        is_extension_day=True,
        id_factory=id_factory,
    )
    return days + extra


def check_transition(day: ChallengeDay, target: DayStatus) -> None:
    if target not in ALLOWED_TRANSITIONS[day.status]:
        raise InvalidTransition(
            f"day {day.day_number} cannot go from {day.status.value} to {target.value}",
            current=day.status.value,
            target=target.value,
        )


def transition(day: ChallengeDay, target: DayStatus, **changes) -> ChallengeDay:
    check_transition(day, target)
    return day.model_copy(update={"status": target, **changes})


def replace_day(days: Days, updated: ChallengeDay) -> Days:
    return tuple(updated if d.id == updated.id else d for d in days)


def set_status(
    days: Days,
    day_id: str,
    target: DayStatus,
    **changes,
) -> Tuple[Days, ChallengeDay]:
    day = find_by_id(days, day_id)
    updated = transition(day, target, **changes)
    return replace_day(days, updated), updated
