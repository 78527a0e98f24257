# island_tracker/domain/lifecycle.py
"""
Challenge lifecycle transitions.

Each function takes a Challenge value and returns a Transition holding the
new value and the events it raised. Inputs are never modified, so a caller
that fails to persist the result still holds the previous state.

Challenge states:
    active -> completed | failed | archived   (all terminal)
Day states:
    pending -> completed | missed,  missed -> compensated
"""
from __future__ import annotations

import datetime as dt
import enum
from typing import Callable, Iterable, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from island_tracker.domain import day_registry, ledger
from island_tracker.domain.day_registry import DAY, new_id
from island_tracker.domain.entities import Challenge, ChallengeStatus, DayStatus
from island_tracker.domain.errors import InvalidTransition
from island_tracker.domain.timezone import as_utc, has_crossed_midnight

DEFAULT_LENGTH_DAYS = 30


class EventKind(str, enum.Enum):
    day_completed = "day_completed"
    day_compensated = "day_compensated"
    days_missed = "days_missed"
    challenge_completed = "challenge_completed"
    challenge_failed = "challenge_failed"
    challenge_archived = "challenge_archived"


class LifecycleEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: EventKind
    challenge_id: str
    day_number: Optional[int] = None
    count: int = 1


class Transition(BaseModel):
    model_config = ConfigDict(frozen=True)

    challenge: Challenge
    events: Tuple[LifecycleEvent, ...] = ()
    changed: bool = True

    def then(self, step: Callable[[Challenge], "Transition"]) -> "Transition":
        nxt = step(self.challenge)
        return Transition(
            challenge=nxt.challenge,
            events=self.events + nxt.events,
            changed=self.changed or nxt.changed,
        )


def _unchanged(challenge: Challenge) -> Transition:
    return Transition(challenge=challenge, changed=False)


def _require_active(challenge: Challenge, action: str) -> None:
    if challenge.status != ChallengeStatus.active:
        raise InvalidTransition(
            f"cannot {action}: challenge {challenge.id} is {challenge.status.value}",
            current=challenge.status.value,
        )


# --------------------- creation ---------------------
def new_challenge(
    *,
    user_id: str,
    title: str,
    description: str,
    execution_details: str,
    start_date: dt.datetime,
    now: dt.datetime,
    length_days: int = DEFAULT_LENGTH_DAYS,
    id_factory: Callable[[], str] = new_id,
) -> Challenge:
    if length_days < 1:
        raise ValueError("a challenge needs at least one day")

    start = as_utc(start_date)
    challenge_id = id_factory()
    days = day_registry.build_days(challenge_id, start, length_days, id_factory=id_factory)
    return Challenge(
        id=challenge_id,
        user_id=user_id,
        title=title,
        description=description,
        execution_details=execution_details,
        start_date=start,
        end_date=start + (length_days - 1) * DAY,
        status=ChallengeStatus.active,
        days=days,
        total_days=length_days,
        missed_days=(),
        compensated_days={},
        created_at=as_utc(now),
    )


# --------------------- day operations ---------------------
def complete_day(
    challenge: Challenge,
    day_number: int,
    *,
    note: str,
    proof_files: Iterable[str],
    now: dt.datetime,
) -> Transition:
    _require_active(challenge, "complete a day")
    day = day_registry.find_by_number(challenge.days, day_number)
    days, _ = day_registry.set_status(
        challenge.days,
        day.id,
        DayStatus.completed,
        note=note,
        proof_files=tuple(proof_files),
        completed_at=as_utc(now),
    )
    updated = challenge.model_copy(update={"days": days})
    event = LifecycleEvent(kind=EventKind.day_completed, challenge_id=challenge.id, day_number=day_number)
    return Transition(challenge=updated, events=(event,))


def detect_missed(challenge: Challenge, now: dt.datetime, timezone: str) -> Transition:
    """
    Marks every overdue pending day as missed and queues it in the ledger.
    A day is overdue once `now` is past its instant and on a later civil date
    in `timezone`. Calling this again with the same `now` changes nothing.
    """
    if challenge.status != ChallengeStatus.active:
        return _unchanged(challenge)

    now = as_utc(now)
    days = challenge.days
    missed = challenge.missed_days
    newly_missed = []

    for day in challenge.days:
        if day.status != DayStatus.pending:
            continue
        if as_utc(day.date) >= now:
            continue
        if not has_crossed_midnight(day.date, now, timezone):
            continue
        days, updated = day_registry.set_status(days, day.id, DayStatus.missed)
        missed = ledger.enqueue(missed, updated.id)
        newly_missed.append(updated)

    if not newly_missed:
        return _unchanged(challenge)

    updated = challenge.model_copy(update={"days": days, "missed_days": missed})
    events = tuple(
        LifecycleEvent(kind=EventKind.days_missed, challenge_id=challenge.id, day_number=d.day_number)
        for d in newly_missed
    )
    return Transition(challenge=updated, events=events)


def compensate(challenge: Challenge, makeup_day_id: str) -> Transition:
    """
    Resolves the oldest missed day with `makeup_day_id`.
    The make-up day keeps whatever status it has; it is completed through
    its own complete_day call.
    """
    _require_active(challenge, "compensate")
    day_registry.find_by_id(challenge.days, makeup_day_id)

    remaining, compensations, missed_id = ledger.resolve_head(
        challenge.missed_days, challenge.compensated_days, makeup_day_id
    )
    days, resolved = day_registry.set_status(
        challenge.days,
        missed_id,
        DayStatus.compensated,
        compensates_day=makeup_day_id,
    )
    updated = challenge.model_copy(
        update={"days": days, "missed_days": remaining, "compensated_days": compensations}
    )
    event = LifecycleEvent(
        kind=EventKind.day_compensated, challenge_id=challenge.id, day_number=resolved.day_number
    )
    return Transition(challenge=updated, events=(event,))


def add_makeup_slots(
    challenge: Challenge,
    count: int,
    *,
    id_factory: Callable[[], str] = new_id,
) -> Transition:
    _require_active(challenge, "add make-up days")
    days = day_registry.append_makeup(challenge.days, challenge.id, count, id_factory=id_factory)
    updated = challenge.model_copy(
        update={
            "days": days,
            "total_days": challenge.total_days + count,
            "end_date": days[-1].date,
        }
    )
    # Growth only; no event and no completion check
    return Transition(challenge=updated, events=())


# --------------------- challenge operations ---------------------
def evaluate_completion(challenge: Challenge, now: dt.datetime) -> Transition:
    if challenge.status != ChallengeStatus.active:
        return _unchanged(challenge)
    if challenge.resolved_count() != challenge.total_days:
        return _unchanged(challenge)

    updated = challenge.model_copy(
        update={"status": ChallengeStatus.completed, "completed_at": as_utc(now)}
    )
    event = LifecycleEvent(kind=EventKind.challenge_completed, challenge_id=challenge.id)
    return Transition(challenge=updated, events=(event,))


def fail(challenge: Challenge) -> Transition:
    _require_active(challenge, "fail")
    updated = challenge.model_copy(update={"status": ChallengeStatus.failed})
    event = LifecycleEvent(kind=EventKind.challenge_failed, challenge_id=challenge.id)
    return Transition(challenge=updated, events=(event,))


def missed_makeup_days(challenge: Challenge, events: Iterable[LifecycleEvent]) -> list:
    """Extension days among the days reported missed by `events`."""
    numbers = {e.day_number for e in events if e.kind == EventKind.days_missed}
    return [d for d in challenge.days if d.day_number in numbers and d.is_extension_day]


def archive(challenge: Challenge) -> Transition:
    """
    Freezes an active challenge ahead of a restart.
    A failed challenge is already terminal and is returned unchanged.
    """
    if challenge.status == ChallengeStatus.failed:
        return _unchanged(challenge)
    _require_active(challenge, "restart")
    updated = challenge.model_copy(update={"status": ChallengeStatus.archived})
    event = LifecycleEvent(kind=EventKind.challenge_archived, challenge_id=challenge.id)
    return Transition(challenge=updated, events=(event,))


def restart(
    challenge: Challenge,
    now: dt.datetime,
    *,
    length_days: int = DEFAULT_LENGTH_DAYS,
    id_factory: Callable[[], str] = new_id,
) -> Tuple[Transition, Challenge]:
    """Returns (transition of the old challenge, fresh challenge starting at `now`)."""
    old = archive(challenge)
    fresh = new_challenge(
        user_id=challenge.user_id,
        title=challenge.title,
        description=challenge.description,
        execution_details=challenge.execution_details,
        start_date=now,
        now=now,
        length_days=length_days,
        id_factory=id_factory,
    )
    return old, fresh
