# island_tracker/domain/entities.py
from __future__ import annotations

import datetime as dt
import enum
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from island_tracker.domain.errors import InvariantViolation


class DayStatus(str, enum.Enum):
    pending = "pending"
    completed = "completed"
    missed = "missed"
    compensated = "compensated"


class ChallengeStatus(str, enum.Enum):
    active = "active"
    completed = "completed"
    failed = "failed"
    archived = "archived"


RESOLVED_DAY_STATUSES = frozenset({DayStatus.completed, DayStatus.compensated})


class ChallengeDay(BaseModel):
    """
    One slot of a challenge.
    - day_number: 1-based, contiguous inside the challenge
    - date: nominal instant of the calendar day this slot covers (UTC)
    - compensates_day: set on a missed day once it is compensated,
      holds the id of the make-up day that resolved it
    """
    model_config = ConfigDict(frozen=True)

    id: str
    challenge_id: str
    day_number: int
    date: dt.datetime
    status: DayStatus = DayStatus.pending
    note: str = ""
    proof_files: Tuple[str, ...] = ()
    completed_at: Optional[dt.datetime] = None
    is_extension_day: bool = False
    compensates_day: Optional[str] = None


class ChallengeProgress(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_days: int
    resolved: int
    missed: int
    pending: int

    @property
    def completion_percentage(self) -> float:
        if self.total_days == 0:
            return 0.0
        return round(self.resolved / self.total_days * 100, 2)


class Challenge(BaseModel):
    """
    A challenge value. Never mutated in place: lifecycle functions return
    a new Challenge built with model_copy(update=...).
    """
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    title: str
    description: str = ""
    execution_details: str = ""
    start_date: dt.datetime
    end_date: dt.datetime
    status: ChallengeStatus = ChallengeStatus.active
    days: Tuple[ChallengeDay, ...] = ()
    total_days: int = 0
    missed_days: Tuple[str, ...] = ()
    compensated_days: Dict[str, str] = Field(default_factory=dict)
    created_at: dt.datetime
    completed_at: Optional[dt.datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == ChallengeStatus.active

    def day_by_number(self, day_number: int) -> Optional[ChallengeDay]:
        for day in self.days:
            if day.day_number == day_number:
                return day
        return None

    def day_by_id(self, day_id: str) -> Optional[ChallengeDay]:
        for day in self.days:
            if day.id == day_id:
                return day
        return None

    def resolved_count(self) -> int:
        return sum(1 for d in self.days if d.status in RESOLVED_DAY_STATUSES)

    def progress(self) -> ChallengeProgress:
        return ChallengeProgress(
            total_days=self.total_days,
            resolved=self.resolved_count(),
            missed=len(self.missed_days),
            pending=sum(1 for d in self.days if d.status == DayStatus.pending),
        )

    def check_invariants(self) -> None:
        if len(self.days) != self.total_days:
            raise InvariantViolation(
                f"challenge {self.id}: {len(self.days)} days but total_days={self.total_days}"
            )

        numbers = [d.day_number for d in self.days]
        if numbers != list(range(1, self.total_days + 1)):
            raise InvariantViolation(f"challenge {self.id}: day numbers are not 1..{self.total_days}")

        by_id = {d.id: d for d in self.days}
        if len(by_id) != len(self.days):
            raise InvariantViolation(f"challenge {self.id}: duplicate day ids")

        if len(set(self.missed_days)) != len(self.missed_days):
            raise InvariantViolation(f"challenge {self.id}: duplicate entries in missed ledger")
        for day_id in self.missed_days:
            day = by_id.get(day_id)
            if day is None or day.status != DayStatus.missed:
                raise InvariantViolation(f"challenge {self.id}: ledger entry {day_id} is not a missed day")

        for missed_id, makeup_id in self.compensated_days.items():
            day = by_id.get(missed_id)
            if day is None or day.status != DayStatus.compensated:
                raise InvariantViolation(f"challenge {self.id}: {missed_id} is not a compensated day")
            if makeup_id not in by_id:
                raise InvariantViolation(f"challenge {self.id}: unknown make-up day {makeup_id}")
        if len(set(self.compensated_days.values())) != len(self.compensated_days):
            raise InvariantViolation(f"challenge {self.id}: a make-up day compensates more than one day")
