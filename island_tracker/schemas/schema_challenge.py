# island_tracker/schemas/schema_challenge.py
import datetime as dt
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from island_tracker.domain.entities import Challenge, ChallengeStatus, DayStatus


class CreateChallengeReq(BaseModel):
    title: str = Field(min_length=1, max_length=100)
    description: str = ""
    execution_details: str = ""
    start_date: Optional[dt.datetime] = None


class CompleteDayReq(BaseModel):
    note: str = ""
    proof_files: List[str] = Field(default_factory=list, description="opaque attachment references")


class AddMakeupReq(BaseModel):
    count: int = Field(default=1, ge=1, le=30)


class CompensateReq(BaseModel):
    makeup_day_id: str = Field(min_length=1)


class DayItem(BaseModel):
    id: str
    day_number: int
    date: dt.datetime
    status: DayStatus
    note: str
    proof_files: List[str]
    completed_at: Optional[dt.datetime] = None
    is_extension_day: bool
    compensates_day: Optional[str] = None


class ProgressItem(BaseModel):
    total_days: int
    resolved: int
    missed: int
    pending: int
    completion_percentage: float


class ChallengeItem(BaseModel):
    id: str
    title: str
    description: str
    execution_details: str
    start_date: dt.datetime
    end_date: dt.datetime
    status: ChallengeStatus
    total_days: int
    missed_days: List[str]
    compensated_days: Dict[str, str]
    created_at: dt.datetime
    completed_at: Optional[dt.datetime] = None
    progress: ProgressItem
    days: List[DayItem]


def to_progress_item(challenge: Challenge) -> ProgressItem:
    p = challenge.progress()
    return ProgressItem(
        total_days=p.total_days,
        resolved=p.resolved,
        missed=p.missed,
        pending=p.pending,
        completion_percentage=p.completion_percentage,
    )


def to_challenge_item(challenge: Challenge) -> ChallengeItem:
    return ChallengeItem(
        id=challenge.id,
        title=challenge.title,
        description=challenge.description,
        execution_details=challenge.execution_details,
        start_date=challenge.start_date,
        end_date=challenge.end_date,
        status=challenge.status,
        total_days=challenge.total_days,
        missed_days=list(challenge.missed_days),
        compensated_days=dict(challenge.compensated_days),
        created_at=challenge.created_at,
        completed_at=challenge.completed_at,
        progress=to_progress_item(challenge),
        days=[DayItem.model_validate(d.model_dump()) for d in challenge.days],
    )
