# island_tracker/routers/challenge.py
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from island_tracker.auth.dependencies import get_challenge_manager
from island_tracker.domain.entities import ChallengeStatus
from island_tracker.schemas.schema_challenge import (
    AddMakeupReq,
    ChallengeItem,
    CompensateReq,
    CompleteDayReq,
    CreateChallengeReq,
    ProgressItem,
    to_challenge_item,
    to_progress_item,
)
from island_tracker.services.challenge_manager import ChallengeManager

router = APIRouter(prefix="/challenges", tags=["challenges"])


# --------------------- collection ---------------------
@router.get("", response_model=List[ChallengeItem])
def list_challenges(
    status_filter: Optional[ChallengeStatus] = Query(None, alias="status"),
    manager: ChallengeManager = Depends(get_challenge_manager),
):
    """
    Opening the dashboard starts a session: every active challenge is
    checked for missed days before the list is returned.
    - status: active | completed | failed | archived (all if omitted)
    """
    challenges = manager.initialize_session()
    if status_filter is not None:
        challenges = [c for c in challenges if c.status == status_filter]
    return [to_challenge_item(c) for c in challenges]


@router.post("", response_model=ChallengeItem, status_code=status.HTTP_201_CREATED)
def create_challenge(
    body: CreateChallengeReq,
    manager: ChallengeManager = Depends(get_challenge_manager),
):
    challenge = manager.create_challenge(
        body.title,
        body.description,
        body.execution_details,
        start_date=body.start_date,
    )
    return to_challenge_item(challenge)


@router.get("/{challenge_id}", response_model=ChallengeItem)
def get_challenge(
    challenge_id: str,
    manager: ChallengeManager = Depends(get_challenge_manager),
):
    return to_challenge_item(manager.get_challenge(challenge_id))


@router.get("/{challenge_id}/progress", response_model=ProgressItem)
def get_progress(
    challenge_id: str,
    manager: ChallengeManager = Depends(get_challenge_manager),
):
    return to_progress_item(manager.get_challenge(challenge_id))


# --------------------- days ---------------------
@router.post("/{challenge_id}/days/{day_number}/complete", response_model=ChallengeItem)
def complete_day(
    challenge_id: str,
    day_number: int,
    body: CompleteDayReq,
    manager: ChallengeManager = Depends(get_challenge_manager),
):
    """
    pending -> completed. A missed day cannot be completed (409);
    it is resolved through a make-up day instead.
    """
    challenge = manager.complete_day(challenge_id, day_number, body.note, body.proof_files)
    return to_challenge_item(challenge)


@router.post("/{challenge_id}/detect-missed", response_model=ChallengeItem)
def detect_missed(
    challenge_id: str,
    manager: ChallengeManager = Depends(get_challenge_manager),
):
    """Runs against the server clock."""
    return to_challenge_item(manager.detect_missed(challenge_id))


@router.post("/{challenge_id}/makeup-days", response_model=ChallengeItem)
def add_makeup_days(
    challenge_id: str,
    body: AddMakeupReq,
    manager: ChallengeManager = Depends(get_challenge_manager),
):
    return to_challenge_item(manager.add_makeup_slots(challenge_id, body.count))


@router.post("/{challenge_id}/compensate", response_model=ChallengeItem)
def compensate(
    challenge_id: str,
    body: CompensateReq,
    manager: ChallengeManager = Depends(get_challenge_manager),
):
    """Always resolves the oldest missed day, whatever make-up day is given."""
    return to_challenge_item(manager.compensate(challenge_id, body.makeup_day_id))


# --------------------- lifecycle ---------------------
@router.post("/{challenge_id}/fail", response_model=ChallengeItem)
def fail_challenge(
    challenge_id: str,
    manager: ChallengeManager = Depends(get_challenge_manager),
):
    return to_challenge_item(manager.fail_challenge(challenge_id))


@router.post("/{challenge_id}/restart", response_model=ChallengeItem, status_code=status.HTTP_201_CREATED)
def restart_challenge(
    challenge_id: str,
    manager: ChallengeManager = Depends(get_challenge_manager),
):
    """Archives the challenge and returns the new 30-day cycle."""
    return to_challenge_item(manager.restart_challenge(challenge_id))
