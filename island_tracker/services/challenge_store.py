# island_tracker/services/challenge_store.py
"""
Persistence for challenge collections.

Both stores follow a whole-snapshot contract: load returns every challenge
of a user, save replaces every challenge of that user with the given list.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Protocol, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from island_tracker.domain.entities import Challenge, ChallengeDay
from island_tracker.domain.errors import PersistenceError
from island_tracker.domain.timezone import as_utc
from island_tracker.models.challenge import ChallengeDayRow, ChallengeRow
from island_tracker.models.users import User

logger = logging.getLogger(__name__)


class ChallengeStore(Protocol):
    def load_challenges(self, user_id: str) -> List[Challenge]:
        ...

    def save_challenges(self, user_id: str, challenges: Sequence[Challenge]) -> None:
        ...

    def owner_of(self, challenge_id: str) -> Optional[str]:
        ...


def _check_owner(user_id: str, challenges: Sequence[Challenge]) -> None:
    for c in challenges:
        if c.user_id != user_id:
            raise PersistenceError(f"challenge {c.id} does not belong to user being saved")


class InMemoryChallengeStore:
    """Keeps snapshots in a dict. Challenges are immutable values, so no copying is needed."""

    def __init__(self):
        self._by_user: Dict[str, List[Challenge]] = {}
        self.save_count = 0
        self.fail_next_save = False

    def load_challenges(self, user_id: str) -> List[Challenge]:
        return list(self._by_user.get(user_id, []))

    def save_challenges(self, user_id: str, challenges: Sequence[Challenge]) -> None:
        if self.fail_next_save:
            self.fail_next_save = False
            raise PersistenceError("snapshot write failed")
        _check_owner(user_id, challenges)
        self._by_user[user_id] = list(challenges)
        self.save_count += 1

    def owner_of(self, challenge_id: str) -> Optional[str]:
        for user_id, challenges in self._by_user.items():
            if any(c.id == challenge_id for c in challenges):
                return user_id
        return None


class SqlChallengeStore:
    """
    SQLAlchemy store. Takes a request-scoped Session like the other services.

    Several writers can hold the same user's snapshot (requests, the missed-day
    sweep). Each load remembers users.challenge_revision; a save only goes
    through if the revision is unchanged, otherwise PersistenceError is raised
    and nothing is written.
    """

    def __init__(self, db: Session):
        self.db = db
        self._revisions: Dict[str, int] = {}

    def load_challenges(self, user_id: str) -> List[Challenge]:
        try:
            # revision is read before the rows
            revision = self.db.execute(
                select(User.challenge_revision).where(User.user_id == user_id)
            ).scalar_one_or_none()
            rows = (
                self.db.execute(
                    select(ChallengeRow)
                    .options(selectinload(ChallengeRow.days))
                    .where(ChallengeRow.user_id == user_id)
                    .order_by(ChallengeRow.created_at.asc(), ChallengeRow.id.asc())
                )
                .scalars()
                .all()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"failed to load challenges: {e}") from e
        if revision is None:
            self._revisions.pop(user_id, None)
        else:
            self._revisions[user_id] = revision
        return [_row_to_challenge(row) for row in rows]

    def save_challenges(self, user_id: str, challenges: Sequence[Challenge]) -> None:
        _check_owner(user_id, challenges)
        expected = self._revisions.get(user_id)
        try:
            bump = (
                update(User)
                .where(User.user_id == user_id)
                .values(challenge_revision=User.challenge_revision + 1)
                .execution_options(synchronize_session=False)
            )
            if expected is not None:
                bump = bump.where(User.challenge_revision == expected)
            result = self.db.execute(bump)
            if expected is not None and result.rowcount == 0:
                self.db.rollback()
                logger.warning(
                    "[challenge_store] stale snapshot refused user=%s revision=%s",
                    user_id, expected,
                )
                raise PersistenceError("challenges changed since they were loaded; reload and retry")

            owned = select(ChallengeRow.id).where(ChallengeRow.user_id == user_id)
            self.db.execute(
                delete(ChallengeDayRow)
                .where(ChallengeDayRow.challenge_id.in_(owned))
                .execution_options(synchronize_session=False)
            )
            self.db.execute(
                delete(ChallengeRow)
                .where(ChallengeRow.user_id == user_id)
                .execution_options(synchronize_session=False)
            )
            # stale rows from load_challenges would clash with the re-inserted ids
            for obj in list(self.db.identity_map.values()):
                if isinstance(obj, (ChallengeRow, ChallengeDayRow)) and obj in self.db:
                    self.db.expunge(obj)

            self.db.add_all([_challenge_to_row(c) for c in challenges])
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("[challenge_store] snapshot write failed user=%s", user_id)
            raise PersistenceError(f"failed to save challenges: {e}") from e
        if expected is not None:
            self._revisions[user_id] = expected + 1

    def owner_of(self, challenge_id: str) -> Optional[str]:
        try:
            return self.db.execute(
                select(ChallengeRow.user_id).where(ChallengeRow.id == challenge_id)
            ).scalar_one_or_none()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"failed to look up challenge owner: {e}") from e


# --------------------- row mapping ---------------------
def _opt_utc(value):
    return as_utc(value) if value is not None else None


def _row_to_day(row: ChallengeDayRow) -> ChallengeDay:
    return ChallengeDay(
        id=row.id,
        challenge_id=row.challenge_id,
        day_number=row.day_number,
        date=as_utc(row.date),
        status=row.status,
        note=row.note or "",
        proof_files=tuple(row.proof_files or ()),
        completed_at=_opt_utc(row.completed_at),
        is_extension_day=bool(row.is_extension_day),
        compensates_day=row.compensates_day,
    )


def _row_to_challenge(row: ChallengeRow) -> Challenge:
    challenge = Challenge(
        id=row.id,
        user_id=row.user_id,
        title=row.title,
        description=row.description or "",
        execution_details=row.execution_details or "",
        start_date=as_utc(row.start_date),
        end_date=as_utc(row.end_date),
        status=row.status,
        days=tuple(_row_to_day(d) for d in sorted(row.days, key=lambda d: d.day_number)),
        total_days=row.total_days,
        missed_days=tuple(row.missed_days or ()),
        compensated_days=dict(row.compensated_days or {}),
        created_at=as_utc(row.created_at),
        completed_at=_opt_utc(row.completed_at),
    )
    challenge.check_invariants()
    return challenge


def _challenge_to_row(challenge: Challenge) -> ChallengeRow:
    return ChallengeRow(
        id=challenge.id,
        user_id=challenge.user_id,
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
        days=[
            ChallengeDayRow(
                id=d.id,
                challenge_id=challenge.id,
                day_number=d.day_number,
                date=d.date,
                status=d.status,
                note=d.note,
                proof_files=list(d.proof_files),
                completed_at=d.completed_at,
                is_extension_day=d.is_extension_day,
                compensates_day=d.compensates_day,
            )
            for d in challenge.days
        ],
    )
