# island_tracker/services/user_settings.py
from __future__ import annotations

import datetime as dt
from typing import Dict, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from island_tracker.domain.errors import NotFound
from island_tracker.domain.timezone import UTC, resolve_timezone
from island_tracker.models.users import User


class TimezoneLookup(Protocol):
    def timezone_for(self, user_id: str) -> str:
        ...


class StaticTimezones:
    """Timezone table kept in memory, with a fallback for unknown users."""

    def __init__(self, timezones: Optional[Dict[str, str]] = None, default: str = "UTC"):
        self.timezones = dict(timezones or {})
        self.default = default

    def timezone_for(self, user_id: str) -> str:
        return self.timezones.get(user_id, self.default)


class SqlTimezones:
    def __init__(self, db: Session, default: str = "UTC"):
        self.db = db
        self.default = default

    def timezone_for(self, user_id: str) -> str:
        user = get_user(self.db, user_id)
        if user is None or not user.timezone:
            return self.default
        return user.timezone


def get_user(db: Session, user_id: str) -> Optional[User]:
    return db.execute(select(User).where(User.user_id == user_id)).scalars().first()


def create_user(db: Session, user_id: str, name: str, timezone: str) -> User:
    """
    Registers the token subject.
    Raises ValueError when the user already exists.
    """
    resolve_timezone(timezone)
    now = dt.datetime.now(UTC)
    row = User(user_id=user_id, name=name, timezone=timezone, created_at=now, updated_at=now)
    db.add(row)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ValueError("user already registered") from e
    db.refresh(row)
    return row


def update_timezone(db: Session, user_id: str, timezone: str) -> User:
    resolve_timezone(timezone)
    row = get_user(db, user_id)
    if row is None:
        raise NotFound(f"user {user_id} not registered")
    row.timezone = timezone
    row.updated_at = dt.datetime.now(UTC)
    db.commit()
    db.refresh(row)
    return row
