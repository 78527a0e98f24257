# island_tracker/models/users.py
from __future__ import annotations

import datetime as dt
from typing import List, TYPE_CHECKING

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from island_tracker.db.database import Base

if TYPE_CHECKING:
    from island_tracker.models.challenge import ChallengeRow


class User(Base):
    """Registered user plus the settings the challenge core reads (timezone)."""
    __tablename__ = "users"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)

    # IANA name, only used for civil-day boundaries
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")

    # bumped by every challenge snapshot write; a save from a stale load is refused
    challenge_revision: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    challenges: Mapped[List["ChallengeRow"]] = relationship(
        "ChallengeRow",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
