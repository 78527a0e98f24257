# island_tracker/models/challenge.py
from __future__ import annotations

import datetime as dt
from typing import Dict, List, Optional

from sqlalchemy import (JSON, Boolean, DateTime, Enum as SqlEnum, ForeignKey, Index, Integer, String, Text, UniqueConstraint,)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from island_tracker.db.database import Base
from island_tracker.domain.entities import ChallengeStatus, DayStatus


class ChallengeRow(Base):
    __tablename__ = "challenges"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    user_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    execution_details: Mapped[str] = mapped_column(Text, nullable=False, default="")

    start_date: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[ChallengeStatus] = mapped_column(
        SqlEnum(ChallengeStatus, name="challenge_status"),
        nullable=False,
        default=ChallengeStatus.active,
    )
    total_days: Mapped[int] = mapped_column(Integer, nullable=False)

    # FIFO ledger of missed day ids, order matters
    missed_days: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    # missed day id -> make-up day id
    compensated_days: Mapped[Dict[str, str]] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_challenges_user_status", "user_id", "status"),
    )

    days: Mapped[List["ChallengeDayRow"]] = relationship(
        "ChallengeDayRow",
        back_populates="challenge",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ChallengeDayRow.day_number",
    )

    user = relationship("User", back_populates="challenges", uselist=False)


class ChallengeDayRow(Base):
    __tablename__ = "challenge_days"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    challenge_id: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("challenges.id", ondelete="CASCADE"),
        nullable=False,
    )
    day_number: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[DayStatus] = mapped_column(
        SqlEnum(DayStatus, name="day_status"),
        nullable=False,
        default=DayStatus.pending,
    )
    note: Mapped[str] = mapped_column(Text, nullable=False, default="")
    proof_files: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    completed_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    is_extension_day: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    compensates_day: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    __table_args__ = (
        UniqueConstraint("challenge_id", "day_number", name="uq_challenge_day_number"),
    )

    challenge: Mapped["ChallengeRow"] = relationship("ChallengeRow", back_populates="days", uselist=False)
