from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from enum import StrEnum

from sqlalchemy import JSON, Boolean, Date, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models."""


class ActivityType(StrEnum):
    RUN = "RUN"
    REST = "REST"
    CROSS_TRAIN = "CROSS_TRAIN"


class WorkoutStatus(StrEnum):
    SCHEDULED = "SCHEDULED"
    COMPLETED = "COMPLETED"
    SKIPPED = "SKIPPED"


class Profile(Base):
    """Runner profile used as generation context.

    Written by onboarding (outside this engine); read-only here.
    """

    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String, primary_key=True, index=True)
    goal: Mapped[str | None] = mapped_column(String, nullable=True)  # TARGET_5K, TARGET_10K, GENERAL_FITNESS
    experience_level: Mapped[str | None] = mapped_column(String, nullable=True)
    days_available: Mapped[list | None] = mapped_column(JSON, nullable=True)
    injury_history: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))


class ScheduledWorkout(Base):
    """One planned training session.

    Schema:
    - scheduled_date: calendar date only (no time of day)
    - activity_type: RUN, REST or CROSS_TRAIN
    - description: display text, also the fuzzy-match key for references
    - reasoning_note: audit trail of the last automated change
    - status: SCHEDULED, COMPLETED or SKIPPED

    Constraints:
    - At most one RUN per (user_id, scheduled_date). Enforced by the conflict
      resolver, not by the database, because a cascade moves rows through
      dates that are occupied until the whole batch is flushed.
    - Rows are never deleted by the engine; status moves to SKIPPED instead.
    """

    __tablename__ = "scheduled_workouts"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    activity_type: Mapped[str] = mapped_column(String, nullable=False, default=ActivityType.RUN)

    target_distance_km: Mapped[float | None] = mapped_column(Float, nullable=True)
    target_duration_min: Mapped[int | None] = mapped_column(Integer, nullable=True)
    target_rpe: Mapped[int | None] = mapped_column(Integer, nullable=True)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    reasoning_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default=WorkoutStatus.SCHEDULED)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("idx_scheduled_workouts_user_date", "user_id", "scheduled_date"),
        Index("idx_scheduled_workouts_user_type_date", "user_id", "activity_type", "scheduled_date"),
    )

    def __repr__(self) -> str:
        return (
            f"ScheduledWorkout(id={self.id!r}, date={self.scheduled_date}, "
            f"type={self.activity_type}, description={self.description!r})"
        )


class RunLog(Base):
    """What actually happened for a workout.

    0-or-1 per ScheduledWorkout. Written by the run logging flow; the engine
    only reads it (completion detection, performance analysis).
    """

    __tablename__ = "run_logs"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    workout_id: Mapped[str] = mapped_column(
        String, ForeignKey("scheduled_workouts.id"), nullable=False, unique=True, index=True
    )
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    actual_distance_km: Mapped[float | None] = mapped_column(Float, nullable=True)
    actual_duration_min: Mapped[int | None] = mapped_column(Integer, nullable=True)
    actual_rpe: Mapped[int | None] = mapped_column(Integer, nullable=True)
    pain_reported: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    logged_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
