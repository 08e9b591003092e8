"""Schedule store handle.

The engine never opens sessions itself. The request/service layer owns the
session lifecycle and hands a ScheduleStore to each component, so every read
and write of one batch happens in the same transaction.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date
from typing import Any

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from truepace.db.models import ActivityType, Profile, RunLog, ScheduledWorkout, WorkoutStatus


class ScheduleStore:
    """Read/write access to one user's schedule through a SQLAlchemy session."""

    def __init__(self, session: Session):
        self.session = session

    # Reads

    def find_workout(self, user_id: str, workout_id: str) -> ScheduledWorkout | None:
        """Exact id lookup scoped to the user."""
        return self.session.execute(
            select(ScheduledWorkout).where(
                ScheduledWorkout.id == workout_id,
                ScheduledWorkout.user_id == user_id,
            )
        ).scalar_one_or_none()

    def list_window(
        self,
        user_id: str,
        start: date,
        end: date,
        *,
        activity_type: ActivityType | None = None,
        status: WorkoutStatus | None = None,
    ) -> list[ScheduledWorkout]:
        """Workouts with start <= scheduled_date <= end, earliest first."""
        query = select(ScheduledWorkout).where(
            ScheduledWorkout.user_id == user_id,
            ScheduledWorkout.scheduled_date >= start,
            ScheduledWorkout.scheduled_date <= end,
        )
        if activity_type is not None:
            query = query.where(ScheduledWorkout.activity_type == activity_type)
        if status is not None:
            query = query.where(ScheduledWorkout.status == status)
        query = query.order_by(ScheduledWorkout.scheduled_date, ScheduledWorkout.created_at, ScheduledWorkout.id)
        return list(self.session.execute(query).scalars().all())

    def find_run_on(
        self,
        user_id: str,
        day: date,
        exclude_ids: Iterable[str | None] = (),
    ) -> ScheduledWorkout | None:
        """First RUN on a date, ignoring the given workout ids."""
        excluded = [workout_id for workout_id in exclude_ids if workout_id]
        query = select(ScheduledWorkout).where(
            ScheduledWorkout.user_id == user_id,
            ScheduledWorkout.scheduled_date == day,
            ScheduledWorkout.activity_type == ActivityType.RUN,
        )
        if excluded:
            query = query.where(ScheduledWorkout.id.not_in(excluded))
        query = query.order_by(ScheduledWorkout.created_at, ScheduledWorkout.id).limit(1)
        return self.session.execute(query).scalars().first()

    def runs_on(self, user_id: str, day: date) -> list[ScheduledWorkout]:
        return self.list_window(user_id, day, day, activity_type=ActivityType.RUN)

    def latest_workout(self, user_id: str) -> ScheduledWorkout | None:
        return self.session.execute(
            select(ScheduledWorkout)
            .where(ScheduledWorkout.user_id == user_id)
            .order_by(ScheduledWorkout.scheduled_date.desc())
            .limit(1)
        ).scalars().first()

    def colliding_run_dates(self, user_id: str) -> list[date]:
        """Dates on which the user holds more than one RUN."""
        rows = self.session.execute(
            select(ScheduledWorkout.scheduled_date)
            .where(
                ScheduledWorkout.user_id == user_id,
                ScheduledWorkout.activity_type == ActivityType.RUN,
            )
            .group_by(ScheduledWorkout.scheduled_date)
            .having(func.count(ScheduledWorkout.id) > 1)
            .order_by(ScheduledWorkout.scheduled_date)
        ).all()
        return [row[0] for row in rows]

    def get_profile(self, user_id: str) -> Profile | None:
        return self.session.get(Profile, user_id)

    def get_run_log(self, workout_id: str) -> RunLog | None:
        return self.session.execute(select(RunLog).where(RunLog.workout_id == workout_id)).scalar_one_or_none()

    def run_logs_by_workout(self, workout_ids: Sequence[str]) -> dict[str, RunLog]:
        if not workout_ids:
            return {}
        logs = self.session.execute(select(RunLog).where(RunLog.workout_id.in_(list(workout_ids)))).scalars().all()
        return {log.workout_id: log for log in logs}

    def is_completed(self, workout: ScheduledWorkout) -> bool:
        """A workout counts as completed once it has a status or a run log saying so."""
        if workout.status == WorkoutStatus.COMPLETED:
            return True
        return self.get_run_log(workout.id) is not None

    # Writes (flushed immediately so later reads in the batch see them)

    def add_workout(self, **fields: Any) -> ScheduledWorkout:
        workout = ScheduledWorkout(**fields)
        self.session.add(workout)
        self.session.flush()
        logger.debug(
            "Workout created",
            workout_id=workout.id,
            date=workout.scheduled_date.isoformat(),
            activity_type=workout.activity_type,
        )
        return workout

    def update_workout(self, workout: ScheduledWorkout, **fields: Any) -> ScheduledWorkout:
        for name, value in fields.items():
            setattr(workout, name, value)
        self.session.flush()
        return workout

    def update_many(self, changes: Iterable[tuple[ScheduledWorkout, dict[str, Any]]]) -> list[ScheduledWorkout]:
        updated = []
        for workout, fields in changes:
            for name, value in fields.items():
                setattr(workout, name, value)
            updated.append(workout)
        self.session.flush()
        return updated

    def move_workout(self, workout: ScheduledWorkout, new_date: date) -> ScheduledWorkout:
        old_date = workout.scheduled_date
        self.update_workout(workout, scheduled_date=new_date)
        logger.debug(
            "Workout moved",
            workout_id=workout.id,
            old_date=old_date.isoformat(),
            new_date=new_date.isoformat(),
        )
        return workout
