"""Conflict detection and resolution for scheduled runs.

Invariant: for one user, at most one RUN per calendar date. REST and
CROSS_TRAIN rows never conflict.

Conflicts are either resolved by moving workouts forward or surfaced as a
ScheduleConflictError, depending on the strategy the caller picks.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, timedelta
from datetime import date as date_type
from typing import Literal

from loguru import logger
from pydantic import BaseModel, Field

from truepace.calendar.store import ScheduleStore
from truepace.coach.errors import ScheduleConflictError, WorkoutNotFoundError
from truepace.db.models import ActivityType, ScheduledWorkout

# Upper bounds on every forward walk. A pathological schedule (or a hostile
# one) can never make a single request loop for more than these many steps.
MAX_CASCADE_DAYS = 30  # length of a contiguous occupied block we will shift
MAX_PROBE_RETRIES = 30  # forward re-checks per shifted workout
MAX_PROBE_DAYS = 30  # forward day-steps when looking for a free landing date

ResolveStrategy = Literal["shift_forward", "error"]


def step_date(day: date, days: int) -> date:
    """day + days, surfacing the calendar edge as a schedule conflict."""
    try:
        return day + timedelta(days=days)
    except OverflowError as e:
        raise ScheduleConflictError(
            day,
            message=f"Cannot move a workout {days} day(s) from {day.isoformat()}: outside the supported calendar range.",
        ) from e


class ShiftedWorkout(BaseModel):
    """One workout moved to make room or shifted by an offset."""

    workout_id: str
    old_date: date
    new_date: date
    description: str | None = None

    def as_tuple(self) -> tuple[str, date, date]:
        return self.workout_id, self.old_date, self.new_date


@dataclass(frozen=True)
class Placement:
    """Where a workout may land and what had to move for it.

    Attributes:
        date: Conflict-free date for the placed workout
        shifted: Workouts moved out of the way, in chronological order
    """

    date: date
    shifted: list[ShiftedWorkout] = field(default_factory=list)


class Conflict(BaseModel):
    """A RUN already occupying a date a workout wants to land on."""

    date: date_type = Field(description="Date of the conflict")
    existing_workout_id: str = Field(description="ID of the RUN already on that date")
    candidate_workout_id: str | None = Field(default=None, description="ID of the workout being placed (if known)")


class ScheduleConflictResolver:
    """Finds or creates conflict-free dates for RUN workouts."""

    def __init__(self, store: ScheduleStore):
        self.store = store

    def find_conflict(
        self,
        user_id: str,
        day: date,
        exclude_workout_id: str | None = None,
    ) -> Conflict | None:
        existing = self.store.find_run_on(user_id, day, exclude_ids=[exclude_workout_id])
        if existing is None:
            return None
        return Conflict(date=day, existing_workout_id=existing.id, candidate_workout_id=exclude_workout_id)

    def place(
        self,
        user_id: str,
        desired_date: date,
        exclude_workout_id: str | None = None,
        strategy: ResolveStrategy = "shift_forward",
    ) -> Placement:
        """Make desired_date available for a RUN.

        A free date is returned unchanged with nothing shifted. On conflict the
        default strategy shifts the occupying block forward; the strict
        strategy raises instead.

        Raises:
            ScheduleConflictError: On conflict with strategy="error", when the
                date holds a completed run, or when the cascade cannot find
                room within its bounds.
        """
        conflict = self.find_conflict(user_id, desired_date, exclude_workout_id)
        if conflict is None:
            return Placement(date=desired_date)

        if strategy == "error":
            logger.info(
                "Placement rejected by strict conflict policy",
                user_id=user_id,
                date=desired_date.isoformat(),
                existing_workout_id=conflict.existing_workout_id,
            )
            raise ScheduleConflictError(desired_date)

        shifted = self.cascade_shift(user_id, desired_date, exclude_workout_id=exclude_workout_id)
        return Placement(date=desired_date, shifted=shifted)

    def cascade_shift(
        self,
        user_id: str,
        from_date: date,
        max_days: int = MAX_CASCADE_DAYS,
        exclude_workout_id: str | None = None,
    ) -> list[ShiftedWorkout]:
        """Push the contiguous block of RUNs starting at from_date one day forward.

        Completed runs are fixed: one on from_date is a conflict, one further
        along ends the block and the shifted runs land after it.

        The block is moved latest-first: each one-day move then lands on a date
        its successor has just vacated. Each landing date is still re-checked
        and walked forward (bounded) in case the schedule changed underneath.

        Args:
            user_id: Owner of the schedule
            from_date: First date that must become free
            max_days: Bound on the block length scanned
            exclude_workout_id: Workout being placed; it does not occupy dates

        Returns:
            Moves performed, in chronological order of their original dates
        """
        block: list[ScheduledWorkout] = []
        day = from_date
        for _ in range(max_days):
            occupant = self.store.find_run_on(user_id, day, exclude_ids=[exclude_workout_id])
            if occupant is None:
                break
            if self.store.is_completed(occupant):
                if day == from_date:
                    raise ScheduleConflictError(
                        day,
                        message=f"A completed run is already logged on {day.isoformat()}; pick another date.",
                    )
                break
            block.append(occupant)
            day = step_date(day, 1)

        shifted: list[ShiftedWorkout] = []
        for workout in reversed(block):
            old_date = workout.scheduled_date
            new_date = self._probe_after(
                user_id,
                step_date(old_date, 1),
                exclude_ids=[workout.id, exclude_workout_id],
                max_steps=MAX_PROBE_RETRIES,
            )
            self.store.move_workout(workout, new_date)
            shifted.append(
                ShiftedWorkout(
                    workout_id=workout.id,
                    old_date=old_date,
                    new_date=new_date,
                    description=workout.description,
                )
            )

        shifted.reverse()
        logger.info(
            "Cascade shift completed",
            user_id=user_id,
            from_date=from_date.isoformat(),
            shifted=len(shifted),
        )
        return shifted

    def probe_forward(
        self,
        user_id: str,
        start: date,
        exclude_ids: Iterable[str | None] = (),
        max_days: int = MAX_PROBE_DAYS,
    ) -> date:
        """First RUN-free date on or after start.

        Raises:
            ScheduleConflictError: If every date within max_days is taken.
        """
        return self._probe_after(user_id, start, exclude_ids=list(exclude_ids), max_steps=max_days)

    def _probe_after(
        self,
        user_id: str,
        start: date,
        *,
        exclude_ids: list[str | None],
        max_steps: int,
    ) -> date:
        candidate = start
        for _ in range(max_steps + 1):
            if self.store.find_run_on(user_id, candidate, exclude_ids=exclude_ids) is None:
                return candidate
            candidate = step_date(candidate, 1)
        raise ScheduleConflictError(
            start,
            message=(
                f"No free date for a run within {max_steps} days of {start.isoformat()}. "
                "The schedule is too congested to move this workout automatically."
            ),
        )

    def batch_shift(self, user_id: str, workout_ids: list[str], shift_days: int) -> list[ShiftedWorkout]:
        """Move each workout by a signed day offset, each landing on a free date.

        Raises:
            WorkoutNotFoundError: If an id does not belong to the user.
        """
        shifted: list[ShiftedWorkout] = []
        for workout_id in workout_ids:
            workout = self.store.find_workout(user_id, workout_id)
            if workout is None:
                raise WorkoutNotFoundError(workout_id, f"Workout '{workout_id}' not found for batch shift.")

            old_date = workout.scheduled_date
            target = step_date(old_date, shift_days)
            if workout.activity_type == ActivityType.RUN:
                target = self.probe_forward(user_id, target, exclude_ids=[workout.id])
            self.store.move_workout(workout, target)
            shifted.append(
                ShiftedWorkout(workout_id=workout.id, old_date=old_date, new_date=target, description=workout.description)
            )

        logger.info("Batch shift completed", user_id=user_id, shift_days=shift_days, moved=len(shifted))
        return shifted

    def repair_collisions(self, user_id: str, touched_ids: Iterable[str]) -> list[ShiftedWorkout]:
        """Re-check the invariant before commit and re-place colliding runs.

        A concurrent request may have written a RUN onto a date this batch also
        used. That is treated as a fresh conflict: the runs this batch touched
        move forward to the next free date. Untouched rows are left alone.
        """
        touched = set(touched_ids)
        repaired: list[ShiftedWorkout] = []
        for day in self.store.colliding_run_dates(user_id):
            runs = self.store.runs_on(user_id, day)
            movable = [run for run in runs if run.id in touched]
            keep = [run for run in runs if run.id not in touched]
            if not keep:
                keep, movable = movable[:1], movable[1:]
            for workout in movable:
                new_date = self.probe_forward(user_id, step_date(day, 1), exclude_ids=[workout.id])
                self.store.move_workout(workout, new_date)
                repaired.append(
                    ShiftedWorkout(workout_id=workout.id, old_date=day, new_date=new_date, description=workout.description)
                )
                logger.warning(
                    "Run collision repaired before commit",
                    user_id=user_id,
                    workout_id=workout.id,
                    old_date=day.isoformat(),
                    new_date=new_date.isoformat(),
                )
        return repaired
