"""Injury response planning.

Two paths:
- an explicit per-workout plan (REST / CROSS_TRAIN / RESCHEDULE) produced
  upstream is applied verbatim;
- otherwise a severity table decides the downtime. Every scheduled RUN in
  ``[today, today + downtime)`` gets a derived REST or CROSS_TRAIN row on its
  date and is itself moved forward by exactly ``downtime`` days.

The window ends up free of running load and the displaced runs reappear
after the downtime.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Literal

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from truepace.calendar.conflicts import ScheduleConflictResolver, step_date
from truepace.calendar.dates import parse_date_expression
from truepace.calendar.store import ScheduleStore
from truepace.coach.errors import ExecutionFailedError, WorkoutNotFoundError
from truepace.db.models import ActivityType, ScheduledWorkout, WorkoutStatus
from truepace.plans.feedback import round_half_up
from truepace.plans.types import WorkoutChange

InjurySeverity = Literal["mild", "moderate", "severe"]
InjuryAction = Literal["rest_only", "cross_train", "medical_attention", "reduce_intensity"]

DOWNTIME_DAYS_BY_SEVERITY: dict[str, int] = {
    "severe": 14,
    "moderate": 7,
    "mild": 3,
}
DEFAULT_DOWNTIME_DAYS = 3

CROSS_TRAIN_DISTANCE_FACTOR = 0.5
CROSS_TRAIN_DURATION_FACTOR = 0.7
DEFAULT_RUN_DISTANCE_KM = 5.0
DEFAULT_RUN_DURATION_MIN = 30


class InjuryPlanEntry(BaseModel):
    """One upstream instruction for a specific workout."""

    model_config = ConfigDict(populate_by_name=True)

    workout_id: str = Field(alias="workoutId")
    action: Literal["REST", "CROSS_TRAIN", "RESCHEDULE"]
    new_date: str | None = Field(default=None, alias="newDate")


class InjuryResponse(BaseModel):
    severity: str
    action: str
    downtime_days: int | None = None
    window_start: date | None = None
    window_end: date | None = Field(default=None, description="Exclusive end of the downtime window")
    changes: list[WorkoutChange] = Field(default_factory=list)
    reasoning: list[str] = Field(default_factory=list)


def downtime_for(severity: str | None, explicit_days: int | None = None) -> int:
    """Downtime in days: the explicit value when given, else the severity table."""
    if explicit_days is not None:
        return explicit_days
    return DOWNTIME_DAYS_BY_SEVERITY.get((severity or "").lower(), DEFAULT_DOWNTIME_DAYS)


def replacement_type(action: str, severity: str) -> ActivityType:
    if action == "cross_train" and severity != "severe":
        return ActivityType.CROSS_TRAIN
    return ActivityType.REST


def cross_train_targets(workout: ScheduledWorkout) -> tuple[float, int]:
    distance = (workout.target_distance_km or DEFAULT_RUN_DISTANCE_KM) * CROSS_TRAIN_DISTANCE_FACTOR
    duration = round_half_up((workout.target_duration_min or DEFAULT_RUN_DURATION_MIN) * CROSS_TRAIN_DURATION_FACTOR)
    return round(distance, 2), duration


class InjuryResponsePlanner:
    def __init__(self, store: ScheduleStore, conflicts: ScheduleConflictResolver):
        self.store = store
        self.conflicts = conflicts

    def plan(
        self,
        user_id: str,
        severity: str,
        action: str,
        today: date,
        injury_type: str,
        affected_area: str,
        downtime_days: int | None = None,
        recommended_plan: list[InjuryPlanEntry] | None = None,
    ) -> InjuryResponse:
        """Apply the injury response to the user's schedule.

        Raises:
            WorkoutNotFoundError: If an explicit plan entry names an unknown workout.
            ExecutionFailedError: If an explicit entry cannot be applied.
            ScheduleConflictError: If a displaced run finds no free date.
        """
        note = f"Injury response: {injury_type} - {affected_area} ({severity})"
        logger.info(
            "Planning injury response",
            user_id=user_id,
            severity=severity,
            action=action,
            explicit_entries=len(recommended_plan or []),
        )

        if recommended_plan:
            return self._apply_explicit_plan(user_id, severity, action, today, note, recommended_plan)
        return self._apply_downtime(user_id, severity, action, today, note, downtime_for(severity, downtime_days))

    def _apply_downtime(
        self,
        user_id: str,
        severity: str,
        action: str,
        today: date,
        note: str,
        downtime: int,
    ) -> InjuryResponse:
        window_end = today + timedelta(days=downtime)
        scheduled = self.store.list_window(
            user_id,
            today,
            window_end - timedelta(days=1),
            activity_type=ActivityType.RUN,
            status=WorkoutStatus.SCHEDULED,
        )
        # a run log counts as completion even if the status was never updated
        runs = [run for run in scheduled if not self.store.is_completed(run)]
        substitute = replacement_type(action, severity)
        changes: list[WorkoutChange] = []

        for run in runs:
            original_date = run.scheduled_date
            changes.append(self._add_substitute(user_id, run, substitute, note))

            new_date = self.conflicts.probe_forward(
                user_id,
                step_date(original_date, downtime),
                exclude_ids=[run.id],
            )
            self.store.update_workout(
                run,
                scheduled_date=new_date,
                reasoning_note=f"{note}. Moved {downtime} days forward to clear the downtime window",
            )
            changes.append(WorkoutChange.from_workout(run, "rescheduled", previous_date=original_date))

        reasoning = [
            f"{downtime} days of downtime starting {today.isoformat()}",
            f"{len(runs)} runs replaced by {substitute.value} and moved after the downtime",
        ]
        logger.info(
            "Injury downtime applied",
            user_id=user_id,
            downtime_days=downtime,
            affected_runs=len(runs),
            substitute=substitute.value,
        )
        return InjuryResponse(
            severity=severity,
            action=action,
            downtime_days=downtime,
            window_start=today,
            window_end=window_end,
            changes=changes,
            reasoning=reasoning,
        )

    def _add_substitute(
        self,
        user_id: str,
        run: ScheduledWorkout,
        substitute: ActivityType,
        note: str,
    ) -> WorkoutChange:
        fields: dict = {
            "user_id": user_id,
            "scheduled_date": run.scheduled_date,
            "activity_type": substitute,
            "reasoning_note": note,
            "status": WorkoutStatus.SCHEDULED,
        }
        if substitute == ActivityType.CROSS_TRAIN:
            distance, duration = cross_train_targets(run)
            fields.update(target_distance_km=distance, target_duration_min=duration, description="Cross Training")
        else:
            fields.update(description="Rest Day")

        derived = self.store.add_workout(**fields)
        return WorkoutChange.from_workout(derived, "created")

    def _apply_explicit_plan(
        self,
        user_id: str,
        severity: str,
        action: str,
        today: date,
        note: str,
        entries: list[InjuryPlanEntry],
    ) -> InjuryResponse:
        changes: list[WorkoutChange] = []
        for entry in entries:
            workout = self.store.find_workout(user_id, entry.workout_id)
            if workout is None:
                raise WorkoutNotFoundError(
                    entry.workout_id,
                    f"Workout '{entry.workout_id}' from the recommended plan was not found.",
                )
            if self.store.is_completed(workout):
                raise ExecutionFailedError(
                    f"Workout '{workout.id}' on {workout.scheduled_date.isoformat()} is already completed",
                    details={"workout_id": workout.id},
                )

            if entry.action == "RESCHEDULE":
                changes.extend(self._reschedule_entry(user_id, workout, entry, today, note))
            elif entry.action == "CROSS_TRAIN":
                distance, duration = cross_train_targets(workout)
                fields = {
                    "activity_type": ActivityType.CROSS_TRAIN,
                    "target_distance_km": distance,
                    "target_duration_min": duration,
                    "reasoning_note": note,
                }
                self.store.update_workout(workout, **fields)
                changes.append(WorkoutChange.from_workout(workout, "converted", fields=_public(fields)))
            else:
                fields = {
                    "activity_type": ActivityType.REST,
                    "target_distance_km": None,
                    "target_duration_min": None,
                    "reasoning_note": note,
                }
                self.store.update_workout(workout, **fields)
                changes.append(WorkoutChange.from_workout(workout, "converted", fields=_public(fields)))

        return InjuryResponse(
            severity=severity,
            action=action,
            changes=changes,
            reasoning=[f"Applied {len(entries)} recommended plan entries"],
        )

    def _reschedule_entry(
        self,
        user_id: str,
        workout: ScheduledWorkout,
        entry: InjuryPlanEntry,
        today: date,
        note: str,
    ) -> list[WorkoutChange]:
        if not entry.new_date:
            raise ExecutionFailedError(
                f"RESCHEDULE entry for workout '{workout.id}' needs a new date",
                details={"workout_id": workout.id},
            )

        target = parse_date_expression(entry.new_date, today)
        changes: list[WorkoutChange] = []
        if workout.activity_type == ActivityType.RUN:
            placement = self.conflicts.place(user_id, target, exclude_workout_id=workout.id)
            target = placement.date
            changes.extend(
                WorkoutChange.from_workout(moved, "shifted", previous_date=shift.old_date)
                for shift in placement.shifted
                if (moved := self.store.find_workout(user_id, shift.workout_id)) is not None
            )

        previous_date = workout.scheduled_date
        self.store.update_workout(workout, scheduled_date=target, reasoning_note=note)
        changes.insert(0, WorkoutChange.from_workout(workout, "rescheduled", previous_date=previous_date))
        return changes


def _public(fields: dict) -> dict:
    return {name: value for name, value in fields.items() if name != "reasoning_note"}
