"""Window-wide plan adaptation (adaptTrainingPlan)."""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Literal

from loguru import logger
from pydantic import BaseModel, Field

from truepace.calendar.store import ScheduleStore
from truepace.db.models import ActivityType, ScheduledWorkout, WorkoutStatus
from truepace.plans.feedback import round_half_up
from truepace.plans.resolver import IdentifierResolver
from truepace.plans.types import WorkoutChange

AdjustmentType = Literal["reduce_intensity", "add_rest", "increase_intensity", "extend_plan"]

# (distance multiplier, duration multiplier)
SCALING: dict[str, tuple[float, float]] = {
    "reduce_intensity": (0.8, 0.9),
    "increase_intensity": (1.1, 1.0),
}
REST_EVERY_NTH_RUN = 3


class AdaptationResult(BaseModel):
    adjustment_type: str
    window_start: date
    window_end: date
    changes: list[WorkoutChange] = Field(default_factory=list)
    reasoning: list[str] = Field(default_factory=list)


def scaled_fields(workout: ScheduledWorkout, distance_factor: float, duration_factor: float) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    if workout.target_distance_km:
        fields["target_distance_km"] = round(workout.target_distance_km * distance_factor, 2)
    if workout.target_duration_min and duration_factor != 1.0:
        fields["target_duration_min"] = round_half_up(workout.target_duration_min * duration_factor)
    return fields


class PlanAdapter:
    """Applies one adjustment to every scheduled run in a window of days."""

    def __init__(self, store: ScheduleStore, resolver: IdentifierResolver):
        self.store = store
        self.resolver = resolver

    def adapt(
        self,
        user_id: str,
        adjustment_type: AdjustmentType,
        reason: str,
        duration: int,
        today: date,
        target_workouts: list[str] | None = None,
    ) -> AdaptationResult:
        """Adapt runs scheduled in ``[today, today + duration]``.

        ``target_workouts`` references are resolved first and narrow the
        affected runs to those inside the window.

        Raises:
            WorkoutNotFoundError: If a target reference does not resolve.
        """
        window_end = today + timedelta(days=duration)
        result = AdaptationResult(adjustment_type=adjustment_type, window_start=today, window_end=window_end)

        if adjustment_type == "extend_plan":
            result.reasoning.append("Extending the plan adds new weeks; use generateNextWeek for that")
            return result

        runs = self.store.list_window(
            user_id, today, window_end, activity_type=ActivityType.RUN, status=WorkoutStatus.SCHEDULED
        )
        if target_workouts:
            wanted = {self.resolver.resolve_workout(ref, user_id, today).id for ref in target_workouts}
            runs = [run for run in runs if run.id in wanted]

        note = f"Adapted: {reason}"
        updates: list[tuple[ScheduledWorkout, dict[str, Any]]] = []
        for index, run in enumerate(runs, start=1):
            if adjustment_type == "add_rest":
                if index % REST_EVERY_NTH_RUN != 0:
                    continue
                fields: dict[str, Any] = {
                    "activity_type": ActivityType.REST,
                    "target_distance_km": None,
                    "target_duration_min": None,
                }
            else:
                fields = scaled_fields(run, *SCALING[adjustment_type])
            updates.append((run, {**fields, "reasoning_note": note}))

        self.store.update_many(updates)
        for workout, fields in updates:
            fields.pop("reasoning_note")
            action = "converted" if adjustment_type == "add_rest" else "updated"
            result.changes.append(WorkoutChange.from_workout(workout, action, fields=fields))

        result.reasoning.append(f"{adjustment_type} applied to {len(updates)} of {len(runs)} runs: {reason}")
        logger.info(
            "Training plan adapted",
            user_id=user_id,
            adjustment_type=adjustment_type,
            affected=len(updates),
            window_end=window_end.isoformat(),
        )
        return result
