"""Shared result types for plan mutations."""

from __future__ import annotations

from datetime import date
from typing import Any, Literal

from pydantic import BaseModel, Field

from truepace.db.models import ScheduledWorkout

ChangeAction = Literal["rescheduled", "shifted", "updated", "converted", "created"]


class WorkoutChange(BaseModel):
    """One workout touched by a tool call."""

    workout_id: str
    action: ChangeAction
    scheduled_date: date
    previous_date: date | None = None
    activity_type: str
    description: str | None = None
    fields: dict[str, Any] = Field(default_factory=dict, description="Changed fields and their new values")

    @classmethod
    def from_workout(
        cls,
        workout: ScheduledWorkout,
        action: ChangeAction,
        *,
        previous_date: date | None = None,
        fields: dict[str, Any] | None = None,
    ) -> WorkoutChange:
        return cls(
            workout_id=workout.id,
            action=action,
            scheduled_date=workout.scheduled_date,
            previous_date=previous_date,
            activity_type=str(workout.activity_type),
            description=workout.description,
            fields=dict(fields or {}),
        )
