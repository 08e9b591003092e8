"""Input schemas for the five plan mutation tools.

The upstream tool-calling loop sends camelCase keys; every model also
accepts snake_case field names.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from truepace.calendar.conflicts import ResolveStrategy
from truepace.plans.adapt import AdjustmentType
from truepace.plans.feedback import AdjustmentIntent
from truepace.plans.injury import InjuryAction, InjuryPlanEntry, InjurySeverity

ToolName = Literal[
    "rescheduleWorkout",
    "updateWorkoutParameters",
    "adaptTrainingPlan",
    "handleInjuryResponse",
    "generateNextWeek",
]


class ToolInput(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    confirmed: bool = False


class RescheduleWorkoutInput(ToolInput):
    """Move one workout to a new date, or shift several by an offset."""

    workout_id: str | None = Field(default=None, description="Workout id or symbolic reference like tuesday_workout")
    new_date: str | None = Field(default=None, description="today, tomorrow, a weekday name or YYYY-MM-DD")
    reason: str = ""
    preserve_intensity: bool | None = None
    workout_ids: list[str] | None = None
    shift_days: int | None = Field(default=None, ge=-365, le=365)
    resolve_strategy: ResolveStrategy = "shift_forward"

    @property
    def is_batch_shift(self) -> bool:
        return bool(self.workout_ids) and self.shift_days is not None

    @model_validator(mode="after")
    def _single_or_batch(self) -> RescheduleWorkoutInput:
        if self.is_batch_shift:
            return self
        if not self.workout_id or not self.new_date:
            raise ValueError("rescheduleWorkout needs workoutId and newDate, or workoutIds and shiftDays")
        return self


class UpdateWorkoutParametersInput(ToolInput):
    workout_id: str
    user_feedback: str
    adjustment_intent: AdjustmentIntent
    context: str | None = None
    target_date: str | None = None


class AdaptTrainingPlanInput(ToolInput):
    adjustment_type: AdjustmentType
    reason: str
    duration: int = Field(ge=0, le=90, description="Days from today covered by the adjustment")
    target_workouts: list[str] | None = None


class HandleInjuryResponseInput(ToolInput):
    injury_type: str
    affected_area: str
    severity: InjurySeverity
    action: InjuryAction
    downtime_days: int | None = Field(default=None, ge=1, le=90)
    recommended_plan: list[InjuryPlanEntry] | None = None


class GenerateNextWeekInput(ToolInput):
    performance_analysis: dict[str, Any] = Field(default_factory=dict)
    maintain_progression: bool = False
    target_weeks: int = Field(default=2, ge=1, le=8)


TOOL_INPUTS: dict[str, type[ToolInput]] = {
    "rescheduleWorkout": RescheduleWorkoutInput,
    "updateWorkoutParameters": UpdateWorkoutParametersInput,
    "adaptTrainingPlan": AdaptTrainingPlanInput,
    "handleInjuryResponse": HandleInjuryResponseInput,
    "generateNextWeek": GenerateNextWeekInput,
}


TOOL_KINDS: dict[str, str] = {
    "rescheduleWorkout": "reschedule",
    "updateWorkoutParameters": "adjust-parameters",
    "adaptTrainingPlan": "adapt-plan",
    "handleInjuryResponse": "injury-response",
    "generateNextWeek": "generate-next-week",
}


class ToolCall(BaseModel):
    """One proposed tool invocation from the tool-calling loop."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    tool_name: str
    input: dict[str, Any] = Field(default_factory=dict)

    @property
    def confirmed(self) -> bool:
        return self.input.get("confirmed") is True

    def mark_confirmed(self) -> ToolCall:
        return self.model_copy(update={"input": {**self.input, "confirmed": True}})

    @property
    def kind(self) -> str:
        if self.tool_name == "rescheduleWorkout" and self.input.get("workoutIds") and self.input.get("shiftDays") is not None:
            return "batch-shift"
        return TOOL_KINDS.get(self.tool_name, "unknown")
