"""Per-invocation execution of plan mutation tools.

PlanMutationEngine validates one ToolCall against its input schema and
dispatches it to the calendar/plans components. It writes through the
injected ScheduleStore and never commits; the batch executor owns the
transaction.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from truepace.calendar.conflicts import ScheduleConflictResolver, ShiftedWorkout
from truepace.calendar.dates import parse_date_expression
from truepace.calendar.store import ScheduleStore
from truepace.coach.errors import ExecutionFailedError, WorkoutNotFoundError
from truepace.coach.tools import (
    TOOL_INPUTS,
    AdaptTrainingPlanInput,
    GenerateNextWeekInput,
    HandleInjuryResponseInput,
    RescheduleWorkoutInput,
    ToolCall,
    ToolInput,
    UpdateWorkoutParametersInput,
)
from truepace.db.models import ActivityType, ScheduledWorkout
from truepace.plans.adapt import PlanAdapter
from truepace.plans.feedback import apply_policy, build_reasoning_note, classify_feedback
from truepace.plans.injury import InjuryResponsePlanner
from truepace.plans.next_week import NextBlockGenerator
from truepace.plans.performance import is_last_week_of_plan
from truepace.plans.resolver import IdentifierResolver
from truepace.plans.types import WorkoutChange


class ToolResult(BaseModel):
    """Structured outcome of one executed tool call."""

    success: bool = True
    tool_name: str
    modified: list[WorkoutChange] = Field(default_factory=list)
    reasoning: list[str] = Field(default_factory=list)
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def touched_ids(self) -> set[str]:
        return {change.workout_id for change in self.modified}


def _shift_changes(store: ScheduleStore, user_id: str, shifted: list[ShiftedWorkout]) -> list[WorkoutChange]:
    changes = []
    for shift in shifted:
        workout = store.find_workout(user_id, shift.workout_id)
        if workout is not None:
            changes.append(WorkoutChange.from_workout(workout, "shifted", previous_date=shift.old_date))
    return changes


class PlanMutationEngine:
    """Executes tool calls for one user against one store."""

    def __init__(self, store: ScheduleStore, today: date):
        self.store = store
        self.today = today
        self.conflicts = ScheduleConflictResolver(store)
        self.resolver = IdentifierResolver(store)
        self.injury_planner = InjuryResponsePlanner(store, self.conflicts)
        self.adapter = PlanAdapter(store, self.resolver)
        self.next_block = NextBlockGenerator(store)
        self._handlers: dict[str, Callable[[Any, str], ToolResult]] = {
            "rescheduleWorkout": self._reschedule_workout,
            "updateWorkoutParameters": self._update_workout_parameters,
            "adaptTrainingPlan": self._adapt_training_plan,
            "handleInjuryResponse": self._handle_injury_response,
            "generateNextWeek": self._generate_next_week,
        }

    def execute(self, call: ToolCall, user_id: str) -> ToolResult:
        """Validate and run one tool call.

        Raises:
            PlanMutationError: Any domain error. Invalid input and unknown
                tools surface as ExecutionFailedError.
        """
        handler = self._handlers.get(call.tool_name)
        if handler is None:
            raise ExecutionFailedError(f"Unknown tool: {call.tool_name}", details={"tool_name": call.tool_name})

        params = self._validate(call)
        logger.info("Executing tool", tool_name=call.tool_name, kind=call.kind, user_id=user_id)
        return handler(params, user_id)

    def _validate(self, call: ToolCall) -> ToolInput:
        try:
            return TOOL_INPUTS[call.tool_name].model_validate(call.input)
        except ValidationError as e:
            raise ExecutionFailedError(
                f"Invalid input for {call.tool_name}: {e.error_count()} validation error(s)",
                details={"tool_name": call.tool_name, "errors": e.errors(include_url=False, include_context=False)},
            ) from e

    def _ensure_mutable(self, workout: ScheduledWorkout) -> None:
        if self.store.is_completed(workout):
            raise ExecutionFailedError(
                f"Workout on {workout.scheduled_date.isoformat()} is already completed and cannot be changed",
                details={"workout_id": workout.id},
            )

    def _reschedule_workout(self, params: RescheduleWorkoutInput, user_id: str) -> ToolResult:
        if params.is_batch_shift:
            return self._batch_shift(params, user_id)

        workout = self.resolver.resolve_workout(params.workout_id, user_id, self.today)
        self._ensure_mutable(workout)
        target = parse_date_expression(params.new_date, self.today)

        modified: list[WorkoutChange] = []
        if workout.activity_type == ActivityType.RUN:
            placement = self.conflicts.place(
                user_id, target, exclude_workout_id=workout.id, strategy=params.resolve_strategy
            )
            target = placement.date
            modified.extend(_shift_changes(self.store, user_id, placement.shifted))

        note = f"Rescheduled: {params.reason}" if params.reason else "Rescheduled"
        if params.preserve_intensity:
            note += " (intensity preserved)"

        previous_date = workout.scheduled_date
        self.store.update_workout(workout, scheduled_date=target, reasoning_note=note)
        modified.insert(0, WorkoutChange.from_workout(workout, "rescheduled", previous_date=previous_date))

        reasoning = [f"Moved from {previous_date.isoformat()} to {target.isoformat()}"]
        if len(modified) > 1:
            reasoning.append(f"Shifted {len(modified) - 1} conflicting run(s) forward by one day")
        return ToolResult(tool_name="rescheduleWorkout", modified=modified, reasoning=reasoning)

    def _batch_shift(self, params: RescheduleWorkoutInput, user_id: str) -> ToolResult:
        for workout_id in params.workout_ids or []:
            workout = self.store.find_workout(user_id, workout_id)
            if workout is None:
                raise WorkoutNotFoundError(workout_id, f"Workout '{workout_id}' not found for batch shift.")
            self._ensure_mutable(workout)

        shifted = self.conflicts.batch_shift(user_id, params.workout_ids or [], params.shift_days or 0)
        return ToolResult(
            tool_name="rescheduleWorkout",
            modified=_shift_changes(self.store, user_id, shifted),
            reasoning=[f"Shifted {len(shifted)} workout(s) by {params.shift_days} day(s)"],
        )

    def _update_workout_parameters(self, params: UpdateWorkoutParametersInput, user_id: str) -> ToolResult:
        workout = self.resolver.resolve_workout(params.workout_id, user_id, self.today)
        self._ensure_mutable(workout)

        policy = classify_feedback(params.user_feedback, params.adjustment_intent)
        fields = apply_policy(workout, policy)
        extra: list[str] = []
        modified: list[WorkoutChange] = []
        previous_date = None

        if params.target_date:
            target = parse_date_expression(params.target_date, self.today)
            if workout.activity_type == ActivityType.RUN:
                placement = self.conflicts.place(user_id, target, exclude_workout_id=workout.id)
                target = placement.date
                modified.extend(_shift_changes(self.store, user_id, placement.shifted))
            if target != workout.scheduled_date:
                previous_date = workout.scheduled_date
                fields["scheduled_date"] = target
            extra.append(f"Rescheduled to {params.target_date}")
        if params.context:
            extra.append(f"Context: {params.context}")

        note = build_reasoning_note(params.user_feedback, policy, params.adjustment_intent, extra)
        self.store.update_workout(workout, **fields, reasoning_note=note)
        modified.insert(0, WorkoutChange.from_workout(workout, "updated", previous_date=previous_date, fields=fields))

        return ToolResult(
            tool_name="updateWorkoutParameters",
            modified=modified,
            reasoning=[*policy.reason_tags, *extra],
            data={
                "intensity_multiplier": policy.intensity_multiplier,
                "rpe_delta": policy.rpe_delta,
                "duration_multiplier": policy.duration_multiplier,
                "label_prefix": policy.label_prefix,
            },
        )

    def _adapt_training_plan(self, params: AdaptTrainingPlanInput, user_id: str) -> ToolResult:
        result = self.adapter.adapt(
            user_id,
            params.adjustment_type,
            params.reason,
            params.duration,
            self.today,
            target_workouts=params.target_workouts,
        )
        return ToolResult(
            tool_name="adaptTrainingPlan",
            modified=result.changes,
            reasoning=result.reasoning,
            data={"window_start": result.window_start.isoformat(), "window_end": result.window_end.isoformat()},
        )

    def _handle_injury_response(self, params: HandleInjuryResponseInput, user_id: str) -> ToolResult:
        response = self.injury_planner.plan(
            user_id,
            params.severity,
            params.action,
            self.today,
            params.injury_type,
            params.affected_area,
            downtime_days=params.downtime_days,
            recommended_plan=params.recommended_plan,
        )
        return ToolResult(
            tool_name="handleInjuryResponse",
            modified=response.changes,
            reasoning=response.reasoning,
            data={"downtime_days": response.downtime_days, "severity": response.severity, "action": response.action},
        )

    def _generate_next_week(self, params: GenerateNextWeekInput, user_id: str) -> ToolResult:
        last_week = is_last_week_of_plan(self.store, user_id, self.today)
        result = self.next_block.generate(
            user_id,
            self.today,
            performance_analysis=params.performance_analysis,
            maintain_progression=params.maintain_progression,
            target_weeks=params.target_weeks,
        )
        return ToolResult(
            tool_name="generateNextWeek",
            modified=result.changes,
            reasoning=result.reasoning,
            data={
                "start_date": result.start_date.isoformat(),
                "end_date": result.end_date.isoformat(),
                "intensity_multiplier": result.intensity_multiplier,
                "skipped_dates": [day.isoformat() for day in result.skipped_dates],
                "was_last_week_of_plan": last_week,
            },
        )
