"""Next-block generation (generateNextWeek).

Appends ``target_weeks`` weeks after the last scheduled workout, scaled by
how the runner has been doing.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field, ValidationError
from pydantic.alias_generators import to_snake

from truepace.calendar.store import ScheduleStore
from truepace.coach.errors import ExecutionFailedError
from truepace.db.models import ActivityType, WorkoutStatus
from truepace.plans.feedback import round_half_up
from truepace.plans.performance import PerformanceAnalysis, analyze_user_performance
from truepace.plans.types import WorkoutChange

DEFAULT_TARGET_WEEKS = 2
BASE_RUN_DURATION_MIN = 30
CROSS_TRAIN_DURATION_MIN = 45
BASE_DISTANCE_BY_GOAL = {"TARGET_5K": 5.0, "TARGET_10K": 8.0}
DEFAULT_BASE_DISTANCE_KM = 3.0


class NextBlockResult(BaseModel):
    start_date: date
    end_date: date
    intensity_multiplier: float
    analysis: PerformanceAnalysis
    changes: list[WorkoutChange] = Field(default_factory=list)
    skipped_dates: list[date] = Field(default_factory=list, description="RUN slots already taken")
    reasoning: list[str] = Field(default_factory=list)


def intensity_multiplier(analysis: PerformanceAnalysis) -> float:
    if analysis.completion_rate < 0.7:
        return 0.8
    if analysis.average_rpe > 7:
        return 0.9
    if analysis.completion_rate > 0.9 and analysis.average_rpe < 5:
        return 1.1
    return 1.0


def sunday_based_index(day: date) -> int:
    """0 for Sunday through 6 for Saturday."""
    return (day.weekday() + 1) % 7


def merge_analysis(provided: dict[str, Any] | None, computed: PerformanceAnalysis) -> PerformanceAnalysis:
    """Caller-provided analysis fields win; the rest come from the schedule.

    Raises:
        ExecutionFailedError: If a provided value is out of range or mistyped,
            e.g. a completion rate given as a percentage.
    """
    if not provided:
        return computed
    merged = computed.model_dump()
    for key, value in provided.items():
        name = to_snake(key)
        if name in merged and value is not None:
            merged[name] = value
    try:
        return PerformanceAnalysis.model_validate(merged)
    except ValidationError as e:
        raise ExecutionFailedError(
            f"Invalid performance analysis: {e.error_count()} validation error(s)",
            details={"errors": e.errors(include_url=False, include_context=False)},
        ) from e


class NextBlockGenerator:
    def __init__(self, store: ScheduleStore):
        self.store = store

    def generate(
        self,
        user_id: str,
        today: date,
        performance_analysis: dict[str, Any] | None = None,
        maintain_progression: bool = False,
        target_weeks: int = DEFAULT_TARGET_WEEKS,
    ) -> NextBlockResult:
        """Create the next block of workouts.

        Raises:
            ExecutionFailedError: If the user has no profile or no workouts yet.
        """
        profile = self.store.get_profile(user_id)
        if profile is None:
            raise ExecutionFailedError("User profile not found", details={"user_id": user_id})

        latest = self.store.latest_workout(user_id)
        if latest is None:
            raise ExecutionFailedError("No existing workouts found", details={"user_id": user_id})

        analysis = merge_analysis(performance_analysis, analyze_user_performance(self.store, user_id, today))
        multiplier = intensity_multiplier(analysis)
        base_distance = BASE_DISTANCE_BY_GOAL.get(profile.goal or "", DEFAULT_BASE_DISTANCE_KM)
        start = latest.scheduled_date + timedelta(days=1)
        days = target_weeks * 7

        result = NextBlockResult(
            start_date=start,
            end_date=start + timedelta(days=days - 1),
            intensity_multiplier=multiplier,
            analysis=analysis,
        )
        completion_pct = round(analysis.completion_rate * 100)

        for offset in range(days):
            day = start + timedelta(days=offset)
            index = sunday_based_index(day)
            if index % 3 == 0:
                if self.store.find_run_on(user_id, day) is not None:
                    result.skipped_dates.append(day)
                    continue
                fields = {
                    "activity_type": ActivityType.RUN,
                    "target_distance_km": round(base_distance * multiplier, 2),
                    "target_duration_min": round_half_up(BASE_RUN_DURATION_MIN * multiplier),
                    "description": "Progression Run" if maintain_progression else "Maintenance Run",
                    "reasoning_note": f"Generated based on {completion_pct}% completion rate",
                }
            elif index % 5 == 0:
                fields = {
                    "activity_type": ActivityType.CROSS_TRAIN,
                    "target_duration_min": CROSS_TRAIN_DURATION_MIN,
                    "description": "Cross Training",
                    "reasoning_note": "Active recovery day",
                }
            else:
                fields = {
                    "activity_type": ActivityType.REST,
                    "description": "Rest Day",
                    "reasoning_note": "Recovery day",
                }

            workout = self.store.add_workout(
                user_id=user_id, scheduled_date=day, status=WorkoutStatus.SCHEDULED, **fields
            )
            result.changes.append(WorkoutChange.from_workout(workout, "created"))

        result.reasoning.append(
            f"Generated {len(result.changes)} workouts from {start.isoformat()} "
            f"at {multiplier:.0%} intensity ({completion_pct}% completion, RPE {analysis.average_rpe})"
        )
        logger.info(
            "Next block generated",
            user_id=user_id,
            start=start.isoformat(),
            created=len(result.changes),
            skipped=len(result.skipped_dates),
            multiplier=multiplier,
        )
        return result
