"""Recent training performance for next-block generation."""

from __future__ import annotations

import math
from datetime import date, timedelta
from typing import Literal

from pydantic import BaseModel, Field

from truepace.calendar.store import ScheduleStore
from truepace.db.models import ActivityType

ANALYSIS_WEEKS = 8
LAST_WEEK_THRESHOLD_DAYS = 7


class PerformanceAnalysis(BaseModel):
    completion_rate: float = Field(ge=0.0, le=1.0)
    average_rpe: float = 0.0
    injury_reports: int = 0
    injury_rate: float = 0.0
    weekly_distances: list[float] = Field(default_factory=list, description="Oldest week first")
    distance_trend: float = 0.0
    consistency: float = Field(default=0.0, description="Standard deviation of weekly distance")
    total_runs: int = 0
    completed_runs: int = 0
    data_quality: Literal["good", "fair", "limited"] = "limited"


def analyze_user_performance(store: ScheduleStore, user_id: str, today: date) -> PerformanceAnalysis:
    """Completion, effort and volume over the last eight weeks."""
    start = today - timedelta(weeks=ANALYSIS_WEEKS)
    workouts = store.list_window(user_id, start, today)
    logs = store.run_logs_by_workout([workout.id for workout in workouts])

    runs = [workout for workout in workouts if workout.activity_type == ActivityType.RUN]
    completed = [run for run in runs if run.id in logs]
    completed_logs = [logs[workout.id] for workout in workouts if workout.id in logs]

    completion_rate = len(completed) / len(runs) if runs else 0.0
    average_rpe = sum(log.actual_rpe or 0 for log in completed_logs) / len(completed_logs) if completed_logs else 0.0
    injury_reports = sum(1 for log in completed_logs if log.pain_reported)
    injury_rate = injury_reports / len(completed_logs) if completed_logs else 0.0

    weekly_distances: list[float] = []
    for week in range(ANALYSIS_WEEKS - 1, -1, -1):
        week_end = today - timedelta(days=week * 7)
        week_start = week_end - timedelta(days=6)
        weekly_distances.append(
            sum(
                logs[run.id].actual_distance_km or 0.0
                for run in completed
                if week_start <= run.scheduled_date <= week_end
            )
        )

    half = ANALYSIS_WEEKS // 2
    older_avg = sum(weekly_distances[:half]) / half
    recent_avg = sum(weekly_distances[half:]) / half
    mean = sum(weekly_distances) / len(weekly_distances)
    variance = sum((distance - mean) ** 2 for distance in weekly_distances) / len(weekly_distances)

    if len(workouts) >= 20:
        data_quality = "good"
    elif len(workouts) >= 10:
        data_quality = "fair"
    else:
        data_quality = "limited"

    return PerformanceAnalysis(
        completion_rate=completion_rate,
        average_rpe=round(average_rpe, 2),
        injury_reports=injury_reports,
        injury_rate=round(injury_rate, 3),
        weekly_distances=weekly_distances,
        distance_trend=round(recent_avg - older_avg, 2),
        consistency=round(math.sqrt(variance), 2),
        total_runs=len(runs),
        completed_runs=len(completed),
        data_quality=data_quality,
    )


def is_last_week_of_plan(store: ScheduleStore, user_id: str, today: date) -> bool:
    """True when the latest scheduled workout is at most a week away."""
    latest = store.latest_workout(user_id)
    if latest is None:
        return False
    return (latest.scheduled_date - today).days <= LAST_WEEK_THRESHOLD_DAYS
