"""Workout reference resolution.

Turns whatever the caller used to name a workout (a symbolic slot such as
``tuesday_workout``, a literal id, or a free-text description) into exactly
one stored workout, or a typed failure the caller can act on.

Strategies run in rank order. Each returns a ResolutionResult when it is
conclusive and None when it does not apply, so every strategy can be tested
on its own.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any

from loguru import logger

from truepace.calendar.dates import WEEKDAYS, parse_date_expression
from truepace.calendar.store import ScheduleStore
from truepace.coach.errors import AmbiguousReferenceError, InvalidDateFormatError, WorkoutNotFoundError
from truepace.db.models import ScheduledWorkout

FUZZY_WINDOW_DAYS_BEFORE = 7
FUZZY_WINDOW_DAYS_AFTER = 14
MAX_LISTED_CANDIDATES = 10
MIN_TOKEN_LENGTH = 3

_DAY_TOKENS = ("today", "tomorrow", "yesterday", "current", *WEEKDAYS)
_SYMBOLIC_REF = re.compile(
    rf"^(?P<day>{'|'.join(_DAY_TOKENS)})[_\s-]+(?:workout|run|session)s?$",
    re.IGNORECASE,
)
_EMBEDDED_ISO_DATE = re.compile(r"\d{4}-\d{2}-\d{2}")
_TOKEN = re.compile(r"[a-z0-9]+")

GUIDANCE = "Specify an exact date (YYYY-MM-DD) or a clearer description of the workout."


@dataclass(frozen=True)
class Found:
    workout_id: str
    strategy: str


@dataclass(frozen=True)
class NotFound:
    reference: str
    message: str
    candidates: list[dict[str, Any]] = field(default_factory=list)

    def to_error(self) -> WorkoutNotFoundError:
        return WorkoutNotFoundError(self.reference, self.message, self.candidates)


@dataclass(frozen=True)
class Ambiguous:
    reference: str
    candidates: list[dict[str, Any]] = field(default_factory=list)


ResolutionResult = Found | NotFound | Ambiguous


@dataclass(frozen=True)
class ResolutionContext:
    store: ScheduleStore
    user_id: str
    today: date


Strategy = Callable[[str, ResolutionContext], ResolutionResult | None]


def describe_candidate(workout: ScheduledWorkout) -> dict[str, Any]:
    return {
        "id": workout.id,
        "date": workout.scheduled_date.isoformat(),
        "activity_type": str(workout.activity_type),
        "description": workout.description or "",
    }


def format_candidates(candidates: list[dict[str, Any]]) -> str:
    return "; ".join(f"{c['date']} {c['description'] or c['activity_type']}" for c in candidates)


def symbolic_slot_strategy(ref: str, ctx: ResolutionContext) -> ResolutionResult | None:
    """``today_workout``, ``tuesday_run``, ``current_run`` -> the RUN on that date."""
    match = _SYMBOLIC_REF.match(ref.strip())
    if match is None:
        return None

    day_token = match.group("day").lower()
    if day_token == "current":
        day_token = "today"
    target_date = parse_date_expression(day_token, ctx.today)

    workout = ctx.store.find_run_on(ctx.user_id, target_date)
    if workout is None:
        return NotFound(
            reference=ref,
            message=(
                f"No run found for {day_token} ({target_date.isoformat()}). "
                f"{GUIDANCE}"
            ),
        )
    return Found(workout_id=workout.id, strategy="symbolic")


def literal_id_strategy(ref: str, ctx: ResolutionContext) -> ResolutionResult | None:
    workout = ctx.store.find_workout(ctx.user_id, ref.strip())
    if workout is None:
        return None
    return Found(workout_id=workout.id, strategy="literal_id")


def _tokens(text: str) -> list[str]:
    return [token for token in _TOKEN.findall(text.lower()) if len(token) >= MIN_TOKEN_LENGTH]


def match_on_date(ref: str, embedded: str, candidates: list[ScheduledWorkout]) -> ScheduledWorkout | None:
    """Pick a workout on the embedded date: exact text, then containment, then first."""
    if not candidates:
        return None

    remaining = ref.replace(embedded, " ")
    remaining = " ".join(_TOKEN.findall(remaining.lower()))
    if remaining:
        for workout in candidates:
            if (workout.description or "").strip().lower() == remaining:
                return workout
        for workout in candidates:
            if remaining in (workout.description or "").lower():
                return workout
    return candidates[0]


def score_candidates(ref: str, candidates: list[ScheduledWorkout]) -> tuple[ScheduledWorkout | None, int]:
    """Best candidate by count of reference tokens found in its description.

    Candidates must be ordered by date; the first maximum wins, so ties go to
    the earliest workout.
    """
    tokens = _tokens(ref)
    best: ScheduledWorkout | None = None
    best_score = 0
    for workout in candidates:
        description = (workout.description or "").lower()
        score = sum(1 for token in tokens if token in description)
        if score > best_score:
            best, best_score = workout, score
    return best, best_score


def fuzzy_strategy(ref: str, ctx: ResolutionContext) -> ResolutionResult:
    start = ctx.today - timedelta(days=FUZZY_WINDOW_DAYS_BEFORE)
    end = ctx.today + timedelta(days=FUZZY_WINDOW_DAYS_AFTER)
    window = ctx.store.list_window(ctx.user_id, start, end)
    nearby = [describe_candidate(workout) for workout in window[:MAX_LISTED_CANDIDATES]]

    embedded = _EMBEDDED_ISO_DATE.search(ref)
    if embedded is not None:
        try:
            day = date.fromisoformat(embedded.group(0))
        except ValueError:
            day = None
        if day is not None:
            on_date = [workout for workout in window if workout.scheduled_date == day]
            workout = match_on_date(ref, embedded.group(0), on_date)
            if workout is not None:
                return Found(workout_id=workout.id, strategy="fuzzy_date")
            return NotFound(
                reference=ref,
                message=_not_found_message(ref, nearby, f"No workout scheduled on {day.isoformat()}."),
                candidates=nearby,
            )

    workout, score = score_candidates(ref, window)
    if workout is None or score == 0:
        return NotFound(reference=ref, message=_not_found_message(ref, nearby), candidates=nearby)
    return Found(workout_id=workout.id, strategy="fuzzy_description")


def _not_found_message(ref: str, nearby: list[dict[str, Any]], prefix: str | None = None) -> str:
    parts = [prefix or f"Could not find a workout matching '{ref}'.", GUIDANCE]
    if nearby:
        parts.append(f"Did you mean: {format_candidates(nearby)}")
    return " ".join(parts)


DEFAULT_STRATEGIES: tuple[Strategy, ...] = (symbolic_slot_strategy, literal_id_strategy, fuzzy_strategy)


class IdentifierResolver:
    """Resolves workout references for one store, read-only."""

    def __init__(self, store: ScheduleStore, strategies: tuple[Strategy, ...] = DEFAULT_STRATEGIES):
        self.store = store
        self.strategies = strategies

    def resolve(self, ref: str | None, user_id: str, today: date) -> ResolutionResult:
        if not isinstance(ref, str) or not ref.strip():
            return NotFound(reference=str(ref or ""), message=f"No workout reference given. {GUIDANCE}")

        ctx = ResolutionContext(store=self.store, user_id=user_id, today=today)
        for strategy in self.strategies:
            try:
                result = strategy(ref, ctx)
            except InvalidDateFormatError:
                result = NotFound(reference=ref, message=f"Could not interpret '{ref}'. {GUIDANCE}")
            if result is not None:
                logger.debug(
                    "Workout reference resolved",
                    reference=ref,
                    strategy=strategy.__name__,
                    outcome=type(result).__name__,
                )
                return result

        return NotFound(reference=ref, message=f"Could not find a workout matching '{ref}'. {GUIDANCE}")

    def resolve_workout(self, ref: str | None, user_id: str, today: date) -> ScheduledWorkout:
        """Resolve and load the workout.

        Raises:
            WorkoutNotFoundError: If the reference does not resolve.
            AmbiguousReferenceError: If a strategy reports several equal matches.
        """
        result = self.resolve(ref, user_id, today)
        if isinstance(result, Found):
            workout = self.store.find_workout(user_id, result.workout_id)
            if workout is not None:
                return workout
            raise WorkoutNotFoundError(str(ref), f"Workout '{ref}' disappeared while resolving. {GUIDANCE}")
        if isinstance(result, Ambiguous):
            raise AmbiguousReferenceError(result.reference, result.candidates)
        raise result.to_error()
