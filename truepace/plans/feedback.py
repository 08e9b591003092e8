"""Feedback classification and bounded parameter adjustment.

Free-text feedback plus a declared intent becomes an AdjustmentPolicy via
ordered keyword rule tables. The policy is then applied to one workout with
type-specific floors, RPE bands and label rewrites.
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal

from truepace.db.models import ScheduledWorkout

AdjustmentIntent = Literal["increase", "decrease", "maintain"]


@dataclass(frozen=True)
class AdjustmentPolicy:
    intensity_multiplier: float
    rpe_delta: int
    duration_multiplier: float
    label_prefix: str
    reason_tags: tuple[str, ...] = ()

    @property
    def is_identity(self) -> bool:
        return self.intensity_multiplier == 1.0 and self.rpe_delta == 0 and self.duration_multiplier == 1.0


@dataclass(frozen=True)
class FeedbackRule:
    """A (predicate, policy) pair; the first rule whose predicate holds wins."""

    name: str
    predicate: Callable[[str], bool]
    policy: AdjustmentPolicy


def mentions(*terms: str) -> Callable[[str], bool]:
    """Predicate: any term occurs in the lowercase feedback."""

    def predicate(text: str) -> bool:
        return any(term in text for term in terms)

    return predicate


DECREASE_RULES: tuple[FeedbackRule, ...] = (
    FeedbackRule(
        "illness",
        mentions("cold", "sick", "flu", "unwell"),
        AdjustmentPolicy(0.5, -3, 0.6, "Recovery", ("Illness detected: major intensity reduction for recovery",)),
    ),
    FeedbackRule(
        "injury",
        mentions("injury", "pain", "hurt", "sore"),
        AdjustmentPolicy(0.4, -4, 0.5, "Rehab", ("Injury concern: very conservative adjustment for safety",)),
    ),
    FeedbackRule(
        "fatigue",
        mentions("tired", "fatigue", "exhausted", "drained"),
        AdjustmentPolicy(0.7, -2, 0.8, "Easy", ("Fatigue detected: moderate intensity reduction",)),
    ),
    FeedbackRule(
        "time_constraint",
        mentions("busy", "time", "short", "quick"),
        AdjustmentPolicy(0.9, 0, 0.6, "Quick", ("Time constraint: maintaining intensity with shorter duration",)),
    ),
    FeedbackRule(
        "stress",
        mentions("stress", "overwhelmed", "mental"),
        AdjustmentPolicy(0.8, -1, 0.7, "Light", ("Mental stress: reducing overall load",)),
    ),
)
DEFAULT_DECREASE = AdjustmentPolicy(0.75, -1, 0.8, "Easy", ("General decrease: moderate intensity reduction",))

INCREASE_RULES: tuple[FeedbackRule, ...] = (
    FeedbackRule(
        "positive",
        mentions("good", "great", "strong", "energetic"),
        AdjustmentPolicy(1.2, 1, 1.1, "Progressive", ("Feeling strong: progressive overload applied",)),
    ),
    FeedbackRule(
        "race",
        mentions("race", "competition", "event"),
        AdjustmentPolicy(1.3, 2, 1.0, "Peak", ("Race preparation: peak intensity applied",)),
    ),
    FeedbackRule(
        "catch_up",
        mentions("behind", "catch", "makeup"),
        AdjustmentPolicy(1.15, 1, 1.2, "Catch-up", ("Making up for missed workouts: balanced increase",)),
    ),
)
DEFAULT_INCREASE = AdjustmentPolicy(1.1, 1, 1.1, "Challenging", ("General increase: moderate intensity boost",))

MAINTAIN_POLICY = AdjustmentPolicy(1.0, 0, 1.0, "", ("Maintain: parameters unchanged, feedback recorded",))

RULE_TABLES: dict[str, tuple[tuple[FeedbackRule, ...], AdjustmentPolicy]] = {
    "decrease": (DECREASE_RULES, DEFAULT_DECREASE),
    "increase": (INCREASE_RULES, DEFAULT_INCREASE),
}

LABEL_PREFIXES = sorted(
    {
        rule.policy.label_prefix
        for rules, _ in RULE_TABLES.values()
        for rule in rules
    }
    | {DEFAULT_DECREASE.label_prefix, DEFAULT_INCREASE.label_prefix},
    key=len,
    reverse=True,
)
_PRIOR_LABEL = rf"(?:(?:{'|'.join(re.escape(p) for p in LABEL_PREFIXES)})\s+)?"


def classify_feedback(feedback_text: str, intent: AdjustmentIntent) -> AdjustmentPolicy:
    """Map feedback and a declared intent to an adjustment policy."""
    if intent not in RULE_TABLES:
        return MAINTAIN_POLICY

    rules, default = RULE_TABLES[intent]
    text = (feedback_text or "").lower()
    for rule in rules:
        if rule.predicate(text):
            return rule.policy
    return default


@dataclass(frozen=True)
class WorkoutCategory:
    """Type-specific bounds and label rewrites.

    Label rules are tried in order and only the first matching fragment is
    rewritten. Any label a previous adjustment left in front of the fragment
    is replaced rather than stacked.
    """

    name: str
    keyword: str | None
    min_distance_km: float
    rpe_floor: int
    rpe_ceiling: int
    label_rules: tuple[tuple[str, str], ...]


INTERVAL = WorkoutCategory(
    "interval",
    "interval",
    2,
    1,
    10,
    (
        (r"(?:10K\s+)?Goal Pace Intervals", "{prefix} Intervals"),
        (_PRIOR_LABEL + r"Intervals", "{prefix} Intervals"),
        (r"Goal Pace", "{prefix} Pace"),
    ),
)
TEMPO = WorkoutCategory("tempo", "tempo", 3, 3, 10, ((_PRIOR_LABEL + r"Tempo", "{prefix} Tempo"),))
LONG = WorkoutCategory("long", "long", 5, 2, 8, ((_PRIOR_LABEL + r"Long", "{prefix} Long"),))
REGULAR = WorkoutCategory("regular", None, 2, 1, 10, ((_PRIOR_LABEL + r"\bRun\b", "{prefix} Run"),))

CATEGORIES: tuple[WorkoutCategory, ...] = (INTERVAL, TEMPO, LONG)

_DISTANCE_IN_TEXT = re.compile(r"\d+(?:\.\d+)?\s?km", re.IGNORECASE)


def categorize_workout(description: str | None) -> WorkoutCategory:
    text = (description or "").lower()
    for category in CATEGORIES:
        if category.keyword and category.keyword in text:
            return category
    return REGULAR


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def relabel(description: str, category: WorkoutCategory, prefix: str) -> str:
    if not prefix:
        return description
    for pattern, replacement in category.label_rules:
        regex = re.compile(pattern, re.IGNORECASE)
        if regex.search(description):
            return regex.sub(replacement.format(prefix=prefix), description, count=1)
    return description


def apply_policy(workout: ScheduledWorkout, policy: AdjustmentPolicy) -> dict[str, Any]:
    """Compute the mutated fields for one workout. Does not write anything.

    Returns:
        Only the fields whose values change under the policy
    """
    if policy.is_identity:
        return {}

    category = categorize_workout(workout.description)
    fields: dict[str, Any] = {}

    new_distance: int | None = None
    if workout.target_distance_km:
        new_distance = max(
            int(category.min_distance_km),
            round_half_up(workout.target_distance_km * policy.intensity_multiplier),
        )
        fields["target_distance_km"] = float(new_distance)

    if workout.target_duration_min:
        fields["target_duration_min"] = max(1, round_half_up(workout.target_duration_min * policy.duration_multiplier))

    if workout.target_rpe is not None:
        fields["target_rpe"] = min(category.rpe_ceiling, max(category.rpe_floor, workout.target_rpe + policy.rpe_delta))

    if workout.description:
        description = workout.description
        if new_distance is not None:
            description = _DISTANCE_IN_TEXT.sub(f"{new_distance}km", description, count=1)
        description = relabel(description, category, policy.label_prefix)
        if description != workout.description:
            fields["description"] = description

    return fields


def build_reasoning_note(feedback: str, policy: AdjustmentPolicy, intent: str, extra: list[str] | None = None) -> str:
    reasons = [*policy.reason_tags, *(extra or [])]
    return f"AI-adjusted based on: {feedback}. {'. '.join(reasons)}. Intent: {intent}"
