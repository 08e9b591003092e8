"""Error taxonomy for plan mutations.

Every error here is recoverable from the caller's point of view. The batch
executor turns them into a rejected outcome; none of them should reach the
host process as an unhandled exception.
"""

from __future__ import annotations

from datetime import date
from typing import Any


class PlanMutationError(Exception):
    """Base class for domain errors raised while mutating a plan."""

    code = "plan_mutation_error"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_payload(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class InvalidDateFormatError(PlanMutationError):
    """A date expression could not be turned into a calendar date."""

    code = "invalid_date_format"

    def __init__(self, expression: str):
        self.expression = expression
        super().__init__(
            f"Invalid date format: '{expression}'. Use a specific date (YYYY-MM-DD), "
            "'today', 'tomorrow' or a day of the week.",
            details={"expression": expression},
        )


class WorkoutNotFoundError(PlanMutationError):
    """A workout reference did not resolve to a stored workout."""

    code = "not_found"

    def __init__(self, reference: str, message: str, candidates: list[dict[str, Any]] | None = None):
        self.reference = reference
        self.candidates = candidates or []
        super().__init__(message, details={"reference": reference, "candidates": self.candidates})


class AmbiguousReferenceError(PlanMutationError):
    """Several workouts match a reference equally well."""

    code = "ambiguous"

    def __init__(self, reference: str, candidates: list[dict[str, Any]]):
        self.reference = reference
        self.candidates = candidates
        super().__init__(
            f"'{reference}' matches more than one workout. Specify an exact date or a clearer description.",
            details={"reference": reference, "candidates": candidates},
        )


class ScheduleConflictError(PlanMutationError):
    """A RUN is already scheduled on the requested date."""

    code = "conflict"

    def __init__(self, conflict_date: date, message: str | None = None):
        self.conflict_date = conflict_date
        super().__init__(
            message or f"There is already a run scheduled for {conflict_date.isoformat()}",
            details={"date": conflict_date.isoformat()},
        )


class ExecutionFailedError(PlanMutationError):
    """A domain rule was violated while executing a tool call."""

    code = "execution_failed"
