"""Confirmation gate and all-or-nothing batch execution.

A batch of proposed tool calls moves through::

    proposed -> (auto_confirmed | awaiting_confirmation) -> executed | rejected

One affirmative reply from the user confirms every call in the pending
batch. Selective confirmation of a subset is not supported.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from datetime import date
from enum import StrEnum
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError

from truepace.calendar.conflicts import ShiftedWorkout
from truepace.calendar.dates import today_in_reference_timezone
from truepace.calendar.store import ScheduleStore
from truepace.coach.errors import ExecutionFailedError, PlanMutationError
from truepace.coach.executor import PlanMutationEngine, ToolResult
from truepace.coach.tools import ToolCall
from truepace.db.session import SessionScope, get_session

AFFIRMATIVE_PATTERN = re.compile(
    r"\b(?:please do it|do it|go ahead|confirmed|confirm|yes|yep|yeah|okay|ok|sure|apply|y)\b",
    re.IGNORECASE,
)
NEGATION_PATTERN = re.compile(
    r"\b(?:no|nope|not|don't|dont|do not|never|cancel|stop|wait|hold on)\b",
    re.IGNORECASE,
)

Summarizer = Callable[[list[ToolResult]], str | None]


class BatchState(StrEnum):
    PROPOSED = "proposed"
    AUTO_CONFIRMED = "auto_confirmed"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    EXECUTED = "executed"
    REJECTED = "rejected"


def is_affirmative(message: str | None) -> bool:
    """An affirmative word with no negation anywhere in the message."""
    if not message or NEGATION_PATTERN.search(message):
        return False
    return AFFIRMATIVE_PATTERN.search(message) is not None


class ConfirmationGate:
    """Decides whether a batch may run."""

    def review(self, calls: list[ToolCall], latest_user_message: str | None = None) -> tuple[BatchState, list[ToolCall]]:
        """Return the batch state and the calls with their confirmation applied."""
        if is_affirmative(latest_user_message):
            return BatchState.AUTO_CONFIRMED, [call.mark_confirmed() for call in calls]
        if all(call.confirmed for call in calls):
            return BatchState.AUTO_CONFIRMED, list(calls)
        return BatchState.AWAITING_CONFIRMATION, list(calls)


class BatchError(BaseModel):
    index: int | None = Field(default=None, description="Position of the failing call, None for commit-time failures")
    tool_name: str | None = None
    code: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class BatchOutcome(BaseModel):
    state: BatchState
    requires_confirmation: bool = False
    pending: list[ToolCall] = Field(default_factory=list)
    results: list[ToolResult] = Field(default_factory=list)
    repaired: list[ShiftedWorkout] = Field(default_factory=list)
    error: BatchError | None = None
    summary: str | None = None


class MutationExecutor:
    """Runs confirmed batches in one transaction.

    Args:
        session_scope: Context-manager factory yielding a session that commits
            on normal exit and rolls back on error
        summarizer: Optional post-commit summary hook
        today_provider: Source of "today" for date expressions
    """

    def __init__(
        self,
        session_scope: SessionScope = get_session,
        summarizer: Summarizer | None = None,
        today_provider: Callable[[], date] = today_in_reference_timezone,
        gate: ConfirmationGate | None = None,
    ):
        self.session_scope = session_scope
        self.summarizer = summarizer
        self.today_provider = today_provider
        self.gate = gate or ConfirmationGate()

    def run(self, user_id: str, calls: list[ToolCall], latest_user_message: str | None = None) -> BatchOutcome:
        state, reviewed = self.gate.review(calls, latest_user_message)
        if state == BatchState.AWAITING_CONFIRMATION:
            logger.info(
                "Batch awaiting confirmation",
                user_id=user_id,
                pending=len(reviewed),
                unconfirmed=sum(1 for call in reviewed if not call.confirmed),
            )
            return BatchOutcome(state=state, requires_confirmation=True, pending=reviewed)

        if not reviewed:
            return BatchOutcome(state=BatchState.EXECUTED)

        today = self.today_provider()
        results: list[ToolResult] = []
        repaired: list[ShiftedWorkout] = []
        failed_index: int | None = None

        try:
            with self.session_scope() as session:
                engine = PlanMutationEngine(ScheduleStore(session), today)
                for index, call in enumerate(reviewed):
                    failed_index = index
                    results.append(engine.execute(call, user_id))
                failed_index = None

                touched = set().union(*(result.touched_ids for result in results))
                repaired = engine.conflicts.repair_collisions(user_id, touched)
        except PlanMutationError as e:
            return self._rejected(user_id, reviewed, failed_index, e)
        except SQLAlchemyError as e:
            logger.exception("Database error while executing batch", user_id=user_id)
            error = ExecutionFailedError(f"Database error: {type(e).__name__}")
            return self._rejected(user_id, reviewed, failed_index, error)

        logger.info(
            "Batch executed",
            user_id=user_id,
            calls=len(reviewed),
            modified=sum(len(result.modified) for result in results),
            repaired=len(repaired),
        )
        return BatchOutcome(
            state=BatchState.EXECUTED,
            results=results,
            repaired=repaired,
            summary=self._summarize(results),
        )

    def _rejected(
        self,
        user_id: str,
        calls: list[ToolCall],
        index: int | None,
        error: PlanMutationError,
    ) -> BatchOutcome:
        tool_name = calls[index].tool_name if index is not None else None
        logger.warning(
            "Batch rejected, nothing committed",
            user_id=user_id,
            index=index,
            tool_name=tool_name,
            code=error.code,
            message=error.message,
        )
        return BatchOutcome(
            state=BatchState.REJECTED,
            error=BatchError(index=index, tool_name=tool_name, **error.to_payload()),
        )

    def _summarize(self, results: list[ToolResult]) -> str | None:
        if self.summarizer is None:
            return None
        try:
            return self.summarizer(results)
        except Exception:
            logger.exception("Change summary failed; committed changes are kept")
            return None
