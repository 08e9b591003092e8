"""Tests for the confirmation gate."""

from datetime import date

import pytest

from truepace.coach.confirmation import BatchState, ConfirmationGate, MutationExecutor, is_affirmative
from truepace.coach.tools import ToolCall

USER_ID = "user-1"
TODAY = date(2026, 2, 10)


def _call(workout_id: str, confirmed: bool | None = None) -> ToolCall:
    payload = {"workoutId": workout_id, "newDate": "2026-02-12", "reason": "busy"}
    if confirmed is not None:
        payload["confirmed"] = confirmed
    return ToolCall(toolName="rescheduleWorkout", input=payload)


@pytest.mark.parametrize(
    "message",
    ["yes", "Yes please", "yep", "yeah sure", "y", "Confirm", "confirmed!", "do it", "Go ahead", "apply it",
     "please do it", "ok", "OKAY then"],
)
def test_affirmative_messages(message):
    assert is_affirmative(message)


@pytest.mark.parametrize(
    "message",
    ["no", "not now", "yesterday was hard", "maybe later", "", None, "okra", "I'm not sure",
     "no, don't do it", "wait, yes but later", "cancel that, ok?"],
)
def test_non_affirmative_messages(message):
    assert not is_affirmative(message)


class TestConfirmationGate:
    def test_unconfirmed_call_holds_the_batch(self):
        state, calls = ConfirmationGate().review([_call("a", confirmed=True), _call("b")])
        assert state == BatchState.AWAITING_CONFIRMATION
        assert [c.confirmed for c in calls] == [True, False]

    def test_all_confirmed_flags(self):
        state, _ = ConfirmationGate().review([_call("a", confirmed=True), _call("b", confirmed=True)])
        assert state == BatchState.AUTO_CONFIRMED

    def test_affirmative_reply_confirms_every_call(self):
        state, calls = ConfirmationGate().review([_call("a"), _call("b", confirmed=False)], "yes, go ahead")
        assert state == BatchState.AUTO_CONFIRMED
        assert all(c.confirmed for c in calls)

    def test_confirmed_must_be_true_not_truthy(self):
        call = ToolCall(toolName="rescheduleWorkout", input={"confirmed": "yes"})
        assert call.confirmed is False


def test_awaiting_batch_executes_nothing(session_scope, make_workout, load_workout):
    first = make_workout(TODAY)
    second = make_workout(date(2026, 2, 11))
    calls = [_call(first.id, confirmed=True), _call(second.id)]

    outcome = MutationExecutor(session_scope=session_scope, today_provider=lambda: TODAY).run(
        USER_ID, calls, "what would that look like?"
    )

    assert outcome.state == BatchState.AWAITING_CONFIRMATION
    assert outcome.requires_confirmation is True
    assert len(outcome.pending) == 2
    assert outcome.results == []
    assert load_workout(first.id).scheduled_date == TODAY
    assert load_workout(second.id).scheduled_date == date(2026, 2, 11)
