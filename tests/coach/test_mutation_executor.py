"""End-to-end tests for confirmed batches: dispatch, atomicity and summaries."""

from datetime import date, timedelta

import pytest

from truepace.coach.confirmation import BatchState, MutationExecutor
from truepace.coach.tools import ToolCall
from truepace.db.models import ActivityType, WorkoutStatus

USER_ID = "user-1"
TODAY = date(2026, 2, 10)  # Tuesday


def _day(offset: int) -> date:
    return TODAY + timedelta(days=offset)


def _call(tool_name: str, **payload) -> ToolCall:
    return ToolCall(toolName=tool_name, input={"confirmed": True, **payload})


@pytest.fixture
def executor(session_scope) -> MutationExecutor:
    return MutationExecutor(session_scope=session_scope, today_provider=lambda: TODAY)


class TestScenarios:
    def test_fatigue_feedback_eases_the_run(self, executor, make_workout, load_workout):
        workout = make_workout(TODAY, distance=5.0, rpe=5, description="5km Run", workout_id="w1")

        outcome = executor.run(
            USER_ID,
            [
                _call(
                    "updateWorkoutParameters",
                    workoutId="w1",
                    userFeedback="my legs feel heavy and I'm exhausted",
                    adjustmentIntent="decrease",
                )
            ],
        )

        assert outcome.state == BatchState.EXECUTED
        updated = load_workout(workout.id)
        assert updated.target_distance_km == 4.0
        assert "Easy" in updated.description
        assert updated.target_rpe == 3
        assert updated.reasoning_note.startswith("AI-adjusted based on: my legs feel heavy")
        assert updated.reasoning_note.endswith("Intent: decrease")

    def test_reschedule_cascades_conflicting_runs(self, executor, make_workout, load_workout, load_schedule):
        tuesday = make_workout(_day(7), description="Tuesday intervals")
        first = make_workout(_day(0), description="Run A")
        second = make_workout(_day(1), description="Run B")

        outcome = executor.run(
            USER_ID,
            [_call("rescheduleWorkout", workoutId="tuesday_workout", newDate="2026-02-10", reason="race moved")],
        )

        assert outcome.state == BatchState.EXECUTED
        assert load_workout(tuesday.id).scheduled_date == date(2026, 2, 10)
        assert load_workout(first.id).scheduled_date == date(2026, 2, 11)
        assert load_workout(second.id).scheduled_date == date(2026, 2, 12)
        actions = [(c.action, c.workout_id) for c in outcome.results[0].modified]
        assert actions == [("rescheduled", tuesday.id), ("shifted", first.id), ("shifted", second.id)]
        run_dates = [w.scheduled_date for w in load_schedule(activity_type=ActivityType.RUN)]
        assert len(run_dates) == len(set(run_dates))

    def test_severe_injury_without_downtime(self, executor, make_workout, load_schedule):
        for offset in (0, 3, 6, 13):
            make_workout(_day(offset))
        make_workout(_day(17), description="Existing later run")

        outcome = executor.run(
            USER_ID,
            [
                _call(
                    "handleInjuryResponse",
                    injuryType="shin splints",
                    affectedArea="left shin",
                    severity="severe",
                    action="rest_only",
                )
            ],
        )

        assert outcome.state == BatchState.EXECUTED
        assert outcome.results[0].data["downtime_days"] == 14
        runs = load_schedule(activity_type=ActivityType.RUN)
        assert all(not (_day(0) <= run.scheduled_date < _day(14)) for run in runs)
        assert sorted(run.scheduled_date for run in runs) == [_day(14), _day(17), _day(18), _day(20), _day(27)]
        rests = load_schedule(activity_type=ActivityType.REST)
        assert [w.scheduled_date for w in rests] == [_day(0), _day(3), _day(6), _day(13)]


class TestAtomicity:
    def test_failure_in_third_call_discards_earlier_changes(self, executor, make_workout, load_workout):
        a = make_workout(_day(1), distance=10.0)
        b = make_workout(_day(2), distance=10.0)
        c = make_workout(_day(3), distance=10.0)

        calls = [
            _call("rescheduleWorkout", workoutId=a.id, newDate="2026-02-20", reason="travel"),
            _call("updateWorkoutParameters", workoutId=b.id, userFeedback="tired", adjustmentIntent="decrease"),
            _call("rescheduleWorkout", workoutId="no such workout anywhere", newDate="friday", reason="x"),
            _call("updateWorkoutParameters", workoutId=c.id, userFeedback="great", adjustmentIntent="increase"),
            _call("adaptTrainingPlan", adjustmentType="reduce_intensity", reason="deload", duration=7),
        ]

        outcome = executor.run(USER_ID, calls)

        assert outcome.state == BatchState.REJECTED
        assert outcome.error.index == 2
        assert outcome.error.tool_name == "rescheduleWorkout"
        assert outcome.error.code == "not_found"
        assert load_workout(a.id).scheduled_date == _day(1)
        assert load_workout(b.id).target_distance_km == 10.0
        assert load_workout(c.id).target_distance_km == 10.0

    def test_strict_strategy_conflict_rejects(self, executor, make_workout, load_workout):
        mover = make_workout(_day(1))
        make_workout(_day(2))

        outcome = executor.run(
            USER_ID,
            [
                _call(
                    "rescheduleWorkout",
                    workoutId=mover.id,
                    newDate=_day(2).isoformat(),
                    reason="x",
                    resolveStrategy="error",
                )
            ],
        )

        assert outcome.error.code == "conflict"
        assert load_workout(mover.id).scheduled_date == _day(1)

    def test_invalid_date_rejects(self, executor, make_workout):
        run = make_workout(_day(1))
        outcome = executor.run(USER_ID, [_call("rescheduleWorkout", workoutId=run.id, newDate="someday", reason="x")])
        assert outcome.error.code == "invalid_date_format"
        assert "someday" in outcome.error.message

    def test_unknown_tool_rejects(self, executor):
        outcome = executor.run(USER_ID, [_call("deleteEverything")])
        assert outcome.error.code == "execution_failed"
        assert outcome.error.index == 0

    def test_invalid_input_rejects(self, executor, make_workout):
        run = make_workout(_day(1))
        outcome = executor.run(
            USER_ID, [_call("updateWorkoutParameters", workoutId=run.id, adjustmentIntent="sideways")]
        )
        assert outcome.error.code == "execution_failed"
        assert outcome.error.details["tool_name"] == "updateWorkoutParameters"

    def test_completed_workout_cannot_change(self, executor, make_workout, load_workout):
        done = make_workout(_day(-1), status=WorkoutStatus.COMPLETED)
        outcome = executor.run(USER_ID, [_call("rescheduleWorkout", workoutId=done.id, newDate="friday", reason="x")])
        assert outcome.error.code == "execution_failed"
        assert load_workout(done.id).scheduled_date == _day(-1)

    def test_percentage_completion_rate_rejects(self, executor, make_profile, make_workout, load_workout):
        make_profile()
        run = make_workout(_day(1))

        outcome = executor.run(
            USER_ID,
            [
                _call("rescheduleWorkout", workoutId=run.id, newDate="friday", reason="x"),
                _call("generateNextWeek", performanceAnalysis={"completionRate": 85, "averageRpe": "high"}),
            ],
        )

        assert outcome.state == BatchState.REJECTED
        assert outcome.error.code == "execution_failed"
        assert outcome.error.index == 1
        assert outcome.error.tool_name == "generateNextWeek"
        assert load_workout(run.id).scheduled_date == _day(1)

    def test_huge_shift_offset_rejects(self, executor, make_workout, load_workout):
        run = make_workout(_day(1))

        outcome = executor.run(USER_ID, [_call("rescheduleWorkout", workoutIds=[run.id], shiftDays=10**7, reason="x")])

        assert outcome.error.code == "execution_failed"
        assert load_workout(run.id).scheduled_date == _day(1)

    def test_cascade_at_calendar_edge_rejects(self, executor, make_workout, load_workout):
        run = make_workout(_day(1))
        make_workout(date.max)

        outcome = executor.run(USER_ID, [_call("rescheduleWorkout", workoutId=run.id, newDate="9999-12-31", reason="x")])

        assert outcome.state == BatchState.REJECTED
        assert outcome.error.code == "conflict"
        assert load_workout(run.id).scheduled_date == _day(1)

    def test_completed_run_is_never_shifted_out_of_the_way(self, executor, make_workout, load_workout):
        done = make_workout(_day(-1), status=WorkoutStatus.COMPLETED)
        mover = make_workout(_day(3))

        outcome = executor.run(USER_ID, [_call("rescheduleWorkout", workoutId=mover.id, newDate="yesterday", reason="x")])

        assert outcome.error.code == "conflict"
        assert load_workout(done.id).scheduled_date == _day(-1)
        assert load_workout(mover.id).scheduled_date == _day(3)

    def test_missing_profile_rejects_next_week(self, executor, make_workout):
        make_workout(_day(1))
        outcome = executor.run(USER_ID, [_call("generateNextWeek", performanceAnalysis={"completionRate": 0.9})])
        assert outcome.error.code == "execution_failed"
        assert "profile" in outcome.error.message


class TestOtherTools:
    def test_batch_shift(self, executor, make_workout, load_workout):
        a = make_workout(_day(1))
        b = make_workout(_day(2))

        outcome = executor.run(
            USER_ID, [_call("rescheduleWorkout", workoutIds=[a.id, b.id], shiftDays=7, reason="holiday")]
        )

        assert outcome.state == BatchState.EXECUTED
        assert load_workout(a.id).scheduled_date == _day(8)
        assert load_workout(b.id).scheduled_date == _day(9)
        assert {c.action for c in outcome.results[0].modified} == {"shifted"}

    def test_update_with_target_date_moves_the_workout(self, executor, make_workout, load_workout):
        run = make_workout(TODAY, description="6km Tempo Run", distance=6.0, rpe=6)

        outcome = executor.run(
            USER_ID,
            [
                _call(
                    "updateWorkoutParameters",
                    workoutId="today_run",
                    userFeedback="busy day",
                    adjustmentIntent="decrease",
                    targetDate="thursday",
                )
            ],
        )

        assert outcome.state == BatchState.EXECUTED
        updated = load_workout(run.id)
        assert updated.scheduled_date == date(2026, 2, 12)
        assert updated.description == "5km Quick Tempo Run"
        assert "Rescheduled to thursday" in updated.reasoning_note

    def test_calls_run_in_order_in_one_transaction(self, executor, make_profile, make_workout, load_schedule):
        make_profile(goal="TARGET_5K")
        make_workout(_day(1), distance=10.0)

        outcome = executor.run(
            USER_ID,
            [
                _call("adaptTrainingPlan", adjustmentType="reduce_intensity", reason="deload", duration=7),
                _call("generateNextWeek", performanceAnalysis={"completionRate": 1.0, "averageRpe": 6}),
            ],
        )

        assert outcome.state == BatchState.EXECUTED
        assert [r.tool_name for r in outcome.results] == ["adaptTrainingPlan", "generateNextWeek"]
        assert outcome.results[1].data["was_last_week_of_plan"] is True
        schedule = load_schedule()
        assert schedule[0].target_distance_km == 8.0
        assert len(schedule) == 15


class TestSummary:
    def test_summarizer_receives_results(self, session_scope, make_workout):
        run = make_workout(_day(1))
        seen = []

        def summarizer(results):
            seen.extend(results)
            return "Moved your run to Friday."

        executor = MutationExecutor(session_scope=session_scope, summarizer=summarizer, today_provider=lambda: TODAY)
        outcome = executor.run(USER_ID, [_call("rescheduleWorkout", workoutId=run.id, newDate="friday", reason="x")])

        assert outcome.summary == "Moved your run to Friday."
        assert [r.tool_name for r in seen] == ["rescheduleWorkout"]

    def test_summary_failure_keeps_committed_changes(self, session_scope, make_workout, load_workout):
        run = make_workout(_day(1))

        def broken_summarizer(results):
            raise RuntimeError("model unavailable")

        executor = MutationExecutor(
            session_scope=session_scope, summarizer=broken_summarizer, today_provider=lambda: TODAY
        )
        outcome = executor.run(USER_ID, [_call("rescheduleWorkout", workoutId=run.id, newDate="friday", reason="x")])

        assert outcome.state == BatchState.EXECUTED
        assert outcome.summary is None
        assert load_workout(run.id).scheduled_date == date(2026, 2, 13)


def test_tool_call_kind():
    assert ToolCall(toolName="rescheduleWorkout", input={"workoutIds": ["a"], "shiftDays": 2}).kind == "batch-shift"
    assert ToolCall(toolName="rescheduleWorkout", input={"workoutId": "a"}).kind == "reschedule"
    assert ToolCall(tool_name="handleInjuryResponse").kind == "injury-response"
    assert ToolCall(toolName="nope").kind == "unknown"
