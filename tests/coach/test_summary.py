"""Tests for the post-commit change summary."""

from datetime import date

import pytest

from truepace.coach import summary
from truepace.coach.executor import ToolResult
from truepace.config.settings import settings
from truepace.plans.types import WorkoutChange
from truepace.services.llm.model import get_model


@pytest.fixture
def results() -> list[ToolResult]:
    change = WorkoutChange(
        workout_id="w1",
        action="rescheduled",
        scheduled_date=date(2026, 2, 13),
        previous_date=date(2026, 2, 11),
        activity_type="RUN",
        description="5km Run",
    )
    return [
        ToolResult(
            tool_name="rescheduleWorkout",
            modified=[change],
            reasoning=["Moved from 2026-02-11 to 2026-02-13"],
        )
    ]


def _patch_agent(monkeypatch, run_sync):
    class MockAgent:
        def __init__(self, *args, **kwargs):
            self.kwargs = kwargs

        def run_sync(self, prompt):
            return run_sync(prompt)

    monkeypatch.setattr("truepace.coach.summary._get_model", lambda: None)
    monkeypatch.setattr("truepace.coach.summary.Agent", MockAgent)


def test_summary_uses_llm_output(monkeypatch, results):
    monkeypatch.setattr(settings, "openai_api_key", "sk-test")
    monkeypatch.setattr(settings, "summary_enabled", True)
    prompts = []

    def mock_run(prompt):
        prompts.append(prompt)

        class MockResult:
            output = "Your easy run moved from Wednesday to Friday."

        return MockResult()

    _patch_agent(monkeypatch, mock_run)

    assert summary.summarize_tool_results(results) == "Your easy run moved from Wednesday to Friday."
    assert "rescheduleWorkout" in prompts[0]
    assert "2026-02-13" in prompts[0]


def test_summary_returns_none_on_llm_error(monkeypatch, results):
    monkeypatch.setattr(settings, "openai_api_key", "sk-test")
    monkeypatch.setattr(settings, "summary_enabled", True)

    def mock_run(prompt):
        raise RuntimeError("LLM call failed")

    _patch_agent(monkeypatch, mock_run)

    assert summary.summarize_tool_results(results) is None


def test_summary_falls_back_to_plain_text_without_key(monkeypatch, results):
    monkeypatch.setattr(settings, "openai_api_key", "")
    monkeypatch.setattr(settings, "summary_enabled", True)

    text = summary.summarize_tool_results(results)

    assert text == "rescheduleWorkout: 1 workout(s) changed (Moved from 2026-02-11 to 2026-02-13)"


def test_summary_disabled(monkeypatch, results):
    monkeypatch.setattr(settings, "summary_enabled", False)
    assert summary.summarize_tool_results(results) is None


def test_no_results_no_summary():
    assert summary.summarize_tool_results([]) is None


def test_prompt_leaves_out_field_diffs(results):
    results[0].modified[0].fields["target_distance_km"] = 4.0
    prompt = summary.build_summary_prompt(results)
    assert "target_distance_km" not in prompt
    assert "previous_date" in prompt


def test_get_model_defaults_to_summary_model(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setattr(settings, "summary_model", "gpt-4o-mini")

    assert get_model().model_name == "gpt-4o-mini"
    assert get_model("gpt-4o").model_name == "gpt-4o"
