"""Human-readable summary of an executed batch.

Best effort: called only after the batch committed, and any failure here is
logged and swallowed so it can never undo a committed change.
"""

from __future__ import annotations

import json

from loguru import logger
from pydantic_ai import Agent

from truepace.coach.executor import ToolResult
from truepace.config.settings import settings
from truepace.services.llm.model import get_model

SUMMARY_SYSTEM_PROMPT = (
    "You are a running coach. Summarize the training plan changes below for the runner "
    "in two or three short sentences. Mention dates and what changed. Do not invent changes."
)


def _get_model():
    return get_model(settings.summary_model)


def build_summary_prompt(results: list[ToolResult]) -> str:
    payload = [
        {
            "tool": result.tool_name,
            "reasoning": result.reasoning,
            "changes": [change.model_dump(mode="json", exclude={"fields"}) for change in result.modified],
        }
        for result in results
    ]
    return json.dumps(payload, indent=2)


def describe_results(results: list[ToolResult]) -> str:
    """Plain-text fallback used when no model is configured."""
    lines = []
    for result in results:
        reasons = "; ".join(result.reasoning) or "no details"
        lines.append(f"{result.tool_name}: {len(result.modified)} workout(s) changed ({reasons})")
    return "\n".join(lines)


def summarize_tool_results(results: list[ToolResult]) -> str | None:
    if not results:
        return None
    if not settings.summary_enabled:
        return None
    if not settings.openai_api_key:
        logger.debug("OPENAI_API_KEY not set, using plain-text change summary")
        return describe_results(results)

    try:
        agent = Agent(model=_get_model(), system_prompt=SUMMARY_SYSTEM_PROMPT, output_type=str)
        result = agent.run_sync(build_summary_prompt(results))
    except Exception:
        logger.exception("Failed to generate change summary", tools=[r.tool_name for r in results])
        return None

    logger.info("Change summary generated", summary_length=len(result.output))
    return result.output
