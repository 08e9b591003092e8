from datetime import date
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from truepace.coach.tools import ToolCall


class ToolCallsRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    user_id: str
    tool_calls: list[ToolCall]
    latest_user_message: str | None = None


class ResolveResponse(BaseModel):
    status: Literal["found", "not_found", "ambiguous"]
    reference: str
    workout_id: str | None = None
    strategy: str | None = None
    message: str | None = None
    candidates: list[dict[str, Any]] = Field(default_factory=list)
    today: date
