from datetime import date

from fastapi import APIRouter, Depends, Query, Response, status
from loguru import logger
from sqlalchemy.orm import Session

from truepace.api.schemas import ResolveResponse, ToolCallsRequest
from truepace.calendar.dates import today_in_reference_timezone
from truepace.calendar.store import ScheduleStore
from truepace.coach.confirmation import BatchOutcome, BatchState, MutationExecutor
from truepace.coach.summary import summarize_tool_results
from truepace.config.settings import settings
from truepace.db.session import get_db
from truepace.plans.resolver import Ambiguous, Found, IdentifierResolver

router = APIRouter(prefix="/coach", tags=["coach"])


def get_mutation_executor() -> MutationExecutor:
    summarizer = summarize_tool_results if settings.summary_enabled else None
    return MutationExecutor(summarizer=summarizer)


@router.post("/tool-calls", response_model=BatchOutcome)
def run_tool_calls(
    req: ToolCallsRequest,
    response: Response,
    executor: MutationExecutor = Depends(get_mutation_executor),
) -> BatchOutcome:
    """Run a batch of proposed tool calls through the confirmation gate.

    Executed and awaiting-confirmation batches return 200; a rejected batch
    returns 422 with the failing call and error code.
    """
    logger.info("Tool call batch received", user_id=req.user_id, calls=len(req.tool_calls))
    outcome = executor.run(req.user_id, req.tool_calls, req.latest_user_message)
    if outcome.state == BatchState.REJECTED:
        response.status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    return outcome


@router.get("/resolve", response_model=ResolveResponse)
def resolve_reference(
    user_id: str = Query(..., alias="userId"),
    ref: str = Query(...),
    today: date | None = Query(default=None),
    db: Session = Depends(get_db),
) -> ResolveResponse:
    """Resolve a workout reference without changing anything."""
    today = today or today_in_reference_timezone()
    result = IdentifierResolver(ScheduleStore(db)).resolve(ref, user_id, today)

    if isinstance(result, Found):
        return ResolveResponse(
            status="found", reference=ref, workout_id=result.workout_id, strategy=result.strategy, today=today
        )
    if isinstance(result, Ambiguous):
        return ResolveResponse(status="ambiguous", reference=ref, candidates=result.candidates, today=today)
    return ResolveResponse(
        status="not_found", reference=ref, message=result.message, candidates=result.candidates, today=today
    )
