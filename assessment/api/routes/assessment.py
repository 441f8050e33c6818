"""
Assessment turn endpoint.

One POST per user message. The first message omits sessionId; the response
carries the minted id for the following turns.
"""

from fastapi import APIRouter
import structlog

from assessment.api.dependencies import OrchestratorDep
from assessment.api.schemas import (
    AssessmentRequest,
    AssessmentResponse,
    ErrorResponse,
)

log = structlog.get_logger(__name__)

router = APIRouter(tags=["assessment"])


@router.post(
    "/assessment",
    response_model=AssessmentResponse,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
        504: {"model": ErrorResponse},
    },
)
async def process_assessment_turn(
    request: AssessmentRequest,
    orchestrator: OrchestratorDep,
):
    """Process one user message through the active stage agent.

    Returns the agent's reply, the stage's structured extraction, the agent
    that owns the next turn and whether the whole assessment is complete.
    """
    result = await orchestrator.process_turn(
        message=request.message,
        user_id=request.user_id,
        session_id=request.session_id,
    )
    return AssessmentResponse(
        message=result.message,
        data=result.data,
        current_agent=result.current_agent,
        session_id=result.session_id,
        is_complete=result.is_complete,
    )
