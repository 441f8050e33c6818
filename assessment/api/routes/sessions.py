"""
Session API routes.

Read-only access to accumulated sessions, a user's session listing, the
final report, and out-of-band cleanup.
"""

from typing import List

from fastapi import APIRouter, Query, status
from fastapi.responses import Response
import structlog

from assessment.api.dependencies import OrchestratorDep, ReportServiceDep
from assessment.api.schemas import SessionSummary
from assessment.domain.models.session import AssessmentSession

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.get("", response_model=List[SessionSummary])
async def list_sessions(
    orchestrator: OrchestratorDep,
    user_id: str = Query(..., alias="userId", min_length=1),
):
    """List a user's sessions, oldest first."""
    sessions = await orchestrator.list_sessions(user_id)
    return [
        SessionSummary(
            session_id=s.session_id,
            current_agent=s.current_agent.value,
            phase=s.phase.value,
            is_complete=s.is_complete,
            turn_count=s.turn_count,
            started_at=s.started_at,
            updated_at=s.updated_at,
        )
        for s in sessions
    ]


@router.get("/{session_id}", response_model=AssessmentSession)
async def get_session(session_id: str, orchestrator: OrchestratorDep):
    """Return the full accumulated session record."""
    return await orchestrator.get_session(session_id)


@router.get("/{session_id}/report")
async def get_session_report(
    session_id: str,
    orchestrator: OrchestratorDep,
    report_service: ReportServiceDep,
):
    """Return the assessment report. 409 until the analysis is complete."""
    session = await orchestrator.get_session(session_id)
    return report_service.get_report(session)


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(session_id: str, orchestrator: OrchestratorDep):
    """Delete a session (out-of-band cleanup)."""
    await orchestrator.delete_session(session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
