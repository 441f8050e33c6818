"""
Assessment orchestrator.

Main entry point for turn processing. Each turn runs a pipeline of
composable stages under the session's lock:

    ContextLoading -> AgentInvocation -> Accumulation -> Handoff
        -> Persistence -> Snapshot

State machine: qualifying -> assessing -> analyzing -> complete. A stage
hands off only when its agent reports completion, and only one step forward.
A turn either persists its result or fails with the stored session
untouched; the same turn can then be retried.
"""

from typing import Dict, List, Optional
from uuid import uuid4

import structlog

from assessment.core.exceptions import (
    AssessmentSystemError,
    SessionNotFoundError,
    ValidationError,
)
from assessment.core.logging import bind_context
from assessment.domain.models.session import AssessmentSession
from assessment.domain.models.stages import AgentType
from assessment.persistence.locks import SessionLockRegistry
from assessment.persistence.session_store import SessionStore
from assessment.services.analytics_service import AnalyticsSink, NullAnalyticsSink
from assessment.services.turn_pipeline import (
    PipelineContext,
    TurnPipeline,
    TurnResult,
)
from assessment.services.turn_pipeline.stages import (
    AccumulationStage,
    AgentInvocationStage,
    ContextLoadingStage,
    HandoffStage,
    PersistenceStage,
    SnapshotStage,
)

log = structlog.get_logger(__name__)


class AssessmentOrchestrator:
    """Runs assessment turns and serves read-only session access."""

    def __init__(
        self,
        store: SessionStore,
        agents: Dict[AgentType, object],
        locks: Optional[SessionLockRegistry] = None,
        analytics: Optional[AnalyticsSink] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            store: Session state store
            agents: Stage agents keyed by stage tag (see build_stage_agents)
            locks: Per-session lock registry (a private one if omitted)
            analytics: Snapshot sink (discarding sink if omitted)
        """
        self.store = store
        self.agents = agents
        self.locks = locks or SessionLockRegistry()
        self.analytics = analytics or NullAnalyticsSink()

        self.pipeline = TurnPipeline(
            [
                ContextLoadingStage(store),
                AgentInvocationStage(agents),
                AccumulationStage(),
                HandoffStage(),
                PersistenceStage(store),
                SnapshotStage(self.analytics),
            ]
        )

    async def process_turn(
        self,
        message: str,
        user_id: str,
        session_id: Optional[str] = None,
    ) -> TurnResult:
        """
        Process one user turn.

        Args:
            message: The user's message
            user_id: Owner of the session
            session_id: Existing session id; a new one is minted if absent

        Returns:
            TurnResult (see TurnResult.to_envelope for the response body)

        Raises:
            ValidationError: Empty message or missing user id (no oracle call)
            SessionCompletedError: Session already finished
            SessionOwnershipError: Session belongs to another user
            SessionBusyError: Another turn for the session did not finish in time
            OracleError: Any oracle failure; the stored session is unchanged
        """
        if not message or not message.strip():
            raise ValidationError(
                "Message is required", session_id=session_id, user_message=message
            )
        if not user_id or not user_id.strip():
            raise ValidationError(
                "userId is required", session_id=session_id, user_message=message
            )

        if not session_id:
            session_id = str(uuid4())
            log.info("session_id_minted", session_id=session_id)

        bind_context(session_id=session_id)

        try:
            async with self.locks.hold(session_id):
                context = PipelineContext(
                    session_id=session_id,
                    user_id=user_id,
                    user_message=message,
                )
                result = await self.pipeline.execute(context)
        except AssessmentSystemError as e:
            e.details.setdefault("session_id", session_id)
            e.details.setdefault("user_message", message)
            log.warning(
                "turn_failed",
                session_id=session_id,
                error_type=type(e).__name__,
                retryable=e.retryable,
            )
            raise

        log.info(
            "turn_processed",
            session_id=session_id,
            current_agent=result.current_agent,
            is_complete=result.is_complete,
            extraction_tier=result.extraction_tier,
        )
        return result

    async def get_session(self, session_id: str) -> AssessmentSession:
        """
        Read a session.

        Raises:
            SessionNotFoundError: If no session has this id
        """
        session = await self.store.get(session_id)
        if session is None:
            raise SessionNotFoundError(
                f"Session {session_id} not found", session_id=session_id
            )
        return session

    async def list_sessions(self, user_id: str) -> List[AssessmentSession]:
        """A user's sessions in creation order."""
        sessions = []
        for session_id in await self.store.list_ids(user_id=user_id):
            session = await self.store.get(session_id)
            # Deleted between listing and loading
            if session is not None:
                sessions.append(session)
        return sessions

    async def delete_session(self, session_id: str) -> None:
        """
        Out-of-band cleanup; waits for an in-flight turn to finish first.

        Raises:
            SessionNotFoundError: If no session has this id
        """
        async with self.locks.hold(session_id):
            deleted = await self.store.delete(session_id)
        if not deleted:
            raise SessionNotFoundError(
                f"Session {session_id} not found", session_id=session_id
            )
        log.info("session_deleted", session_id=session_id)
