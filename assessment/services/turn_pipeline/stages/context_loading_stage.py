"""
Stage 1: Load session context.

Loads the prior session (absent for a fresh session), rejects turns the
session cannot accept and picks the active stage agent.
"""

from typing import TYPE_CHECKING

import structlog

from ..base import TurnStage
from assessment.core.exceptions import SessionCompletedError, SessionOwnershipError
from assessment.domain.models.stages import AgentType
from assessment.persistence.session_store import SessionStore

if TYPE_CHECKING:
    from ..context import PipelineContext

log = structlog.get_logger(__name__)


class ContextLoadingStage(TurnStage):
    """
    Load session context at the start of turn processing.

    Populates PipelineContext with:
    - prior_session (None for a fresh session or an unknown id)
    - active_stage (prior current_agent, qualifier when fresh)
    - turn_number
    """

    def __init__(self, store: SessionStore):
        self.store = store

    async def process(self, context: "PipelineContext") -> "PipelineContext":
        """
        Load session context into the context object.

        Raises:
            SessionOwnershipError: If the session belongs to another user
            SessionCompletedError: If the assessment already finished
        """
        prior = await self.store.get(context.session_id)

        if prior is not None:
            if prior.user_id != context.user_id:
                raise SessionOwnershipError(
                    "Session belongs to a different user",
                    session_id=context.session_id,
                )
            if prior.is_complete:
                raise SessionCompletedError(
                    "Assessment is already complete; start a new session",
                    session_id=context.session_id,
                )

        context.prior_session = prior
        context.active_stage = prior.current_agent if prior else AgentType.QUALIFIER
        context.turn_number = (prior.turn_count if prior else 0) + 1

        log.info(
            "context_loaded",
            session_id=context.session_id,
            is_new_session=prior is None,
            active_stage=context.active_stage.value,
            turn_number=context.turn_number,
            history_length=len(prior.conversation_history) if prior else 0,
        )

        return context
