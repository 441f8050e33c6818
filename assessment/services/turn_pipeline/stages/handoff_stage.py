"""
Stage 4: Hand off to the next stage agent.

Transitions happen only when the active agent reports completion and always
move one step forward. Analyzer completion is terminal: the session stays on
the analyzer with phase ``complete``.
"""

from typing import TYPE_CHECKING

import structlog

from ..base import TurnStage
from assessment.core.exceptions import InvalidTransitionError
from assessment.domain.models.stages import (
    AgentType,
    Phase,
    is_consistent,
    is_forward_transition,
    next_agent,
    phase_for,
)

if TYPE_CHECKING:
    from ..context import PipelineContext

log = structlog.get_logger(__name__)


class HandoffStage(TurnStage):
    """Advance current_agent/phase when the active stage completed."""

    async def process(self, context: "PipelineContext") -> "PipelineContext":
        session = context.require_session()
        result = context.require_result()
        stage = result.stage

        if result.is_stage_complete and stage != AgentType.REPORTER:
            context.completed_stage = stage

            if stage == AgentType.ANALYZER:
                if session.phase != Phase.COMPLETE:
                    raise InvalidTransitionError(
                        "Analyzer completed but session phase is not complete",
                        session_id=context.session_id,
                        phase=session.phase.value,
                    )
                log.info("assessment_complete", session_id=context.session_id)
            else:
                target = next_agent(stage)
                session = session.model_copy(
                    update={"current_agent": target, "phase": phase_for(target)}
                )
                context.handoff_to = target
                log.info(
                    "stage_handoff",
                    session_id=context.session_id,
                    from_agent=stage.value,
                    to_agent=target.value,
                )

        origin = context.prior_session.current_agent if context.prior_session else AgentType.QUALIFIER
        if not is_forward_transition(origin, session.current_agent):
            raise InvalidTransitionError(
                f"Illegal transition {origin.value} -> {session.current_agent.value}",
                session_id=context.session_id,
            )
        if not is_consistent(session.current_agent, session.phase):
            raise InvalidTransitionError(
                f"Agent {session.current_agent.value} cannot own phase {session.phase.value}",
                session_id=context.session_id,
            )

        context.session = session
        return context
