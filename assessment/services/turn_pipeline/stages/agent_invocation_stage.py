"""
Stage 2: Invoke the active stage agent.

Dispatches on the active stage tag. Oracle errors propagate unchanged.
"""

from typing import TYPE_CHECKING, Dict

from ..base import TurnStage
from assessment.agents.base import StageInput
from assessment.core.exceptions import InvalidTransitionError
from assessment.domain.models.stages import AgentType

if TYPE_CHECKING:
    from ..context import PipelineContext


class AgentInvocationStage(TurnStage):
    """Run the agent owning the active stage and store its StageResult."""

    def __init__(self, agents: Dict[AgentType, object]):
        self.agents = agents

    async def process(self, context: "PipelineContext") -> "PipelineContext":
        agent = self.agents.get(context.active_stage)
        if agent is None:
            raise InvalidTransitionError(
                f"No agent registered for stage '{context.active_stage}'",
                session_id=context.session_id,
            )

        context.stage_result = await agent.process(
            StageInput(user_message=context.user_message, session=context.prior_session)
        )
        return context
