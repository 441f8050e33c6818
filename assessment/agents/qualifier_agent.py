"""Qualifier: collects employee count, revenue band, business type, location, industry."""

from assessment.agents.base import StageAgent
from assessment.domain.models.stages import AgentType


class QualifierAgent(StageAgent):
    """First stage. Takes no carry-over context."""

    stage = AgentType.QUALIFIER

    def build_preamble(self, session):
        return None
