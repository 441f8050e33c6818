"""Assessor: runs the six-category readiness questionnaire."""

from typing import Optional

from assessment.agents.base import StageAgent
from assessment.domain.models.stage_outputs import AssessorOutput
from assessment.domain.models.stages import AgentType


class AssessorAgent(StageAgent):
    """Second stage. Receives the qualifier's facts and dynamic weighting once.

    Assistant replies are tagged with the question id they ask so answers can
    be paired with questions from history.
    """

    stage = AgentType.ASSESSOR

    def question_id_for(self, output: AssessorOutput) -> Optional[str]:
        if output.assessment_complete:
            return None
        return output.current_question_id or None
