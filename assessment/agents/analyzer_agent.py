"""Analyzer: scores the assessment and recommends a strategy and roadmap."""

from assessment.agents.base import StageAgent
from assessment.domain.models.stages import AgentType


class AnalyzerAgent(StageAgent):
    """Third stage. Receives qualifier facts and assessor responses once.

    Completion of this stage completes the whole assessment.
    """

    stage = AgentType.ANALYZER
