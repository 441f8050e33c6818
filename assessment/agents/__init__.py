"""Stage agents, one per pipeline phase."""

from typing import Dict, Optional

from assessment.core.config import PipelineConfig, pipeline_config
from assessment.domain.models.stages import AgentType
from assessment.llm.oracle import OracleClient

from .base import StageAgent, StageInput, StageResult
from .qualifier_agent import QualifierAgent
from .assessor_agent import AssessorAgent
from .analyzer_agent import AnalyzerAgent
from .reporter_agent import ReporterAgent


def build_stage_agents(
    oracle: OracleClient, config: Optional[PipelineConfig] = None
) -> Dict[AgentType, object]:
    """Instantiate every stage agent keyed by its stage tag."""
    config = config or pipeline_config
    return {
        AgentType.QUALIFIER: QualifierAgent(oracle, config.qualifier),
        AgentType.ASSESSOR: AssessorAgent(oracle, config.assessor),
        AgentType.ANALYZER: AnalyzerAgent(oracle, config.analyzer),
        AgentType.REPORTER: ReporterAgent(),
    }


__all__ = [
    "StageAgent",
    "StageInput",
    "StageResult",
    "QualifierAgent",
    "AssessorAgent",
    "AnalyzerAgent",
    "ReporterAgent",
    "build_stage_agents",
]
