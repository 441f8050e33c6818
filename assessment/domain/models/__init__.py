"""Domain models package."""

from .stages import AgentType, Phase, STAGE_ORDER
from .session import (
    AnalyzerData,
    AssessmentSession,
    AssessorData,
    ChatMessage,
    DynamicWeighting,
    QualifierData,
    SessionUpdate,
    TokenUsage,
)
from .stage_outputs import (
    AnalyzerOutput,
    AssessorOutput,
    QualifierOutput,
    StageOutput,
)

__all__ = [
    "AgentType",
    "Phase",
    "STAGE_ORDER",
    "AnalyzerData",
    "AssessmentSession",
    "AssessorData",
    "ChatMessage",
    "DynamicWeighting",
    "QualifierData",
    "SessionUpdate",
    "TokenUsage",
    "AnalyzerOutput",
    "AssessorOutput",
    "QualifierOutput",
    "StageOutput",
]
