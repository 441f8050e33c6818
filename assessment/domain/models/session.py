"""Session domain models for the assessment lifecycle.

This module defines the single accumulated record that the pipeline builds up
turn by turn, plus the partial update produced by the state accumulator.

Core Models:
    - AssessmentSession: Durable per-session record (camelCase on the wire)
    - ChatMessage: One entry of the append-only conversation history
    - QualifierData / AssessorData / AnalyzerData: Per-stage accumulated records
    - DynamicWeighting: Modifiers derived from qualifier facts
    - SessionUpdate: Partial update; only fields that changed are set

Session Lifecycle:
    1. Created on the first message that carries no session id
    2. Mutated after every turn (history grows, stage records merge)
    3. Terminal once phase == complete; remains readable afterwards
    4. Deleted only by explicit out-of-band cleanup
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from assessment.domain.models.stages import AgentType, Phase


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base for records serialised with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Conversation history
# =============================================================================


class ChatMessage(CamelModel):
    """Single conversation history entry.

    ``kind == "context"`` marks a carry-over preamble sent to a stage on its
    first invocation; it is part of history but never shown as a chat bubble.
    """

    role: Literal["user", "assistant"]
    content: str
    agent: AgentType
    kind: Literal["message", "context"] = "message"
    question_id: Optional[str] = Field(
        default=None, description="Assessor question this assistant message asks"
    )
    created_at: datetime = Field(default_factory=utc_now)


# =============================================================================
# Per-stage records
# =============================================================================


class QualifierData(BaseModel):
    """Business facts collected by the qualifier.

    Keys of ``collected_responses``: employee_count, revenue_band,
    business_type, location, industry.
    """

    collected_responses: Dict[str, str] = Field(default_factory=dict)
    needs_more_info: bool = True


class DynamicWeighting(CamelModel):
    """Scoring modifiers derived deterministically from qualifier facts."""

    solopreneur_bonus: int = 0
    budget_sensitive: bool = False
    rural_focus: bool = False
    score_adjustment: int = 0


class AssessorData(BaseModel):
    """Questionnaire pairs collected by the assessor.

    ``collected_responses`` maps ``question_<id>_response`` to the answer.
    """

    collected_responses: Dict[str, str] = Field(default_factory=dict)
    current_question_id: str = ""
    assessment_complete: bool = False
    questions_asked: int = 0
    total_questions: int = 0


class CategoryScore(BaseModel):
    total: float
    level: str


class Scoring(BaseModel):
    overall_score: Optional[float] = None
    market_strategy: Optional[CategoryScore] = None
    business_understanding: Optional[CategoryScore] = None
    workforce_acumen: Optional[CategoryScore] = None
    company_culture: Optional[CategoryScore] = None
    role_of_technology: Optional[CategoryScore] = None
    data: Optional[CategoryScore] = None


class StrategyRecommendation(BaseModel):
    primary_strategy: str = ""
    rationale: str = ""


class RoadmapPhase(BaseModel):
    timeline: str = ""
    focus: str = ""


class ConcernsAnalysis(BaseModel):
    identified_concerns: List[str] = Field(default_factory=list)
    mitigation_strategies: Dict[str, str] = Field(default_factory=dict)


class AnalyzerData(BaseModel):
    """Nested scoring, strategy, roadmap and concerns built from analyzer output.

    ``roadmap`` is keyed "Phase 1", "Phase 2", "Phase 3".
    """

    scoring: Scoring = Field(default_factory=Scoring)
    strategy_recommendation: StrategyRecommendation = Field(
        default_factory=StrategyRecommendation
    )
    roadmap: Dict[str, RoadmapPhase] = Field(default_factory=dict)
    concerns_analysis: ConcernsAnalysis = Field(default_factory=ConcernsAnalysis)
    analysis_complete: bool = False


class TokenUsage(BaseModel):
    """Oracle token usage accumulated across all turns of a session."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def add(self, usage: Dict[str, int]) -> "TokenUsage":
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + int(usage.get("prompt_tokens", 0)),
            completion_tokens=self.completion_tokens
            + int(usage.get("completion_tokens", 0)),
            total_tokens=self.total_tokens + int(usage.get("total_tokens", 0)),
        )


# =============================================================================
# Session record
# =============================================================================


class AssessmentSession(CamelModel):
    """Durable per-session record accumulated across turns.

    Invariants:
        - session_id is immutable; user_id is immutable once set
        - phase matches current_agent, except the terminal ``complete`` phase
          which coexists with analyzer or reporter
        - conversation_history only grows
        - completed_at is set exactly once, when phase becomes complete
    """

    session_id: str
    user_id: str
    current_agent: AgentType = AgentType.QUALIFIER
    phase: Phase = Phase.QUALIFYING
    started_at: datetime = Field(default_factory=utc_now)
    completed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    conversation_history: List[ChatMessage] = Field(default_factory=list)

    qualifier: Optional[QualifierData] = None
    assessor: Optional[AssessorData] = None
    analyzer: Optional[AnalyzerData] = None
    dynamic_weighting: Optional[DynamicWeighting] = None

    token_usage: TokenUsage = Field(default_factory=TokenUsage)
    oracle_thread_id: Optional[str] = None
    context_injected: Dict[str, bool] = Field(default_factory=dict)
    turn_count: int = 0

    @property
    def is_complete(self) -> bool:
        return self.phase == Phase.COMPLETE

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, raw: str) -> "AssessmentSession":
        return cls.model_validate_json(raw)


class SessionUpdate(BaseModel):
    """Partial session update produced by the state accumulator.

    Only fields that changed are set; ``model_dump(exclude_unset=True)``
    yields exactly the delta to apply.
    """

    session_id: Optional[str] = None
    user_id: Optional[str] = None
    current_agent: Optional[AgentType] = None
    phase: Optional[Phase] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    qualifier: Optional[QualifierData] = None
    assessor: Optional[AssessorData] = None
    analyzer: Optional[AnalyzerData] = None
    dynamic_weighting: Optional[DynamicWeighting] = None

    def changes(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self.model_fields_set}
