"""Structured extraction results returned by the completion oracle.

Each stage produces a distinct variant of a closed tagged union
(``QualifierOutput | AssessorOutput | AnalyzerOutput``) discriminated by the
``stage`` field. The oracle does not emit the tag itself; the extraction
parser injects it before validation.

Every variant carries the user-facing ``message`` and the stage's completion
flag. All other fields are optional so that partial extractions validate;
empty values mean "not provided" and never overwrite accumulated data.
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from assessment.domain.models.stages import AgentType


class _StageOutputBase(BaseModel):
    """Shared config: ignore unknown keys, accept numbers where strings are expected."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    message: str

    @property
    def agent_type(self) -> AgentType:
        return AgentType(self.stage)  # type: ignore[attr-defined]


class QualifierOutput(_StageOutputBase):
    """Business context collected by the qualifier."""

    stage: Literal["qualifier"] = "qualifier"
    needs_more_info: bool
    employee_count: str = ""
    revenue_band: str = ""
    business_type: str = ""
    location: str = ""
    industry: str = ""

    @field_validator(
        "employee_count",
        "revenue_band",
        "business_type",
        "location",
        "industry",
        mode="before",
    )
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @property
    def is_complete(self) -> bool:
        return not self.needs_more_info


class AssessorOutput(_StageOutputBase):
    """Questionnaire progress reported by the assessor."""

    stage: Literal["assessor"] = "assessor"
    assessment_complete: bool
    current_question_id: str = ""
    questions_asked: Optional[int] = Field(default=None, ge=0)
    total_questions: Optional[int] = Field(default=None, ge=0)
    collected_responses: Dict[str, str] = Field(default_factory=dict)

    @field_validator("current_question_id", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("collected_responses", mode="before")
    @classmethod
    def _drop_null_responses(cls, v: Any) -> Any:
        if v is None:
            return {}
        if isinstance(v, dict):
            return {k: val for k, val in v.items() if val is not None}
        return v

    @property
    def is_complete(self) -> bool:
        return self.assessment_complete


CategoryScoreValue = Optional[Annotated[float, Field(ge=0, le=10)]]


class AnalyzerOutput(_StageOutputBase):
    """Flat scoring, strategy and roadmap output of the analyzer."""

    stage: Literal["analyzer"] = "analyzer"
    analysis_complete: bool
    overall_score: Optional[float] = Field(default=None, ge=0)

    market_strategy_score: CategoryScoreValue = None
    business_understanding_score: CategoryScoreValue = None
    workforce_acumen_score: CategoryScoreValue = None
    company_culture_score: CategoryScoreValue = None
    role_of_technology_score: CategoryScoreValue = None
    data_score: CategoryScoreValue = None

    primary_strategy: str = ""
    strategy_rationale: str = ""

    phase_1_timeline: str = ""
    phase_1_focus: str = ""
    phase_2_timeline: str = ""
    phase_2_focus: str = ""
    phase_3_timeline: str = ""
    phase_3_focus: str = ""

    identified_concerns: List[str] = Field(default_factory=list)
    mitigation_strategies: Dict[str, str] = Field(default_factory=dict)

    @field_validator(
        "primary_strategy",
        "strategy_rationale",
        "phase_1_timeline",
        "phase_1_focus",
        "phase_2_timeline",
        "phase_2_focus",
        "phase_3_timeline",
        "phase_3_focus",
        mode="before",
    )
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("identified_concerns", "mitigation_strategies", mode="before")
    @classmethod
    def _none_to_container(cls, v: Any, info) -> Any:
        if v is None:
            return [] if info.field_name == "identified_concerns" else {}
        return v

    @property
    def is_complete(self) -> bool:
        return self.analysis_complete

    def category_score(self, category: str) -> Optional[float]:
        return getattr(self, f"{category}_score")


StageOutput = Annotated[
    Union[QualifierOutput, AssessorOutput, AnalyzerOutput],
    Field(discriminator="stage"),
]

STAGE_OUTPUT_MODELS: Dict[AgentType, type] = {
    AgentType.QUALIFIER: QualifierOutput,
    AgentType.ASSESSOR: AssessorOutput,
    AgentType.ANALYZER: AnalyzerOutput,
}

COMPLETION_FLAGS: Dict[AgentType, str] = {
    AgentType.QUALIFIER: "needs_more_info",
    AgentType.ASSESSOR: "assessment_complete",
    AgentType.ANALYZER: "analysis_complete",
}


def stage_json_schema(stage: AgentType) -> Dict[str, Any]:
    """JSON schema sent to the oracle as the structured-output contract.

    The ``stage`` tag is internal and removed from the contract.
    """
    schema = STAGE_OUTPUT_MODELS[stage].model_json_schema()
    schema.get("properties", {}).pop("stage", None)
    schema["required"] = [r for r in schema.get("required", []) if r != "stage"]
    return schema
