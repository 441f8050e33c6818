"""
State accumulator: merges one stage output into the session record.

Pure data transformation. ``accumulate`` returns a SessionUpdate holding only
the fields that changed; ``apply_update`` folds it into the session. The merge
is additive and idempotent:

- collected fields are never cleared; a new non-empty value may overwrite
- applying the same output twice yields the same stage records
- phase stays ``complete`` once complete; completed_at is stamped once

Token usage, history and thread bookkeeping are handled by the orchestrator,
not here.
"""

import re
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from assessment.domain.models.session import (
    AnalyzerData,
    AssessmentSession,
    AssessorData,
    CategoryScore,
    ChatMessage,
    ConcernsAnalysis,
    DynamicWeighting,
    QualifierData,
    RoadmapPhase,
    Scoring,
    SessionUpdate,
    StrategyRecommendation,
    utc_now,
)
from assessment.domain.models.stage_outputs import (
    AnalyzerOutput,
    AssessorOutput,
    QualifierOutput,
)
from assessment.domain.models.stages import (
    ASSESSMENT_CATEGORIES,
    AgentType,
    Phase,
    phase_for,
)

QUALIFIER_FIELDS = (
    "employee_count",
    "revenue_band",
    "business_type",
    "location",
    "industry",
)

# Lower bound of each level, checked top down
SCORE_LEVELS = (
    (9.0, "Excellent"),
    (7.0, "Good"),
    (4.0, "Moderate"),
)
LOWEST_SCORE_LEVEL = "Limited"

SOLOPRENEUR_BONUS = 1
SOLOPRENEUR_ADJUSTMENT = 1
BUDGET_ADJUSTMENT = 1

LOWEST_REVENUE_BANDS = frozenset(
    {"under-100k", "under100k", "<100k", "0-100k", "less-than-100k", "below-100k"}
)
SOLO_PHRASES = frozenset(
    {"just me", "only me", "me", "myself", "solo", "solopreneur", "one", "sole proprietor"}
)
RURAL_MARKERS = ("rural", "family")

_EMPLOYEE_COUNT = re.compile(
    r"(\d+)\s*(employees?|people|persons?|staff|workers?|fte)?"
)


# =============================================================================
# Pure helpers
# =============================================================================


def score_level(score: float) -> str:
    """Qualitative level for a 0-10 category score (lower bounds inclusive)."""
    for threshold, level in SCORE_LEVELS:
        if score >= threshold:
            return level
    return LOWEST_SCORE_LEVEL


def normalize_revenue_band(band: str) -> str:
    """Lowercase, drop currency symbols, hyphenate whitespace: "Under $100K" -> "under-100k"."""
    band = band.strip().lower().replace("$", "")
    return re.sub(r"\s+", "-", band)


def parse_employee_count(value: str) -> Optional[int]:
    """Headcount from free text ("12", "12 employees", "just me"); None if unclear."""
    text = value.strip().lower()
    if not text:
        return None
    if text in SOLO_PHRASES:
        return 1
    match = _EMPLOYEE_COUNT.fullmatch(text)
    if match:
        return int(match.group(1))
    return None


def calculate_dynamic_weighting(collected: Dict[str, str]) -> DynamicWeighting:
    """
    Derive scoring modifiers from qualifier facts.

    Adjustments are additive: a solo business in the lowest revenue band
    gets both.
    """
    weighting = DynamicWeighting()

    if parse_employee_count(collected.get("employee_count", "")) == 1:
        weighting.solopreneur_bonus = SOLOPRENEUR_BONUS
        weighting.score_adjustment += SOLOPRENEUR_ADJUSTMENT

    band = normalize_revenue_band(collected.get("revenue_band", ""))
    if band in LOWEST_REVENUE_BANDS:
        weighting.budget_sensitive = True
        weighting.score_adjustment += BUDGET_ADJUSTMENT

    business_type = collected.get("business_type", "").lower()
    if any(marker in business_type for marker in RURAL_MARKERS):
        weighting.rural_focus = True

    return weighting


def reconstruct_assessor_pairs(history: Iterable[ChatMessage]) -> Dict[str, str]:
    """
    Rebuild question/answer pairs from conversation history.

    An assessor reply tagged with a question id, followed by a user message,
    yields ``question_<id>_response``. Context preambles are skipped.
    """
    pairs: Dict[str, str] = {}
    pending_question: Optional[str] = None
    for message in history:
        if message.kind != "message":
            continue
        if message.role == "assistant":
            pending_question = (
                message.question_id if message.agent == AgentType.ASSESSOR else None
            )
        elif pending_question and message.content.strip():
            pairs.setdefault(f"question_{pending_question}_response", message.content)
            pending_question = None
    return pairs


# =============================================================================
# Stage merges
# =============================================================================


def _merge_qualifier(
    prior: Optional[QualifierData], output: QualifierOutput
) -> QualifierData:
    collected = dict(prior.collected_responses) if prior else {}
    for name in QUALIFIER_FIELDS:
        value = getattr(output, name).strip()
        if value:
            collected[name] = value

    needs_more_info = output.needs_more_info
    if prior is not None and not prior.needs_more_info:
        needs_more_info = False

    return QualifierData(collected_responses=collected, needs_more_info=needs_more_info)


def _merge_assessor(
    prior: Optional[AssessorData],
    output: AssessorOutput,
    history: List[ChatMessage],
) -> AssessorData:
    responses = dict(prior.collected_responses) if prior else {}
    for key, answer in reconstruct_assessor_pairs(history).items():
        responses.setdefault(key, answer)
    for key, answer in output.collected_responses.items():
        if answer.strip():
            responses[key] = answer

    prior = prior or AssessorData()
    return AssessorData(
        collected_responses=responses,
        current_question_id=output.current_question_id or prior.current_question_id,
        assessment_complete=prior.assessment_complete or output.assessment_complete,
        questions_asked=max(prior.questions_asked, output.questions_asked or 0),
        total_questions=output.total_questions or prior.total_questions,
    )


def _merge_analyzer(
    prior: Optional[AnalyzerData], output: AnalyzerOutput
) -> AnalyzerData:
    prior = prior or AnalyzerData()

    scores: Dict[str, Any] = {}
    for category in ASSESSMENT_CATEGORIES:
        value = output.category_score(category)
        if value is None:
            scores[category] = getattr(prior.scoring, category)
        else:
            scores[category] = CategoryScore(total=value, level=score_level(value))
    overall = (
        output.overall_score
        if output.overall_score is not None
        else prior.scoring.overall_score
    )

    roadmap = dict(prior.roadmap)
    for number in (1, 2, 3):
        timeline = getattr(output, f"phase_{number}_timeline")
        focus = getattr(output, f"phase_{number}_focus")
        if timeline or focus:
            previous = roadmap.get(f"Phase {number}") or RoadmapPhase()
            roadmap[f"Phase {number}"] = RoadmapPhase(
                timeline=timeline or previous.timeline,
                focus=focus or previous.focus,
            )

    strategy = StrategyRecommendation(
        primary_strategy=output.primary_strategy
        or prior.strategy_recommendation.primary_strategy,
        rationale=output.strategy_rationale or prior.strategy_recommendation.rationale,
    )

    concerns = ConcernsAnalysis(
        identified_concerns=list(output.identified_concerns)
        or list(prior.concerns_analysis.identified_concerns),
        mitigation_strategies={
            **prior.concerns_analysis.mitigation_strategies,
            **{k: v for k, v in output.mitigation_strategies.items() if v},
        },
    )

    return AnalyzerData(
        scoring=Scoring(overall_score=overall, **scores),
        strategy_recommendation=strategy,
        roadmap=roadmap,
        concerns_analysis=concerns,
        analysis_complete=prior.analysis_complete or output.analysis_complete,
    )


# =============================================================================
# Public API
# =============================================================================


def accumulate(
    prior: Optional[AssessmentSession],
    output: Any,
    user_id: str,
    session_id: str,
    now: Optional[datetime] = None,
    history: Optional[List[ChatMessage]] = None,
) -> SessionUpdate:
    """
    Merge a stage output into the accumulated session.

    Args:
        prior: Session before this turn, or None for a fresh session
        output: QualifierOutput | AssessorOutput | AnalyzerOutput
        user_id: Owner of the session
        session_id: Session being accumulated
        now: Clock override for deterministic timestamps
        history: Conversation to rebuild assessor pairs from (defaults to
            the prior session's history)

    Returns:
        SessionUpdate with only the changed fields set
    """
    now = now or utc_now()
    update = SessionUpdate()

    if prior is None:
        update.session_id = session_id
        update.user_id = user_id
        update.started_at = now

    stage = output.agent_type
    already_complete = prior is not None and prior.phase == Phase.COMPLETE

    def _set(name: str, value: Any) -> None:
        if prior is None or getattr(prior, name) != value:
            setattr(update, name, value)

    _set("current_agent", stage)
    _set("phase", Phase.COMPLETE if already_complete else phase_for(stage))

    if isinstance(output, QualifierOutput):
        qualifier = _merge_qualifier(prior.qualifier if prior else None, output)
        _set("qualifier", qualifier)
        _set(
            "dynamic_weighting",
            calculate_dynamic_weighting(qualifier.collected_responses),
        )

    elif isinstance(output, AssessorOutput):
        if history is None:
            history = list(prior.conversation_history) if prior else []
        _set("assessor", _merge_assessor(prior.assessor if prior else None, output, history))

    elif isinstance(output, AnalyzerOutput):
        analyzer = _merge_analyzer(prior.analyzer if prior else None, output)
        _set("analyzer", analyzer)
        if analyzer.analysis_complete:
            _set("phase", Phase.COMPLETE)
            if prior is None or prior.completed_at is None:
                update.completed_at = now

    return update


def apply_update(
    prior: Optional[AssessmentSession], update: SessionUpdate
) -> AssessmentSession:
    """Fold a partial update into the session (creating it when prior is None)."""
    changes = update.changes()
    if prior is None:
        return AssessmentSession(**changes)
    return prior.model_copy(update=changes)
