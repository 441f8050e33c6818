"""
Carry-over context preambles for stage handoffs.

When a stage runs for the first time in a session it receives a preamble
summarising what earlier stages collected, so the oracle can personalise its
questions without re-asking. The qualifier, being first, has none.
"""

from typing import Dict, Optional

from assessment.domain.models.session import AssessmentSession, DynamicWeighting
from assessment.domain.models.stages import AgentType


def _bullets(values: Dict[str, object]) -> str:
    if not values:
        return "- (none collected)"
    return "\n".join(f"- {key}: {value}" for key, value in values.items())


def _weighting_lines(weighting: Optional[DynamicWeighting]) -> str:
    if weighting is None:
        return "- (none)"
    return _bullets(weighting.model_dump(by_alias=True))


def get_assessor_preamble(session: AssessmentSession) -> str:
    """Business context from qualification, sent on the assessor's first turn."""
    qualifier = session.qualifier.collected_responses if session.qualifier else {}
    return (
        "BUSINESS CONTEXT from qualification:\n"
        f"{_bullets(qualifier)}\n\n"
        "DYNAMIC WEIGHTING:\n"
        f"{_weighting_lines(session.dynamic_weighting)}\n\n"
        "Please use this context to personalize your assessment questions and language."
    )


def get_analyzer_preamble(session: AssessmentSession) -> str:
    """Qualifiers and assessment responses, sent on the analyzer's first turn."""
    qualifier = session.qualifier.collected_responses if session.qualifier else {}
    responses = session.assessor.collected_responses if session.assessor else {}
    return (
        "ASSESSMENT DATA for analysis:\n\n"
        "BUSINESS QUALIFIERS:\n"
        f"{_bullets(qualifier)}\n\n"
        "DYNAMIC WEIGHTING:\n"
        f"{_weighting_lines(session.dynamic_weighting)}\n\n"
        "ASSESSMENT RESPONSES:\n"
        f"{_bullets(responses)}\n\n"
        "Please analyze this data using the 6-category scoring framework with "
        "dynamic weighting based on the business qualifiers. Generate scores, "
        "determine the appropriate AI strategy recommendation, and create a "
        "phased roadmap."
    )


def get_context_preamble(
    stage: AgentType, session: Optional[AssessmentSession]
) -> Optional[str]:
    """
    Preamble for a stage's first invocation.

    Args:
        stage: Stage about to run
        session: Accumulated session so far (None for a fresh session)

    Returns:
        Preamble text, or None when the stage takes no carry-over context
    """
    if session is None:
        return None
    if stage == AgentType.ASSESSOR:
        return get_assessor_preamble(session)
    if stage == AgentType.ANALYZER:
        return get_analyzer_preamble(session)
    return None
