"""
Report assembly for completed assessments.

The report is a read-only view over the accumulated session: the qualifier
summary, dynamic weighting, questionnaire responses and the analyzer's
scoring, strategy, roadmap and concerns.
"""

from typing import Any, Dict

import structlog

from assessment.core.exceptions import ReportNotReadyError
from assessment.domain.models.session import AssessmentSession
from assessment.domain.models.stages import ASSESSMENT_CATEGORIES

log = structlog.get_logger(__name__)


def build_report(session: AssessmentSession) -> Dict[str, Any]:
    """
    Assemble the report for a session.

    Args:
        session: Accumulated session (complete or not)

    Returns:
        Report dict; analyzer sections are empty until analysis completes
    """
    qualifier = session.qualifier.collected_responses if session.qualifier else {}
    weighting = (
        session.dynamic_weighting.model_dump(by_alias=True)
        if session.dynamic_weighting
        else None
    )
    responses = session.assessor.collected_responses if session.assessor else {}

    scores: Dict[str, Any] = {}
    strategy: Dict[str, Any] = {}
    roadmap: Dict[str, Any] = {}
    concerns: Dict[str, Any] = {}
    overall_score = None

    analyzer = session.analyzer
    if analyzer is not None:
        overall_score = analyzer.scoring.overall_score
        for category in ASSESSMENT_CATEGORIES:
            score = getattr(analyzer.scoring, category)
            if score is not None:
                scores[category] = score.model_dump()
        strategy = analyzer.strategy_recommendation.model_dump()
        roadmap = {name: phase.model_dump() for name, phase in analyzer.roadmap.items()}
        concerns = analyzer.concerns_analysis.model_dump()

    return {
        "sessionId": session.session_id,
        "isComplete": session.is_complete,
        "completedAt": session.completed_at.isoformat() if session.completed_at else None,
        "business": qualifier,
        "dynamicWeighting": weighting,
        "assessmentResponses": responses,
        "overallScore": overall_score,
        "categoryScores": scores,
        "strategyRecommendation": strategy,
        "roadmap": roadmap,
        "concernsAnalysis": concerns,
    }


class ReportService:
    """Serves reports for completed sessions only."""

    def get_report(self, session: AssessmentSession) -> Dict[str, Any]:
        """
        Report for a completed session.

        Raises:
            ReportNotReadyError: If the analyzer has not completed yet
        """
        if not session.is_complete:
            raise ReportNotReadyError(
                "Assessment is not complete yet",
                session_id=session.session_id,
                current_agent=session.current_agent.value,
            )
        log.info("report_built", session_id=session.session_id)
        return build_report(session)
