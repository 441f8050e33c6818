"""
Analytics sink for stage-completion snapshots.

Snapshots are anonymised: they carry the completed stage's structured data
only, never the user id or conversation history. Writes are best-effort;
callers log and swallow failures so analytics can never fail a turn.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict

import structlog

from assessment.domain.models.session import AssessmentSession
from assessment.domain.models.stages import AgentType
from assessment.persistence.repositories.snapshot_repo import SnapshotRepository

log = structlog.get_logger(__name__)


class AnalyticsSink(ABC):
    """Destination for stage snapshots."""

    @abstractmethod
    async def save_snapshot(
        self, session_id: str, agent_type: str, snapshot_data: Dict[str, Any]
    ) -> None:
        pass


class NullAnalyticsSink(AnalyticsSink):
    """Discards snapshots (analytics disabled)."""

    async def save_snapshot(
        self, session_id: str, agent_type: str, snapshot_data: Dict[str, Any]
    ) -> None:
        return None


class SqliteAnalyticsSink(AnalyticsSink):
    """Writes snapshots to the assessment_snapshots table."""

    def __init__(self, repo: SnapshotRepository):
        self.repo = repo

    async def save_snapshot(
        self, session_id: str, agent_type: str, snapshot_data: Dict[str, Any]
    ) -> None:
        snapshot_id = await self.repo.save(session_id, agent_type, snapshot_data)
        log.info(
            "analytics_snapshot_saved",
            session_id=session_id,
            agent_type=agent_type,
            snapshot_id=snapshot_id,
        )


def build_snapshot(session: AssessmentSession, stage: AgentType) -> Dict[str, Any]:
    """Anonymised snapshot of one completed stage."""
    snapshot: Dict[str, Any] = {
        "phase": session.phase.value,
        "turnCount": session.turn_count,
    }
    if stage == AgentType.QUALIFIER and session.qualifier:
        snapshot["qualifier"] = session.qualifier.model_dump()
        if session.dynamic_weighting:
            snapshot["dynamicWeighting"] = session.dynamic_weighting.model_dump(
                by_alias=True
            )
    elif stage == AgentType.ASSESSOR and session.assessor:
        snapshot["assessor"] = session.assessor.model_dump(by_alias=True)
    elif stage == AgentType.ANALYZER and session.analyzer:
        snapshot["analyzer"] = session.analyzer.model_dump()
    return snapshot
