"""
Stage 6: Best-effort analytics snapshot.

Runs after persistence. Writes an anonymised snapshot when a stage
completed this turn; failures are logged and never fail the turn.
"""

from typing import TYPE_CHECKING

import structlog

from ..base import TurnStage
from assessment.services.analytics_service import AnalyticsSink, build_snapshot

if TYPE_CHECKING:
    from ..context import PipelineContext

log = structlog.get_logger(__name__)


class SnapshotStage(TurnStage):
    def __init__(self, sink: AnalyticsSink):
        self.sink = sink

    async def process(self, context: "PipelineContext") -> "PipelineContext":
        if context.completed_stage is None:
            return context

        stage = context.completed_stage
        try:
            await self.sink.save_snapshot(
                context.session_id,
                stage.value,
                build_snapshot(context.require_session(), stage),
            )
        except Exception as e:
            log.warning(
                "analytics_snapshot_failed",
                session_id=context.session_id,
                agent_type=stage.value,
                error=str(e),
            )
        return context
