"""
Sequential runner for the per-turn stages.

Stages run in order against one PipelineContext. Each stage's duration is
recorded; the first failure is logged with the stage name and re-raised
unchanged so the orchestrator can map it to an error envelope.
"""

import time
from typing import List

import structlog

from .base import TurnStage
from .context import PipelineContext
from .result import TurnResult

log = structlog.get_logger(__name__)


class TurnPipeline:
    """Runs TurnStages in order and assembles the TurnResult."""

    def __init__(self, stages: List[TurnStage]):
        self.stages = stages

    @property
    def stage_names(self) -> List[str]:
        return [stage.stage_name for stage in self.stages]

    async def execute(self, context: PipelineContext) -> TurnResult:
        """
        Run every stage against ``context``.

        Returns:
            TurnResult built from the final context

        Raises:
            Exception: Whatever the failing stage raised; later stages
                (including persistence) do not run
        """
        started = time.perf_counter()

        for stage in self.stages:
            stage_started = time.perf_counter()
            try:
                context = await stage.process(context)
            except Exception as e:
                log.error(
                    "stage_failed",
                    stage_name=stage.stage_name,
                    session_id=context.session_id,
                    active_stage=context.active_stage.value
                    if context.active_stage
                    else None,
                    error_type=type(e).__name__,
                    error=str(e),
                    persisted=context.persisted,
                )
                raise
            context.stage_timings[stage.stage_name] = (
                time.perf_counter() - stage_started
            ) * 1000

        latency_ms = int((time.perf_counter() - started) * 1000)
        log.info(
            "pipeline_completed",
            session_id=context.session_id,
            turn_number=context.turn_number,
            active_stage=context.active_stage.value if context.active_stage else None,
            handoff_to=context.handoff_to.value if context.handoff_to else None,
            latency_ms=latency_ms,
        )
        return self._build_result(context, latency_ms)

    def _build_result(self, context: PipelineContext, latency_ms: int) -> TurnResult:
        session = context.require_session()
        result = context.require_result()

        return TurnResult(
            message=result.message,
            data=result.structured_data,
            current_agent=session.current_agent.value,
            session_id=session.session_id,
            is_complete=session.is_complete,
            phase=session.phase.value,
            turn_number=context.turn_number,
            extraction_tier=result.extraction_tier,
            handoff_to=context.handoff_to.value if context.handoff_to else None,
            latency_ms=latency_ms,
            stage_timings=dict(context.stage_timings),
        )
