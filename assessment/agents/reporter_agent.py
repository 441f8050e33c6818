"""Reporter: pass-through stage that presents the finished assessment.

Makes no oracle call. Its structured data is the assembled report.
"""

from assessment.agents.base import StageInput, StageResult
from assessment.domain.models.stages import AgentType
from assessment.services.report_service import build_report

REPORT_READY_MESSAGE = (
    "Your AI readiness assessment is complete. Your full report is ready."
)


class ReporterAgent:
    stage = AgentType.REPORTER

    async def process(self, stage_input: StageInput) -> StageResult:
        report = build_report(stage_input.session) if stage_input.session else {}
        return StageResult(
            stage=self.stage,
            message=REPORT_READY_MESSAGE,
            output=None,
            structured_data=report,
            is_stage_complete=True,
        )
