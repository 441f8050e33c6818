"""
Turn processing pipeline context.

Carries state through all pipeline stages for one turn. Nothing in the
context is persisted until PersistenceStage runs; a failure in any earlier
stage leaves the stored session untouched.

Stage outputs:
- ContextLoadingStage: prior_session, active_stage, turn_number
- AgentInvocationStage: stage_result
- AccumulationStage: session (working copy)
- HandoffStage: session.current_agent/phase advanced, completed_stage
- PersistenceStage: persisted flag
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, TYPE_CHECKING

from assessment.domain.models.session import AssessmentSession
from assessment.domain.models.stages import AgentType

if TYPE_CHECKING:
    from assessment.agents.base import StageResult


@dataclass
class PipelineContext:
    """Per-turn state accumulated across pipeline stages."""

    # Input parameters (immutable after creation)
    session_id: str
    user_id: str
    user_message: str

    # ContextLoadingStage
    prior_session: Optional[AssessmentSession] = None
    active_stage: Optional[AgentType] = None
    turn_number: int = 1

    # AgentInvocationStage
    stage_result: Optional["StageResult"] = None

    # AccumulationStage / HandoffStage
    session: Optional[AssessmentSession] = None
    completed_stage: Optional[AgentType] = None
    handoff_to: Optional[AgentType] = None

    # PersistenceStage
    persisted: bool = False

    stage_timings: Dict[str, float] = field(default_factory=dict)

    @property
    def is_new_session(self) -> bool:
        return self.prior_session is None

    def require_session(self) -> AssessmentSession:
        if self.session is None:
            raise RuntimeError("session accessed before AccumulationStage completed")
        return self.session

    def require_result(self) -> "StageResult":
        if self.stage_result is None:
            raise RuntimeError(
                "stage_result accessed before AgentInvocationStage completed"
            )
        return self.stage_result
