"""
Base stage agent.

A stage agent owns one phase of the conversation. Each invocation:

1. Prepends a carry-over preamble on the stage's first invocation in a
   session (gated by the session's explicit ``context_injected`` flag)
2. Appends the latest user message
3. Invokes the completion oracle on the session's thread
4. Parses the reply with the tiered extraction parser

Agents do not touch session state; they return a StageResult that the
orchestrator accumulates.
"""

from abc import ABC
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import structlog

from assessment.core.config import StageConfig, pipeline_config
from assessment.domain.models.session import AssessmentSession, ChatMessage
from assessment.domain.models.stages import AgentType
from assessment.llm.oracle import OracleClient, OracleContext
from assessment.llm.parser import ExtractionTier, parse_stage_output
from assessment.llm.prompts.context import get_context_preamble

log = structlog.get_logger(__name__)


@dataclass
class StageInput:
    """Input for one stage invocation.

    ``session`` is None for a fresh session; its history is then empty and
    the oracle sees the single incoming message.
    """

    user_message: str
    session: Optional[AssessmentSession] = None


@dataclass
class StageResult:
    """Output of one stage invocation."""

    stage: AgentType
    message: str
    output: Any  # QualifierOutput | AssessorOutput | AnalyzerOutput | None
    structured_data: Dict[str, Any] = field(default_factory=dict)
    is_stage_complete: bool = False
    thread_id: Optional[str] = None
    usage: Dict[str, int] = field(default_factory=dict)
    context_injected: bool = False  # first invocation of this stage in the session
    extraction_tier: Optional[ExtractionTier] = None
    outbound_messages: List[ChatMessage] = field(default_factory=list)


def to_oracle_message(message: ChatMessage) -> Dict[str, str]:
    return {"role": message.role, "content": message.content}


class StageAgent(ABC):
    """Base for oracle-backed stage agents."""

    stage: AgentType

    def __init__(self, oracle: OracleClient, config: Optional[StageConfig] = None):
        self.oracle = oracle
        self.config = config or pipeline_config.for_stage(self.stage.value)

    def build_preamble(self, session: AssessmentSession) -> Optional[str]:
        """Carry-over context for the stage's first invocation."""
        return get_context_preamble(self.stage, session)

    def needs_context(self, session: Optional[AssessmentSession]) -> bool:
        if session is None:
            return False
        return not session.context_injected.get(self.stage.value, False)

    def question_id_for(self, output: Any) -> Optional[str]:
        """Question id to tag the assistant reply with (assessor only)."""
        return None

    async def process(self, stage_input: StageInput) -> StageResult:
        """
        Run one turn of this stage.

        Args:
            stage_input: Latest user message and the prior session (if any)

        Returns:
            StageResult with the user-facing message and parsed extraction

        Raises:
            OracleError: Propagated unchanged from the oracle client
        """
        session = stage_input.session
        outbound: List[ChatMessage] = []

        first_invocation = session is None or self.needs_context(session)
        if self.needs_context(session):
            preamble = self.build_preamble(session)
            if preamble:
                outbound.append(
                    ChatMessage(
                        role="user", content=preamble, agent=self.stage, kind="context"
                    )
                )
                log.info(
                    "context_preamble_injected",
                    stage=self.stage.value,
                    preamble_length=len(preamble),
                )

        outbound.append(
            ChatMessage(role="user", content=stage_input.user_message, agent=self.stage)
        )

        history = list(session.conversation_history) if session else []
        context = OracleContext(
            messages=[to_oracle_message(m) for m in history + outbound],
            new_messages=[to_oracle_message(m) for m in outbound],
            thread_id=session.oracle_thread_id if session else None,
        )

        response = await self.oracle.invoke(self.stage, context)
        extraction = parse_stage_output(
            response.content, self.stage, self.config.fallback_complete
        )
        output = extraction.output

        structured = extraction.data or output.model_dump(exclude={"stage"})
        structured.pop("stage", None)

        log.info(
            "stage_processed",
            stage=self.stage.value,
            is_stage_complete=output.is_complete,
            extraction_tier=extraction.tier,
        )

        outbound.append(
            ChatMessage(
                role="assistant",
                content=output.message,
                agent=self.stage,
                question_id=self.question_id_for(output),
            )
        )

        return StageResult(
            stage=self.stage,
            message=output.message,
            output=output,
            structured_data=structured,
            is_stage_complete=output.is_complete,
            thread_id=response.thread_id,
            usage=response.usage,
            context_injected=first_invocation,
            extraction_tier=extraction.tier,
            outbound_messages=outbound,
        )
