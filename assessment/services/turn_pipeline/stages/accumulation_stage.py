"""
Stage 3: Accumulate the stage output into a working copy of the session.

Runs the state accumulator, then records the turn's bookkeeping: history
(context preamble, user message, assistant reply), token usage, oracle
thread id and the stage's context-injected flag.
"""

from typing import Callable, Optional, TYPE_CHECKING
from datetime import datetime

import structlog

from ..base import TurnStage
from assessment.domain.models.session import AssessmentSession, utc_now
from assessment.services.state_accumulator import accumulate, apply_update

if TYPE_CHECKING:
    from ..context import PipelineContext

log = structlog.get_logger(__name__)


class AccumulationStage(TurnStage):
    """Merge the StageResult into PipelineContext.session."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self.clock = clock or utc_now

    async def process(self, context: "PipelineContext") -> "PipelineContext":
        result = context.require_result()
        prior = context.prior_session
        now = self.clock()

        prior_history = list(prior.conversation_history) if prior else []
        history = prior_history + list(result.outbound_messages)

        if result.output is not None:
            update = accumulate(
                prior,
                result.output,
                user_id=context.user_id,
                session_id=context.session_id,
                now=now,
                history=history,
            )
            session = apply_update(prior, update)
            changed = sorted(update.model_fields_set)
        else:
            session = prior or AssessmentSession(
                session_id=context.session_id, user_id=context.user_id, started_at=now
            )
            changed = []

        injected = dict(session.context_injected)
        if result.context_injected:
            injected[result.stage.value] = True

        session = session.model_copy(
            update={
                "conversation_history": history,
                "token_usage": session.token_usage.add(result.usage),
                "oracle_thread_id": result.thread_id or session.oracle_thread_id,
                "context_injected": injected,
                "turn_count": session.turn_count + 1,
                "updated_at": now,
            }
        )

        log.info(
            "state_accumulated",
            session_id=context.session_id,
            stage=result.stage.value,
            changed_fields=changed,
            history_length=len(history),
            total_tokens=session.token_usage.total_tokens,
        )

        context.session = session
        return context
