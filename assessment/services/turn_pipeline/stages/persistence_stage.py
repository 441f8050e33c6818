"""
Stage 5: Persist the updated session.

The only stage that writes session state. Everything before it works on a
copy, so a failed turn leaves the stored session as it was.
"""

from typing import TYPE_CHECKING

from ..base import TurnStage
from assessment.persistence.session_store import SessionStore

if TYPE_CHECKING:
    from ..context import PipelineContext


class PersistenceStage(TurnStage):
    def __init__(self, store: SessionStore):
        self.store = store

    async def process(self, context: "PipelineContext") -> "PipelineContext":
        await self.store.set(context.session_id, context.require_session())
        context.persisted = True
        return context
