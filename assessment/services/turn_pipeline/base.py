"""TurnStage: one step of per-turn processing."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .context import PipelineContext


class TurnStage(ABC):
    """
    A stage reads what earlier stages put on the PipelineContext, adds its
    own output and returns the context. Only PersistenceStage writes to the
    session store.
    """

    @abstractmethod
    async def process(self, context: "PipelineContext") -> "PipelineContext":
        pass

    @property
    def stage_name(self) -> str:
        """Name used in stage timings and failure logs."""
        return type(self).__name__
