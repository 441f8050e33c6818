"""
Pipeline stages for turn processing.

Each stage encapsulates one logical step of turn processing, from context
loading through the analytics snapshot. Stages execute sequentially in the
TurnPipeline orchestrator.
"""

from .context_loading_stage import ContextLoadingStage
from .agent_invocation_stage import AgentInvocationStage
from .accumulation_stage import AccumulationStage
from .handoff_stage import HandoffStage
from .persistence_stage import PersistenceStage
from .snapshot_stage import SnapshotStage

__all__ = [
    "ContextLoadingStage",
    "AgentInvocationStage",
    "AccumulationStage",
    "HandoffStage",
    "PersistenceStage",
    "SnapshotStage",
]
