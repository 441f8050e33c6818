"""
Turn processing pipeline.

This package implements a composable pipeline pattern for processing one
assessment turn: load context, invoke the active stage agent, accumulate,
hand off, persist, snapshot.
"""

from .base import TurnStage
from .context import PipelineContext
from .pipeline import TurnPipeline
from .result import TurnResult

__all__ = [
    "TurnStage",
    "PipelineContext",
    "TurnPipeline",
    "TurnResult",
]
