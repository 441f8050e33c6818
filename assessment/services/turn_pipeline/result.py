"""
Result object for turn processing pipeline.

Returned by the pipeline after all stages complete. ``to_envelope`` yields
the caller-facing response body.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class TurnResult:
    """Result of processing a single turn."""

    message: str
    data: Dict[str, Any]  # stage-typed structured extraction
    current_agent: str
    session_id: str
    is_complete: bool
    phase: str
    turn_number: int = 1
    extraction_tier: Optional[str] = None  # strict | repaired | fallback
    handoff_to: Optional[str] = None
    latency_ms: int = 0
    stage_timings: Dict[str, float] = field(default_factory=dict)

    def to_envelope(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "data": self.data,
            "currentAgent": self.current_agent,
            "sessionId": self.session_id,
            "isComplete": self.is_complete,
        }
