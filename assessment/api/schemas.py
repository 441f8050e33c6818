"""
API request/response schemas.

Pydantic models for API validation and serialization. Wire format is
camelCase; snake_case names are accepted on input as well.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelSchema(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============ TURN SCHEMAS ============


class AssessmentRequest(_CamelSchema):
    """Request to process one assessment turn.

    Emptiness of message/userId is checked by the orchestrator so the error
    body can echo the user's text back.
    """

    message: str = Field(default="", max_length=5000, description="User's message")
    session_id: Optional[str] = Field(
        default=None, description="Existing session; omitted for a new session"
    )
    user_id: str = Field(default="", description="Owner of the session")


class AssessmentResponse(_CamelSchema):
    """Response envelope for one turn."""

    message: str
    data: Dict[str, Any] = Field(default_factory=dict)
    current_agent: str
    session_id: str
    is_complete: bool


# ============ ERROR SCHEMAS ============


class ErrorDetail(BaseModel):
    type: str
    message: str
    retryable: bool = False


class ErrorResponse(_CamelSchema):
    """Body of every error response."""

    error: ErrorDetail
    message: str
    user_message: Optional[str] = None
    session_id: Optional[str] = None


# ============ SESSION SCHEMAS ============


class SessionSummary(_CamelSchema):
    """One entry of a user's session listing."""

    session_id: str
    current_agent: str
    phase: str
    is_complete: bool
    turn_count: int
    started_at: datetime
    updated_at: Optional[datetime] = None
