"""
Global exception handlers for FastAPI.

Every error body has the same shape:

    {"error": {"type", "message", "retryable"},
     "message": <apology shown to the user>,
     "userMessage": <the user's own text, for retry>,
     "sessionId": <session id when known>}
"""

from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

import structlog

from assessment.core.exceptions import (
    AssessmentSystemError,
    ConfigurationError,
    InvalidTransitionError,
    OracleInvalidResponseError,
    OracleRunFailedError,
    OracleTimeoutError,
    OracleUnavailableError,
    ReportNotReadyError,
    SessionBusyError,
    SessionCompletedError,
    SessionNotFoundError,
    SessionOwnershipError,
    ValidationError,
)

log = structlog.get_logger(__name__)

APOLOGY_MESSAGE = (
    "Sorry, something went wrong while processing your message. "
    "Please try again."
)

# Checked in order; subclasses before their bases
STATUS_CODES = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (OracleTimeoutError, status.HTTP_504_GATEWAY_TIMEOUT),
    (OracleUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (OracleRunFailedError, status.HTTP_502_BAD_GATEWAY),
    (OracleInvalidResponseError, status.HTTP_502_BAD_GATEWAY),
    (SessionNotFoundError, status.HTTP_404_NOT_FOUND),
    (SessionOwnershipError, status.HTTP_403_FORBIDDEN),
    (SessionCompletedError, status.HTTP_409_CONFLICT),
    (ReportNotReadyError, status.HTTP_409_CONFLICT),
    (SessionBusyError, status.HTTP_409_CONFLICT),
    (InvalidTransitionError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def status_code_for(exc: AssessmentSystemError) -> int:
    for error_type, code in STATUS_CODES:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def error_body(
    error_type: str,
    message: str,
    retryable: bool = False,
    user_message: Optional[str] = None,
    session_id: Optional[str] = None,
) -> dict:
    return {
        "error": {"type": error_type, "message": message, "retryable": retryable},
        "message": APOLOGY_MESSAGE,
        "userMessage": user_message,
        "sessionId": session_id,
    }


def _envelope_response(
    status_code: int, exc: AssessmentSystemError, error_type: str, message: str
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_body(
            error_type,
            message,
            retryable=exc.retryable,
            user_message=exc.details.get("user_message"),
            session_id=exc.details.get("session_id"),
        ),
    )


def setup_exception_handlers(app: FastAPI):
    """Register the error-envelope handlers.

    Configuration problems hide their detail from callers. Other application
    errors carry their type and message; anything unexpected becomes a 500.
    """

    @app.exception_handler(ConfigurationError)
    async def on_configuration_error(
        request: Request, exc: ConfigurationError
    ) -> JSONResponse:
        log.error("configuration_error", path=request.url.path, message=exc.message)
        return _envelope_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            exc,
            "ConfigurationError",
            "Server configuration error",
        )

    @app.exception_handler(AssessmentSystemError)
    async def on_assessment_error(
        request: Request, exc: AssessmentSystemError
    ) -> JSONResponse:
        status_code = status_code_for(exc)
        emit = log.error if status_code >= 500 else log.warning
        emit(
            "request_error",
            path=request.url.path,
            error_type=type(exc).__name__,
            status_code=status_code,
            retryable=exc.retryable,
            message=exc.message,
        )
        return _envelope_response(status_code, exc, type(exc).__name__, exc.message)

    @app.exception_handler(Exception)
    async def on_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        log.error(
            "unhandled_exception",
            path=request.url.path,
            error_type=type(exc).__name__,
            message=str(exc),
            exc_info=exc,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_body("InternalServerError", "An unexpected error occurred"),
        )
