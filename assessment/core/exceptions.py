"""
Custom exception hierarchy for the assessment pipeline.

All application exceptions inherit from AssessmentSystemError. Each class
declares whether the failing request can be retried unchanged.
"""

from typing import Any


class AssessmentSystemError(Exception):
    """Base exception for all application errors."""

    retryable: bool = False

    def __init__(self, message: str, **details: Any):
        self.message = message
        self.details = details
        super().__init__(message)


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(AssessmentSystemError):
    """Invalid or missing configuration."""

    pass


# =============================================================================
# Request Errors
# =============================================================================


class ValidationError(AssessmentSystemError):
    """Malformed inbound request. Raised before any oracle call."""

    pass


# =============================================================================
# Oracle Errors
# =============================================================================


class OracleError(AssessmentSystemError):
    """Base for completion oracle errors."""

    pass


class OracleUnavailableError(OracleError):
    """Oracle could not be reached or returned a non-success status."""

    retryable = True


class OracleTimeoutError(OracleUnavailableError):
    """Run did not reach a terminal status within the polling bound."""

    pass


class OracleRunFailedError(OracleError):
    """Oracle reported a failed, cancelled or expired run."""

    pass


class OracleInvalidResponseError(OracleError):
    """Run completed but produced no assistant text to parse."""

    pass


# =============================================================================
# Session Errors
# =============================================================================


class SessionError(AssessmentSystemError):
    """Session-related error."""

    pass


class SessionNotFoundError(SessionError):
    """Session does not exist."""

    pass


class SessionCompletedError(SessionError):
    """Turn submitted to a session whose assessment is already complete."""

    pass


class ReportNotReadyError(SessionError):
    """Report requested before the analysis stage completed."""

    pass


class SessionOwnershipError(SessionError):
    """Session belongs to a different user."""

    pass


class StateCorruptionRiskError(SessionError):
    """Concurrent turns against one session could interleave their writes."""

    pass


class SessionBusyError(StateCorruptionRiskError):
    """Gave up waiting for another in-flight turn on the same session."""

    retryable = True


class InvalidTransitionError(SessionError):
    """Stage transition would move backwards or skip a stage.

    Indicates a defect upstream, never a user error.
    """

    pass
