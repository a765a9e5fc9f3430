"""
Domain errors for the analysis pipeline.

Every failure that reaches the caller is one of these, carrying a
human-readable message and the HTTP status it is reported with.
A malformed model answer is not among them: it degrades to a fallback
result inside the response extractor.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Failure categories of an analysis request."""
    INVALID_INPUT = "invalid_input"
    MISCONFIGURED = "misconfigured"
    RATE_LIMITED = "rate_limited"
    QUOTA_EXHAUSTED = "quota_exhausted"
    UPSTREAM_FAILURE = "upstream_failure"
    EMPTY_RESPONSE = "empty_response"
    # Logged only, never raised
    MALFORMED_RESULT = "malformed_result"


class AnalysisError(Exception):
    """Base class for errors surfaced to the caller."""

    kind: ErrorKind = ErrorKind.UPSTREAM_FAILURE
    status_code: int = 500
    default_message: str = "Analysis failed"

    def __init__(self, message: str = ""):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.message}


class InvalidInputError(AnalysisError):
    """No usable image was supplied."""
    kind = ErrorKind.INVALID_INPUT
    status_code = 400
    default_message = "No image data provided"


class MisconfiguredError(AnalysisError):
    """Service credential missing; needs operator action."""
    kind = ErrorKind.MISCONFIGURED
    status_code = 500
    default_message = "AI gateway API key is not configured"


class RateLimitedError(AnalysisError):
    kind = ErrorKind.RATE_LIMITED
    status_code = 429
    default_message = "Rate limit exceeded. Please try again in a moment."


class QuotaExhaustedError(AnalysisError):
    kind = ErrorKind.QUOTA_EXHAUSTED
    status_code = 402
    default_message = "Service credits exhausted. Please add credits."


class UpstreamFailureError(AnalysisError):
    kind = ErrorKind.UPSTREAM_FAILURE
    status_code = 500
    default_message = "AI analysis failed"


class EmptyResponseError(AnalysisError):
    kind = ErrorKind.EMPTY_RESPONSE
    status_code = 500
    default_message = "No analysis content returned"
