"""Typed failures raised by the role-definition and audition pipeline.

Every error carries the HTTP status it maps to and a message that is safe
to show to the caller. The API layer turns them into JSON responses in
``app/error_handlers.py``.
"""
from typing import Optional


class PipelineError(Exception):
    status_code: int = 500
    message: str = "Something went wrong. Please try again."
    retryable: bool = False

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        if message:
            self.message = message

    @property
    def kind(self) -> str:
        return type(self).__name__


class ValidationError(PipelineError):
    status_code = 400
    message = "Invalid request."


class PayloadTooLarge(ValidationError):
    status_code = 413
    message = "Payload too large."


class AuthError(PipelineError):
    status_code = 401
    message = "Unauthorized"


class NotFound(PipelineError):
    status_code = 404
    message = "Not found."


class ScaffoldNotReady(PipelineError):
    status_code = 409
    message = "No audition scaffold available to approve."


class UpstreamError(PipelineError):
    status_code = 500
    message = "The generation service failed. Please try again."
    retryable = True


class UpstreamUnavailable(UpstreamError):
    pass


class UpstreamRateLimited(UpstreamError):
    status_code = 429
    message = "Rate limit exceeded. Please try again later."


class UpstreamQuotaExceeded(UpstreamError):
    status_code = 402
    message = "Payment required. Please add credits to your workspace."
    retryable = False


class UpstreamMalformed(UpstreamError):
    """The generation service answered, but not with the content we asked for."""

    def __init__(self, message: Optional[str] = None, raw: Optional[str] = None):
        super().__init__(message)
        self.raw = raw


class ExtractionFailed(UpstreamMalformed):
    message = "We couldn't extract a role definition. Please try again."


class ScaffoldRejected(UpstreamMalformed):
    message = "We couldn't build the audition scaffold. Please try again."


class ScaffoldGenerationFailed(PipelineError):
    message = "We couldn't build the audition scaffold. Please try again."
    retryable = True


class PersistenceError(PipelineError):
    message = "Could not save the audition scaffold."
    retryable = True
