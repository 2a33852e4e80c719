"""Error taxonomy for the edit pipeline.

Every error carries the HTTP status it maps to and a short machine-readable
code. The edit route collapses everything except validation and rate-limit
errors into a generic 500 envelope, keeping the code for callers that want to
tell failure kinds apart.
"""


class SnapEditError(Exception):
    """Base class for all domain errors."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SnapEditError):
    """Request is missing fields or exceeds limits."""

    status_code = 400
    code = "validation_error"


class RateLimitError(SnapEditError):
    status_code = 429
    code = "rate_limited"


class ClassificationError(SnapEditError):
    """The command could not be turned into an Intent."""

    code = "classification_failed"


class ClassificationTimeoutError(ClassificationError):
    code = "classification_timeout"


class UnsupportedActionError(SnapEditError):
    code = "unsupported_action"


class ExternalServiceError(SnapEditError):
    """An image service failed or returned something unusable."""

    code = "external_service_failed"


class ExternalServiceTimeoutError(ExternalServiceError):
    code = "external_service_timeout"


class SessionStateError(SnapEditError):
    """An edit session operation was attempted from the wrong state."""

    status_code = 409
    code = "invalid_session_state"
