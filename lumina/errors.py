"""Pipeline error taxonomy with category metadata."""


class PipelineError(Exception):
    """Structured pipeline error with category metadata."""

    category = "UNKNOWN"

    def __init__(self, message: str, category: str | None = None):
        super().__init__(message)
        self.message = message
        if category:
            self.category = category


class NotFoundError(PipelineError):
    """Referenced entity vanished between enqueue and processing."""

    category = "NOT_FOUND"


class ValidationFailure(PipelineError):
    """Malformed or unsupported input (unknown pillar/type)."""

    category = "VALIDATION"


class ExternalServiceError(PipelineError):
    """Network/timeout talking to a feed, page or the AI model."""

    category = "TRANSIENT"


class SchemaViolation(PipelineError):
    """Model response did not parse into the required structure."""

    category = "SCHEMA"


class ConfigurationError(PipelineError):
    """Missing required secret or credential."""

    category = "CONFIG"


class PermissionDeniedError(PipelineError):
    category = "AUTH"


class StoreError(PipelineError):
    category = "STORE"


class BatchLimitExceeded(StoreError):
    pass


class ContentGenerationError(PipelineError):
    """
    Classified generation failure. The article has already been written to
    GenerationFailed when this is raised.
    """

    category = "GENERATION"

    def __init__(self, message: str, cause: Exception | None = None, transient: bool = False):
        super().__init__(message)
        self.cause = cause
        self.transient = transient


_NON_RETRYABLE = (
    NotFoundError,
    ValidationFailure,
    SchemaViolation,
    ConfigurationError,
    PermissionDeniedError,
    BatchLimitExceeded,
)


def retryable(error: Exception) -> bool:
    """Whether the task queue should retry after this error."""
    if isinstance(error, ContentGenerationError):
        return error.transient
    if isinstance(error, _NON_RETRYABLE):
        return False
    return True


def describe(error: Exception) -> str:
    message = getattr(error, "message", None) or str(error) or type(error).__name__
    return message
