"""Error taxonomy for the diagnosis engine.

Every error carries a stable ``code`` so API responses and extraction results
can report the failure reason without leaking exception class names.
"""


class DiagnosisError(Exception):
    """Base class for all diagnosis engine errors."""

    code = "DIAGNOSIS_ERROR"

    def __init__(self, message: str, *, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


class NotFoundError(DiagnosisError):
    """Raised when a session or referenced entity does not exist."""

    code = "NOT_FOUND"


class AccessDeniedError(DiagnosisError):
    """Raised when the caller does not own the requested session."""

    code = "ACCESS_DENIED"


class ProviderError(DiagnosisError):
    """Raised when the embedding backend fails (transport, auth or payload)."""

    code = "PROVIDER_ERROR"

    def __init__(self, message: str):
        super().__init__(message, retryable=True)


class CompletionError(DiagnosisError):
    """Raised when the completion backend returns a non-success response."""

    code = "COMPLETION_ERROR"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message, retryable=True)
        self.status_code = status_code


class CompletionTimeoutError(CompletionError):
    """Raised when a completion call exceeds its configured timeout."""

    code = "COMPLETION_TIMEOUT"


class ParseError(DiagnosisError):
    """Raised when model output or a stream fragment is not valid JSON."""

    code = "PARSE_ERROR"


class InvalidExtractionError(DiagnosisError):
    """Raised when well-formed extraction JSON fails insight validation."""

    code = "INVALID_EXTRACTION"


class NoNextStageError(DiagnosisError):
    """Raised when advancing a session that is at the terminal or an unknown stage."""

    code = "NO_NEXT_STAGE"


class StageConflictError(DiagnosisError):
    """Raised when a concurrent advance moved the session first."""

    code = "STAGE_CONFLICT"


class StoreError(DiagnosisError):
    """Raised when the external session/document store fails."""

    code = "STORE_ERROR"

    def __init__(self, message: str):
        super().__init__(message, retryable=True)


class UnknownStageError(DiagnosisError):
    """Raised when a session's stored stage is not one of the five dimensions."""

    code = "UNKNOWN_STAGE"
