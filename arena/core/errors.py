"""Tagged failures surfaced by the scoring path.

Every error carries a stable ``code`` for clients, the HTTP status the API
layer answers with, and whether it counts as a server-side incident. Only
incidents are logged at ERROR; the rest are expected validation outcomes.
"""


class ScoringError(Exception):
    code = "scoring_error"
    status_code = 400
    incident = False

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message, "details": self.details}


class TaskNotFoundError(ScoringError):
    code = "task_not_found"
    status_code = 404


class SubmissionNotFoundError(ScoringError):
    code = "submission_not_found"
    status_code = 404


class NotStartedError(ScoringError):
    code = "not_started"


class EndedError(ScoringError):
    code = "ended"


class AnswerUnavailableError(ScoringError):
    code = "answer_unavailable"


class ScoringNotConfiguredError(ScoringError):
    code = "scoring_not_configured"


class QuotaExceededError(ScoringError):
    code = "quota_exceeded"
    status_code = 429

    def __init__(self, limit: int):
        super().__init__(
            f"Daily submission limit reached ({limit} submissions per day)",
            limit=limit,
        )
        self.limit = limit


class FormatError(ScoringError):
    code = "invalid_format"


class DimensionMismatchError(ScoringError):
    code = "dimension_mismatch"

    def __init__(self, submitted: int, expected: int):
        super().__init__(
            f"Row count mismatch: submission has {submitted} rows, expected {expected}",
            submitted=submitted,
            expected=expected,
        )
        self.submitted = submitted
        self.expected = expected


class InvalidNumericValueError(ScoringError):
    code = "invalid_numeric_value"


class InvalidScoreError(ScoringError):
    code = "invalid_score"


class StorageError(ScoringError):
    """Blob store read/write failed. Transient; safe to retry."""

    code = "storage_error"
    status_code = 503
    incident = True


class SandboxError(ScoringError):
    """The sandbox runtime itself failed, as opposed to the scorer code."""

    code = "sandbox_unavailable"
    status_code = 503
    incident = True
