from __future__ import annotations


class ResupifyError(Exception):
    """Base for every failure the pipeline surfaces to callers."""

    code = "INTERNAL_ERROR"
    retryable = False

    def __init__(self, message: str = "", *, code: str | None = None):
        super().__init__(message or self.code)
        self.message = message or self.code
        if code is not None:
            self.code = code

    def to_dict(self) -> dict[str, object]:
        return {"error": self.code, "message": self.message}


class ValidationError(ResupifyError):
    code = "INVALID_INPUT"


class NotFoundError(ResupifyError):
    code = "NOT_FOUND"


class QuotaError(ResupifyError):
    code = "INSUFFICIENT_CREDITS"

    def __init__(self, message: str = "", *, required: int = 0, balance: int = 0):
        super().__init__(message or f"need {required} credits, have {balance}")
        self.required = required
        self.balance = balance


class RateLimitError(ResupifyError):
    code = "TOO_MANY_REQUESTS"
    retryable = True

    def __init__(self, message: str = "", *, retry_after_seconds: int):
        super().__init__(message or f"rate limit exceeded, retry in {retry_after_seconds}s")
        self.retry_after_seconds = retry_after_seconds

    def to_dict(self) -> dict[str, object]:
        data = super().to_dict()
        data["retry_after_seconds"] = self.retry_after_seconds
        return data


class UpstreamError(ResupifyError):
    """The completion endpoint failed, timed out, or returned an unusable payload."""

    code = "UPSTREAM_FAILED"
    retryable = True


class ExtractionFailedError(UpstreamError):
    code = "EXTRACTION_FAILED"


class ConflictError(ResupifyError):
    code = "CONFLICT"


# Precondition codes shared by the pipeline stages.
NO_SNAPSHOT = "NO_SNAPSHOT"
NO_REQUIREMENTS = "NO_REQUIREMENTS"
NO_RESUME = "NO_RESUME"
NO_EVIDENCE_RUN = "NO_EVIDENCE_RUN"
CONFIRMATION_REQUIRED = "CONFIRMATION_REQUIRED"
ACTION_IN_PROGRESS = "ACTION_IN_PROGRESS"
