from __future__ import annotations


class UpstreamError(Exception):
    """A call to an external backend failed in a way that may succeed later."""

    def __init__(self, error_type: str, detail: str = ""):
        super().__init__(f"{error_type}: {detail}")
        self.error_type = error_type
        self.detail = detail


class NonRetryableError(UpstreamError):
    """Deterministic failure: retrying the same input cannot help."""


class StageError(Exception):
    def __init__(self, stage: str, detail: str = ""):
        super().__init__(f"{stage} stage failed: {detail}")
        self.stage = stage
        self.detail = detail


ERROR_TIMEOUT = "TIMEOUT"
ERROR_HTTP = "HTTP_ERROR"
ERROR_RATE_LIMITED = "RATE_LIMITED"
ERROR_INVALID_URL = "INVALID_URL"
ERROR_BAD_RESPONSE = "BAD_RESPONSE"
ERROR_UNKNOWN = "UNKNOWN"


def is_retryable(exc: BaseException) -> bool:
    return not isinstance(exc, NonRetryableError)
