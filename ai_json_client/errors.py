"""
Error taxonomy for the AI JSON client.

Every error raised by this package carries a stable ``code`` and an optional
HTTP-like ``status_code`` so callers can branch without string matching.
Provider SDK errors are not wrapped; ``error_code`` / ``error_status`` read
the same information off them.

Retry policy: retry only transient failures (timeouts, connection resets,
408/409/425/429, 5xx) and unparseable model JSON; fail fast on everything else.
"""

from __future__ import annotations

from typing import Optional

from openai import APIConnectionError

AI_TIMEOUT = "AI_TIMEOUT"
MODEL_JSON_PARSE_FAILED = "MODEL_JSON_PARSE_FAILED"
AI_EMPTY_CONTENT = "AI_EMPTY_CONTENT"
AI_REFUSAL = "AI_REFUSAL"
AI_CONFIGURATION_ERROR = "AI_CONFIGURATION_ERROR"

_RETRYABLE_CODES = frozenset({
    AI_TIMEOUT,
    "ETIMEDOUT",
    "ECONNRESET",
    "ECONNABORTED",
    MODEL_JSON_PARSE_FAILED,
})
_RETRYABLE_STATUSES = frozenset({408, 409, 425, 429})

# Content-quality failures: evidence the model itself is misbehaving.
_DEMOTABLE_CODES = frozenset({MODEL_JSON_PARSE_FAILED, AI_EMPTY_CONTENT})


class AIClientError(Exception):
    """Base for AI client errors."""

    code: str = "AI_CLIENT_ERROR"
    status_code: Optional[int] = None

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code


class ConfigurationError(AIClientError):
    """The call cannot be made as configured. Never retried."""

    code = AI_CONFIGURATION_ERROR


class AITimeoutError(AIClientError):
    """An attempt did not finish within its deadline."""

    code = AI_TIMEOUT
    status_code = 504


class ModelJSONParseError(AIClientError):
    """Model output could not be turned into JSON by any recovery stage."""

    code = MODEL_JSON_PARSE_FAILED
    status_code = 502

    def __init__(self, message: str, *, raw_preview: str = "") -> None:
        super().__init__(message)
        self.raw_preview = raw_preview


class EmptyContentError(AIClientError):
    """The backend answered but returned no text."""

    code = AI_EMPTY_CONTENT
    status_code = 502

    def __init__(self, message: str, *, model: str = "", finish_reason: str = "") -> None:
        super().__init__(message)
        self.model = model
        self.finish_reason = finish_reason


class ModelRefusalError(AIClientError):
    """The backend explicitly declined to answer."""

    code = AI_REFUSAL
    status_code = 422

    def __init__(self, message: str, *, model: str = "", refusal: str = "") -> None:
        super().__init__(message)
        self.model = model
        self.refusal = refusal


def error_code(exc: BaseException) -> str:
    """Upper-cased string ``code`` of an error, or "" (integer codes are statuses, not codes)."""
    code = getattr(exc, "code", None)
    if isinstance(code, str):
        return code.upper()
    return ""


def error_status(exc: BaseException) -> Optional[int]:
    """HTTP status carried by an error, from whichever attribute the SDK uses."""
    for attr in ("status_code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    # google.api_core exceptions expose the HTTP status as an int ``code``
    code = getattr(exc, "code", None)
    if isinstance(code, int) and not isinstance(code, bool):
        return code
    response = getattr(exc, "response", None)
    value = getattr(response, "status_code", None)
    if isinstance(value, int):
        return value
    return None


def is_retryable_error(exc: BaseException) -> bool:
    """Classify an error as transient (retry the same model) or not."""
    if error_code(exc) in _RETRYABLE_CODES:
        return True
    # Our own status codes describe the failure for callers; only the code decides retry.
    if isinstance(exc, AIClientError):
        return False
    if isinstance(exc, (ConnectionError, TimeoutError, APIConnectionError)):
        return True
    status = error_status(exc)
    if status is None:
        return False
    return status in _RETRYABLE_STATUSES or 500 <= status <= 599


def is_demotable_error(exc: BaseException) -> bool:
    """True for failures that count against a model's health (not plain network/timeouts)."""
    return error_code(exc) in _DEMOTABLE_CODES
