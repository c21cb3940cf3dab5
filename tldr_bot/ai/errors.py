"""Summarization failures with user-facing messages."""

import re
from typing import Optional


class SummarizationError(Exception):
    """Base class for generation failures that can be shown to users."""

    user_message = "Error generating summary. Please try again later."

    def __init__(self, message: str = None, cause: Exception = None):
        super().__init__(message or self.user_message)
        self.cause = cause


class CredentialInvalidError(SummarizationError):
    user_message = (
        "Invalid API key. Please check your Gemini API key and ensure it's correct. "
        "An admin can update it with the add-group command."
    )


class PermissionDeniedError(SummarizationError):
    user_message = (
        "Permission denied. Your API key may not have access to the Gemini API. "
        "Please check your API key permissions."
    )


class QuotaExceededError(SummarizationError):
    user_message = (
        "API quota exceeded. Your Gemini API key has reached its rate limit or quota. "
        "Please try again later or check your API usage."
    )


class GenerationTimeoutError(SummarizationError):
    user_message = "Request timeout. The API request took too long. Please try again."


class GenerationNetworkError(SummarizationError):
    user_message = (
        "Network error. Could not connect to the Gemini API. "
        "Please check your internet connection and try again."
    )


class UnknownGenerationError(SummarizationError):
    """Unrecognized failure, wrapped only where it must be shown to a user."""


class ChunkFailureError(SummarizationError):
    """A chunk of a large summary failed after all retries.

    Carries the classified cause so users still get an actionable message.
    """

    def __init__(self, chunk_index: int, total_chunks: int, cause: Exception):
        self.chunk_index = chunk_index
        self.total_chunks = total_chunks
        if isinstance(cause, SummarizationError):
            self.user_message = cause.user_message
        super().__init__(
            f"Chunk {chunk_index}/{total_chunks} failed: {cause}",
            cause=cause,
        )


def _status(code: int) -> str:
    """Pattern for an HTTP status code standing on its own, not inside an ID or number."""
    return rf'(?<![\w.-]){code}(?![\w.-])'


# Checked in order; the first matching pattern wins. Patterns are searched
# case-insensitively in "<ExceptionType>: <message>".
_ERROR_PATTERNS = tuple(
    (error_cls, re.compile('|'.join(patterns)))
    for error_cls, patterns in (
        (CredentialInvalidError, ('api_key_invalid', _status(401), 'unauthorized', 'unauthenticated', 'api key not valid')),
        (PermissionDeniedError, ('permission_denied', _status(403), 'forbidden')),
        (QuotaExceededError, ('quota_exceeded', 'resource_exhausted', _status(429), 'quota')),
        (GenerationTimeoutError, ('timeout', 'timed out', 'deadline_exceeded')),
        (GenerationNetworkError, (
            'network', 'econnrefused', 'enotfound', 'connecterror', 'connection refused',
            'connection reset', 'name or service not known', 'temporary failure in name resolution',
        )),
    )
)

# google.genai.errors.APIError carries the HTTP status as an int `code`
_STATUS_CODES = {
    401: CredentialInvalidError,
    403: PermissionDeniedError,
    429: QuotaExceededError,
    504: GenerationTimeoutError,
}


def classify_generation_error(error: Exception) -> Optional[SummarizationError]:
    """Map a raw generation failure onto the error taxonomy.

    Returns:
        A SummarizationError wrapping `error`, or None if unrecognized
    """
    if isinstance(error, SummarizationError):
        return error

    code = getattr(error, 'code', None)
    if isinstance(code, int) and code in _STATUS_CODES:
        return _STATUS_CODES[code](cause=error)

    haystack = f"{type(error).__name__}: {error}".lower()
    for error_cls, pattern in _ERROR_PATTERNS:
        if pattern.search(haystack):
            return error_cls(cause=error)

    return None
