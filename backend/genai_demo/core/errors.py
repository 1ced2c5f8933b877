"""Error taxonomy for the provider orchestration layer.

The provider does not expose a stable machine-readable error code, so
remote failures are classified by substring-matching their message text
against ``ERROR_CATEGORY_PATTERNS``. Upstream wording changes can silently
move an error into ``ErrorCategory.UNKNOWN``; keep the table and its tests
in step with the messages the provider actually returns.
"""

from enum import Enum
from typing import Optional, Tuple


class FileSearchError(Exception):
    """Base class for errors raised by the orchestration layer."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(FileSearchError):
    """A required credential or setting is absent."""


class ValidationError(FileSearchError):
    """Caller input violates a precondition; raised before any network call."""


class RemoteServiceError(FileSearchError):
    """Non-2xx or malformed response from the provider."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.details = details or {}

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"{self.message} (HTTP {self.status_code})"
        return self.message


class NotFoundError(RemoteServiceError):
    """An operation or store handle does not resolve."""


class TransientPollError(RemoteServiceError):
    """Status check failed with a 5xx; the operation may still be in progress."""


class ErrorCategory(str, Enum):
    AUTH = "auth"
    RATE_LIMITED = "rate_limited"
    CONTENT_FILTERED = "content_filtered"
    UNKNOWN = "unknown"


# Checked in order; first match wins.
ERROR_CATEGORY_PATTERNS: Tuple[Tuple[ErrorCategory, Tuple[str, ...]], ...] = (
    (ErrorCategory.AUTH, ("api_key", "api key")),
    (ErrorCategory.RATE_LIMITED, ("quota", "rate_limit", "rate limit", "resource_exhausted")),
    (ErrorCategory.CONTENT_FILTERED, ("safety",)),
)

CATEGORY_HTTP_STATUS = {
    ErrorCategory.AUTH: 401,
    ErrorCategory.RATE_LIMITED: 429,
    ErrorCategory.CONTENT_FILTERED: 400,
    ErrorCategory.UNKNOWN: 500,
}

CATEGORY_MESSAGES = {
    ErrorCategory.AUTH: "Invalid or missing API key",
    ErrorCategory.RATE_LIMITED: "Rate limit exceeded. Please wait a moment and try again.",
    ErrorCategory.CONTENT_FILTERED: "Content blocked by safety filters",
    ErrorCategory.UNKNOWN: "An error occurred while processing your request",
}


def classify_error(message: Optional[str], status_code: Optional[int] = None) -> ErrorCategory:
    """Map a provider error message (and optional status) to a coarse category."""
    text = (message or "").lower()
    for category, tokens in ERROR_CATEGORY_PATTERNS:
        if any(token in text for token in tokens):
            return category
    if status_code == 429:
        return ErrorCategory.RATE_LIMITED
    return ErrorCategory.UNKNOWN


def describe_error(error: RemoteServiceError) -> Tuple[int, str, ErrorCategory]:
    """Return (http_status, user_message, category) for a remote failure."""
    category = classify_error(error.message, error.status_code)
    return CATEGORY_HTTP_STATUS[category], CATEGORY_MESSAGES[category], category
