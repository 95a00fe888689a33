"""Error taxonomy and classification for image providers.

Third-party providers fail in heterogeneous shapes (SDK exceptions, HTTP
status errors, plain strings). This module defines the tagged error types
adapters raise at their boundary and the pure classifier functions that map
any error value onto a small fixed taxonomy:

    - quota / rate limit (temporary)
    - permanent quota (daily cap, zero allowance)
    - timeout
    - transient server error (503 class)
    - auth failure
    - safety block

Classifications are independent booleans, not mutually exclusive. The same
classifier is used by the retry engine, the fallback orchestrator and the
HTTP layer when mapping failures to status codes and user messages.

Examples:
    >>> from image_gateway.core.errors import classify_error
    >>> c = classify_error(RuntimeError("429 RESOURCE_EXHAUSTED"))
    >>> c.quota_or_rate_limit, c.permanent_quota
    (True, False)

Tests:
    - tests/unit/test_errors.py
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

__all__ = [
    "AuthenticationError",
    "ConfigurationError",
    "ErrorClassification",
    "ErrorKind",
    "NoImageError",
    "NoProvidersConfiguredError",
    "ProviderError",
    "ProviderTimeoutError",
    "QuotaExhaustedError",
    "RateLimitError",
    "SafetyBlockedError",
    "ServiceUnavailableError",
    "StorageError",
    "UnknownOperationError",
    "classify_error",
    "error_message",
    "error_status",
    "extract_retry_delay_ms",
    "is_auth_failure",
    "is_permanent_quota",
    "is_quota_or_rate_limit",
    "is_safety_block",
    "is_timeout",
    "is_transient_server_error",
    "translate_provider_error",
    "user_facing_message",
]


class ErrorKind(str, Enum):
    """Classification vocabulary shared with callers."""

    QUOTA_OR_RATE_LIMIT = "quota_or_rate_limit"
    PERMANENT_QUOTA = "permanent_quota"
    TIMEOUT = "timeout"
    TRANSIENT_SERVER = "transient_server"
    AUTH_FAILURE = "auth_failure"
    SAFETY_BLOCK = "safety_block"


# ---------------------------------------------------------------------------
# Error types
# ---------------------------------------------------------------------------


class ProviderError(Exception):
    """Base exception for provider errors.

    Attributes:
        provider: Name of the provider that raised the error
        message: Original error message (kept verbatim for classification)
        status_code: HTTP status code (if applicable)
        retryable: Whether the error is retryable
    """

    def __init__(
        self,
        message: str,
        provider: str,
        status_code: int | None = None,
        retryable: bool = False,
    ) -> None:
        """Initialize provider error.

        Args:
            message: Error message.
            provider: Provider that raised the error.
            status_code: HTTP status code (optional).
            retryable: Whether the error is retryable.
        """
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.status_code = status_code
        self.retryable = retryable

    def __str__(self) -> str:
        """String representation of the error."""
        parts = [f"[{self.provider}]", self.message]
        if self.status_code:
            parts.insert(1, f"({self.status_code})")
        return " ".join(parts)


class RateLimitError(ProviderError):
    """Rate limit exceeded error (temporary, retrying may help)."""

    def __init__(
        self,
        provider: str,
        message: str | None = None,
        retry_after: int | None = None,
    ) -> None:
        """Initialize rate limit error.

        Args:
            provider: Provider that raised the error.
            message: Original provider message (optional).
            retry_after: Seconds to wait before retrying (optional).
        """
        if message is None:
            message = "Rate limit exceeded"
            if retry_after:
                message += f", retry after {retry_after}s"
        super().__init__(message, provider, status_code=429, retryable=True)
        self.retry_after = retry_after


class QuotaExhaustedError(ProviderError):
    """Daily quota exhausted error (retrying won't help until quota resets).

    This is different from RateLimitError - quota exhaustion means the daily
    limit has been reached (e.g., limit: 0), and retrying is pointless.
    The caller should immediately fall back to an alternative provider.
    """

    def __init__(self, provider: str, message: str | None = None) -> None:
        default_message = "Daily quota exceeded (limit: 0)"
        super().__init__(
            message or default_message,
            provider,
            status_code=429,
            retryable=False,
        )


class AuthenticationError(ProviderError):
    """Authentication failed error (invalid, expired or revoked credential)."""

    def __init__(
        self,
        provider: str,
        message: str | None = None,
        status_code: int = 401,
    ) -> None:
        super().__init__(
            message or "Authentication failed - check API key",
            provider,
            status_code=status_code,
            retryable=False,
        )


class ServiceUnavailableError(ProviderError):
    """Upstream overloaded or unavailable (503 class)."""

    def __init__(self, provider: str, message: str | None = None) -> None:
        super().__init__(
            message or "Service unavailable",
            provider,
            status_code=503,
            retryable=True,
        )


class ProviderTimeoutError(ProviderError):
    """Provider call did not finish in time."""

    def __init__(self, provider: str, message: str | None = None) -> None:
        super().__init__(
            message or "Request timed out",
            provider,
            status_code=504,
            retryable=True,
        )


class SafetyBlockedError(ProviderError):
    """Prompt or output blocked by the provider's safety policy."""

    def __init__(self, provider: str, message: str | None = None) -> None:
        super().__init__(
            message or "Prompt blocked by safety policy",
            provider,
            retryable=False,
        )


class NoImageError(ProviderError):
    """Provider answered but the response carried no usable image."""

    def __init__(self, provider: str, message: str | None = None) -> None:
        super().__init__(
            message or "No image in response",
            provider,
            retryable=False,
        )


class ConfigurationError(Exception):
    """Deployment or caller bug. Never retried, never falls back."""


class NoProvidersConfiguredError(ConfigurationError):
    """The resolved provider chain is empty."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message
            or "No image providers configured. Set IMAGE_PROVIDERS and provide API keys."
        )


class UnknownOperationError(ConfigurationError):
    """Operation is neither generate nor edit."""


class StorageError(Exception):
    """Blob store upload or fetch failed.

    Attributes:
        status_code: HTTP status code (if applicable)
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


# ---------------------------------------------------------------------------
# Classifier
# ---------------------------------------------------------------------------

QUOTA_MARKERS = ("resource_exhausted", "quota", "429", "rate", "limit", "exceeded")
PERMANENT_QUOTA_MARKERS = ("limit: 0", "perdayperproject", "free_tier")
TIMEOUT_MARKERS = ("timeout", "timed out")
TRANSIENT_MARKERS = ("503", "overloaded", "unavailable", "high demand", "service_unavailable")
AUTH_MARKERS = (
    "unauthorized",
    "forbidden",
    "invalid api key",
    "invalid_api_key",
    "authentication",
)
SAFETY_MARKERS = ("safety policy", "blocked by safety", "content policy", "prohibited_content")

# Matches both the JSON form and the Python-repr form SDKs render in str(error)
_RETRY_DELAY_PATTERN = re.compile(r"""["']retryDelay["']\s*:\s*["'](\d+)s?["']""")


def error_message(error: Any) -> str:
    """Best-effort message text for any error value.

    ProviderError and StorageError keep the raw text in ``message``. Other
    exceptions use ``str(error)``, which for SDK errors also carries the
    error details. Mappings use their ``message`` key. Plain strings are
    returned unchanged.
    """
    if error is None:
        return ""
    if isinstance(error, str):
        return error
    if isinstance(error, (ProviderError, StorageError)):
        return error.message
    if isinstance(error, Mapping):
        return str(error.get("message") or error)
    if isinstance(error, BaseException):
        text = str(error)
        if text:
            return text
    message = getattr(error, "message", None)
    if isinstance(message, str) and message:
        return message
    return str(error)


def error_status(error: Any) -> int | None:
    """Numeric HTTP-like status carried by an error, if any.

    Checks ``status_code``, ``status`` and ``code`` attributes (integers
    only; SDKs sometimes put a string like ``RESOURCE_EXHAUSTED`` in
    ``status``), then ``response.status_code``.
    """
    for attr in ("status_code", "status", "code"):
        if isinstance(error, Mapping):
            value = error.get(attr)
        else:
            value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def _text(error: Any) -> str:
    return error_message(error).lower()


def is_quota_or_rate_limit(error: Any) -> bool:
    """True for quota exhaustion or rate limiting (temporary or permanent)."""
    if error_status(error) == 429:
        return True
    text = _text(error)
    return any(marker in text for marker in QUOTA_MARKERS)


def is_permanent_quota(error: Any) -> bool:
    """True when waiting will never help (zero allowance or daily cap).

    Always implies is_quota_or_rate_limit.
    """
    if isinstance(error, QuotaExhaustedError):
        return True
    text = _text(error)
    if not any(marker in text for marker in PERMANENT_QUOTA_MARKERS):
        return False
    return is_quota_or_rate_limit(error)


def is_timeout(error: Any) -> bool:
    """True for timeouts (504, timeout exception types, timeout messages)."""
    if error_status(error) == 504:
        return True
    if not isinstance(error, str) and "timeout" in type(error).__name__.lower():
        return True
    text = _text(error)
    return any(marker in text for marker in TIMEOUT_MARKERS)


def is_transient_server_error(error: Any) -> bool:
    """True for overloaded or unavailable upstreams (503 class)."""
    if error_status(error) == 503:
        return True
    text = _text(error)
    return any(marker in text for marker in TRANSIENT_MARKERS)


def is_auth_failure(error: Any) -> bool:
    """True for bad, expired or revoked credentials."""
    if error_status(error) in (401, 403):
        return True
    text = _text(error)
    return any(marker in text for marker in AUTH_MARKERS)


def is_safety_block(error: Any) -> bool:
    """True when a provider refused the content on policy grounds."""
    if isinstance(error, SafetyBlockedError):
        return True
    text = _text(error)
    return any(marker in text for marker in SAFETY_MARKERS)


@dataclass(frozen=True)
class ErrorClassification:
    """Independent classifications of one error value."""

    quota_or_rate_limit: bool
    permanent_quota: bool
    timeout: bool
    transient_server: bool
    auth_failure: bool
    safety_block: bool

    @property
    def kinds(self) -> frozenset[ErrorKind]:
        """All kinds that apply, as a set."""
        flags = {
            ErrorKind.QUOTA_OR_RATE_LIMIT: self.quota_or_rate_limit,
            ErrorKind.PERMANENT_QUOTA: self.permanent_quota,
            ErrorKind.TIMEOUT: self.timeout,
            ErrorKind.TRANSIENT_SERVER: self.transient_server,
            ErrorKind.AUTH_FAILURE: self.auth_failure,
            ErrorKind.SAFETY_BLOCK: self.safety_block,
        }
        return frozenset(kind for kind, flag in flags.items() if flag)


def classify_error(error: Any) -> ErrorClassification:
    """Classify an error value into the full taxonomy.

    Args:
        error: Exception, string, or any object with message/status fields.

    Returns:
        ErrorClassification with every flag evaluated.
    """
    return ErrorClassification(
        quota_or_rate_limit=is_quota_or_rate_limit(error),
        permanent_quota=is_permanent_quota(error),
        timeout=is_timeout(error),
        transient_server=is_transient_server_error(error),
        auth_failure=is_auth_failure(error),
        safety_block=is_safety_block(error),
    )


def extract_retry_delay_ms(error: Any, cap_ms: int = 60_000) -> int:
    """Provider-supplied wait hint in milliseconds, capped.

    Understands the Gemini ``"retryDelay":"57s"`` field embedded in error
    text and a ``retry_after`` attribute (seconds) on RateLimitError.

    Returns:
        Delay in ms, or 0 when no hint is present.
    """
    match = _RETRY_DELAY_PATTERN.search(error_message(error))
    if match:
        delay_ms = int(match.group(1)) * 1000
    else:
        retry_after = getattr(error, "retry_after", None)
        if not isinstance(retry_after, (int, float)) or retry_after <= 0:
            return 0
        delay_ms = int(retry_after * 1000)
    return min(delay_ms, cap_ms)


def translate_provider_error(error: BaseException, provider: str) -> ProviderError:
    """Wrap a provider-native exception in the matching tagged ProviderError.

    The original text is kept as the message and the original status code
    (when there is one) is kept as ``status_code``, so classification of the
    translated error matches classification of the original. Callers raise
    the result ``from error``.
    """
    if isinstance(error, ProviderError):
        return error

    message = str(error) or type(error).__name__
    status = error_status(error)
    c = classify_error(error)

    translated: ProviderError
    if c.permanent_quota:
        translated = QuotaExhaustedError(provider, message)
    elif status == 429 or "resource_exhausted" in message.lower():
        retry_after = extract_retry_delay_ms(error) // 1000 or None
        translated = RateLimitError(provider, message, retry_after=retry_after)
    elif status in (401, 403):
        translated = AuthenticationError(provider, message, status_code=status)
    elif c.transient_server:
        translated = ServiceUnavailableError(provider, message)
    elif c.timeout:
        translated = ProviderTimeoutError(provider, message)
    else:
        translated = ProviderError(
            message,
            provider,
            retryable=status is not None and status >= 500,
        )

    if status is not None:
        translated.status_code = status
    return translated


# ---------------------------------------------------------------------------
# User-facing messages
# ---------------------------------------------------------------------------

DEFAULT_USER_MESSAGE = "Something went wrong. Please try again."

USER_MESSAGES: dict[str, str] = {
    "rate_limit": "Usage limit temporarily reached. Wait a few minutes and try again.",
    "safety": "The content was blocked by safety policies. Try rephrasing the prompt.",
    "auth": "Authentication error. Check your credentials.",
    "timeout": "The operation took too long. Please try again.",
    "unavailable": "Service temporarily unavailable. Please try again later.",
    "network": "Connection error. Check your connection and try again.",
}

_NETWORK_MARKERS = ("network", "econnrefused", "enotfound", "connection")


def user_facing_message(error: Any, default: str = DEFAULT_USER_MESSAGE) -> str:
    """Map an error to a short, non-technical message for end users.

    Technical details are never returned; only the classification decides
    which message is used.
    """
    classification = classify_error(error)
    if classification.quota_or_rate_limit:
        return USER_MESSAGES["rate_limit"]
    if classification.safety_block or "blocked" in _text(error):
        return USER_MESSAGES["safety"]
    if classification.auth_failure:
        return USER_MESSAGES["auth"]
    if classification.timeout:
        return USER_MESSAGES["timeout"]
    if classification.transient_server:
        return USER_MESSAGES["unavailable"]
    if any(marker in _text(error) for marker in _NETWORK_MARKERS):
        return USER_MESSAGES["network"]
    return default
