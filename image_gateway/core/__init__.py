"""Core components for the image gateway."""

from image_gateway.core.errors import (
    AuthenticationError,
    ConfigurationError,
    NoProvidersConfiguredError,
    ProviderError,
    QuotaExhaustedError,
    RateLimitError,
    SafetyBlockedError,
    classify_error,
)

__all__ = [
    "AuthenticationError",
    "ConfigurationError",
    "NoProvidersConfiguredError",
    "ProviderError",
    "QuotaExhaustedError",
    "RateLimitError",
    "SafetyBlockedError",
    "classify_error",
]
