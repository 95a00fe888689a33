"""Application configuration with Pydantic Settings.

This module provides centralized configuration management using pydantic-settings.
Settings are loaded from environment variables and .env files.

Examples:
    >>> from image_gateway.config import get_settings
    >>> get_settings().IMAGE_PROVIDERS
    'gemini,replicate,fal'

    >>> get_settings().has_provider(ProviderName.GEMINI)
    True

Tests:
    - tests/unit/test_config.py::TestSettings
    - tests/unit/test_config.py::TestProviderName
"""

from enum import Enum
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderName(str, Enum):
    """Supported image generation providers."""

    GEMINI = "gemini"
    FAL = "fal"
    REPLICATE = "replicate"


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


DEFAULT_PROVIDER_ORDER = "gemini,replicate,fal"

# Name of the secret each provider needs. A provider whose secret is
# absent is dropped from the chain.
API_KEY_SETTINGS: dict[ProviderName, str] = {
    ProviderName.GEMINI: "GEMINI_API_KEY",
    ProviderName.FAL: "FAL_KEY",
    ProviderName.REPLICATE: "REPLICATE_API_TOKEN",
}


class Settings(BaseSettings):
    """Application settings with provider configuration.

    Settings are loaded from environment variables and .env file.
    Missing provider keys never fail startup; they only remove the
    provider from the fallback chain.

    Attributes:
        IMAGE_PROVIDERS: Comma-separated provider preference order
        GEMINI_API_KEY: Google AI API key for Gemini image models
        FAL_KEY: FAL.ai API key
        REPLICATE_API_TOKEN: Replicate API token
        BLOB_READ_WRITE_TOKEN: Vercel Blob token (local storage when unset)
        RETRY_MAX_ATTEMPTS: Default attempts for the retry engine
        RETRY_BASE_DELAY_MS: Linear backoff step for the retry engine
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Provider chain
    IMAGE_PROVIDERS: str = Field(
        default=DEFAULT_PROVIDER_ORDER,
        description="Comma-separated provider preference order",
    )

    # Provider credentials
    GEMINI_API_KEY: str | None = Field(
        default=None,
        description="Google AI API key",
    )
    FAL_KEY: str | None = Field(
        default=None,
        description="FAL.ai API key",
    )
    REPLICATE_API_TOKEN: str | None = Field(
        default=None,
        description="Replicate API token",
    )

    # Object storage
    BLOB_READ_WRITE_TOKEN: str | None = Field(
        default=None,
        description="Vercel Blob read/write token",
    )
    BLOB_LOCAL_ROOT: str = Field(
        default="./output/blobs",
        description="Local blob storage root (used when no Vercel token is set)",
    )
    BLOB_PUBLIC_BASE_URL: str = Field(
        default="http://localhost:8000/blobs",
        description="Public base URL that serves BLOB_LOCAL_ROOT",
    )

    # Retry policy
    RETRY_MAX_ATTEMPTS: int = Field(default=3, ge=1, le=10)
    RETRY_BASE_DELAY_MS: int = Field(default=1000, ge=0)
    RETRY_MAX_HINT_DELAY_MS: int = Field(
        default=60_000,
        ge=0,
        description="Cap for provider-supplied retry hints",
    )
    GEMINI_LOCAL_ATTEMPTS: int = Field(
        default=1,
        ge=1,
        le=10,
        description="Local attempts per Gemini call before the chain advances",
    )
    REPLICATE_RATE_LIMIT_ATTEMPTS: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Local attempts on Replicate 429 before the chain advances",
    )
    REPLICATE_RATE_LIMIT_BACKOFF_MS: int = Field(
        default=10_000,
        ge=0,
        description="Backoff step for Replicate 429 retries (multiplied by attempt)",
    )
    PROVIDER_TIMEOUT_SECONDS: float = Field(
        default=120.0,
        gt=0,
        description="HTTP timeout handed to provider clients",
    )
    ORCHESTRATION_DEADLINE_SECONDS: float | None = Field(
        default=None,
        gt=0,
        description="Overall budget for one request across all providers (unbounded when unset)",
    )

    # Application Settings
    ENVIRONMENT: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment",
    )
    DEBUG: bool = Field(
        default=True,
        description="Enable debug mode",
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Root logging level",
    )

    @field_validator("IMAGE_PROVIDERS")
    @classmethod
    def default_blank_provider_order(cls, v: str) -> str:
        """Use the default order when the variable is set but empty."""
        if not v.replace(",", "").strip():
            return DEFAULT_PROVIDER_ORDER
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalise the log level name."""
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"LOG_LEVEL must be a standard logging level, got {v!r}")
        return level

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.ENVIRONMENT == Environment.PRODUCTION

    @property
    def provider_order(self) -> list[str]:
        """Configured provider names, trimmed and lower-cased, blanks removed."""
        return [
            name.strip().lower()
            for name in self.IMAGE_PROVIDERS.split(",")
            if name.strip()
        ]

    def has_provider(self, provider: ProviderName) -> bool:
        """Check if a specific provider has its credential configured.

        Args:
            provider: The provider to check.

        Returns:
            bool: True if the provider's secret is present and non-blank.
        """
        value = getattr(self, API_KEY_SETTINGS[provider], None)
        return bool(value and value.strip())

    def get_api_key(self, provider: ProviderName) -> str:
        """Get the credential for a specific provider.

        Args:
            provider: The provider to get the key for.

        Returns:
            str: The API key.

        Raises:
            ValueError: If the provider's credential is not configured.
        """
        if not self.has_provider(provider):
            raise ValueError(f"{API_KEY_SETTINGS[provider]} not configured")
        return getattr(self, API_KEY_SETTINGS[provider]).strip()


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings: The application settings.
    """
    return Settings()
