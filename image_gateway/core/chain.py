"""Provider chain resolution.

Turns the configured preference order (``IMAGE_PROVIDERS``) into the
ordered list of providers that are both recognised and credentialed.
Resolution never raises: an empty chain is only an error when something
tries to run an operation with it.

Examples:
    >>> from image_gateway.core.chain import resolve_chain
    >>> chain = resolve_chain(Settings(IMAGE_PROVIDERS="gemini,replicate,fal",
    ...                                GEMINI_API_KEY="x", FAL_KEY="y"))
    >>> chain.names
    ('gemini', 'fal')

Tests:
    - tests/unit/test_chain.py
"""

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from functools import lru_cache

from image_gateway.config import API_KEY_SETTINGS, ProviderName, Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderChain:
    """Ordered, immutable list of enabled providers."""

    providers: tuple[ProviderName, ...] = ()

    @property
    def names(self) -> tuple[str, ...]:
        """Provider names as plain strings."""
        return tuple(p.value for p in self.providers)

    def is_enabled(self, provider: ProviderName | str) -> bool:
        """Membership check against the resolved chain."""
        try:
            return ProviderName(provider) in self.providers
        except ValueError:
            return False

    def is_last(self, index: int) -> bool:
        """Whether ``index`` is the final position in the chain."""
        return index == len(self.providers) - 1

    def index(self, provider: ProviderName | str) -> int:
        """Position of a provider in the chain.

        Raises:
            ValueError: If the provider is not in the chain.
        """
        return self.providers.index(ProviderName(provider))

    def __iter__(self) -> Iterator[ProviderName]:
        return iter(self.providers)

    def __len__(self) -> int:
        return len(self.providers)

    def __bool__(self) -> bool:
        return bool(self.providers)

    def __str__(self) -> str:
        return " -> ".join(self.names) or "(empty)"


def resolve_chain(settings: Settings) -> ProviderChain:
    """Resolve the provider chain from settings.

    Unknown names, duplicates and providers without a credential are
    skipped with a warning. Relative order of the survivors is kept.

    Args:
        settings: Application settings.

    Returns:
        ProviderChain, possibly empty.
    """
    providers: list[ProviderName] = []

    for name in settings.provider_order:
        try:
            provider = ProviderName(name)
        except ValueError:
            logger.warning(f"Unknown image provider '{name}' in IMAGE_PROVIDERS, skipping")
            continue

        if provider in providers:
            logger.warning(f"Image provider '{name}' listed twice in IMAGE_PROVIDERS, skipping")
            continue

        if not settings.has_provider(provider):
            logger.warning(
                f"Image provider '{name}' skipped: {API_KEY_SETTINGS[provider]} not set"
            )
            continue

        providers.append(provider)

    chain = ProviderChain(tuple(providers))
    if not chain:
        logger.error("No image providers configured. Set IMAGE_PROVIDERS and provide API keys.")
    else:
        logger.info(f"Image provider chain: {chain}")
    return chain


@lru_cache
def get_provider_chain() -> ProviderChain:
    """Process-wide chain, resolved once from the cached settings.

    Call ``get_provider_chain.cache_clear()`` to force re-resolution.
    """
    return resolve_chain(get_settings())


def is_provider_enabled(provider: ProviderName | str) -> bool:
    """Whether a provider is part of the process-wide chain."""
    return get_provider_chain().is_enabled(provider)
