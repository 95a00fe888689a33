"""Unit tests for provider chain resolution.

Tests for image_gateway/core/chain.py.

Run with:
    pytest tests/unit/test_chain.py -v
"""

import logging

import pytest

from image_gateway.config import ProviderName, get_settings
from image_gateway.core.chain import (
    ProviderChain,
    get_provider_chain,
    is_provider_enabled,
    resolve_chain,
)


@pytest.mark.fast
class TestResolveChain:
    """Tests for resolve_chain."""

    def test_default_order_with_all_keys(self, make_settings):
        settings = make_settings(GEMINI_API_KEY="g", FAL_KEY="f", REPLICATE_API_TOKEN="r")
        assert resolve_chain(settings).names == ("gemini", "replicate", "fal")

    def test_keeps_relative_order_of_credentialed_providers(self, make_settings):
        """Test providers without credentials are dropped, order preserved."""
        settings = make_settings(
            IMAGE_PROVIDERS="gemini,replicate,fal",
            GEMINI_API_KEY="g",
            FAL_KEY="f",
        )
        assert resolve_chain(settings).names == ("gemini", "fal")

    def test_custom_order(self, make_settings):
        settings = make_settings(
            IMAGE_PROVIDERS="fal,gemini",
            GEMINI_API_KEY="g",
            FAL_KEY="f",
            REPLICATE_API_TOKEN="r",
        )
        assert resolve_chain(settings).providers == (ProviderName.FAL, ProviderName.GEMINI)

    def test_unknown_names_skipped_with_warning(self, make_settings, caplog):
        settings = make_settings(IMAGE_PROVIDERS="midjourney,gemini", GEMINI_API_KEY="g")
        with caplog.at_level(logging.WARNING, logger="image_gateway.core.chain"):
            chain = resolve_chain(settings)
        assert chain.names == ("gemini",)
        assert "midjourney" in caplog.text

    def test_missing_key_logged(self, make_settings, caplog):
        settings = make_settings(IMAGE_PROVIDERS="replicate")
        with caplog.at_level(logging.WARNING, logger="image_gateway.core.chain"):
            resolve_chain(settings)
        assert "REPLICATE_API_TOKEN" in caplog.text

    def test_duplicates_skipped(self, make_settings):
        settings = make_settings(IMAGE_PROVIDERS="gemini,GEMINI,fal", GEMINI_API_KEY="g", FAL_KEY="f")
        assert resolve_chain(settings).names == ("gemini", "fal")

    @pytest.mark.parametrize("value", ["", "   ", " , "])
    def test_blank_order_uses_default(self, make_settings, value):
        settings = make_settings(
            IMAGE_PROVIDERS=value,
            GEMINI_API_KEY="g",
            FAL_KEY="f",
            REPLICATE_API_TOKEN="r",
        )
        assert resolve_chain(settings).names == ("gemini", "replicate", "fal")

    def test_blank_order_from_environment(self, monkeypatch):
        monkeypatch.setenv("IMAGE_PROVIDERS", "")
        monkeypatch.setenv("FAL_KEY", "f")
        assert get_provider_chain().names == ("fal",)

    def test_empty_chain_does_not_raise(self, make_settings):
        chain = resolve_chain(make_settings())
        assert len(chain) == 0
        assert not chain
        assert str(chain) == "(empty)"


@pytest.mark.fast
class TestProviderChain:
    """Tests for ProviderChain."""

    def test_membership(self):
        chain = ProviderChain((ProviderName.GEMINI, ProviderName.FAL))
        assert chain.is_enabled("gemini")
        assert chain.is_enabled(ProviderName.FAL)
        assert not chain.is_enabled("replicate")
        assert not chain.is_enabled("unknown")

    def test_positions(self):
        chain = ProviderChain((ProviderName.GEMINI, ProviderName.FAL))
        assert chain.index("fal") == 1
        assert not chain.is_last(0)
        assert chain.is_last(1)
        assert list(chain) == [ProviderName.GEMINI, ProviderName.FAL]
        assert str(chain) == "gemini -> fal"


@pytest.mark.fast
class TestProcessWideChain:
    """Tests for the cached chain."""

    def test_resolved_once_from_environment(self, monkeypatch):
        monkeypatch.setenv("IMAGE_PROVIDERS", "replicate,gemini")
        monkeypatch.setenv("REPLICATE_API_TOKEN", "r8")
        chain = get_provider_chain()
        assert chain.names == ("replicate",)
        assert get_provider_chain() is chain
        assert is_provider_enabled("replicate")
        assert not is_provider_enabled("gemini")

    def test_cache_clear_re_resolves(self, monkeypatch):
        monkeypatch.setenv("IMAGE_PROVIDERS", "fal")
        assert get_provider_chain().names == ()
        monkeypatch.setenv("FAL_KEY", "f")
        get_provider_chain.cache_clear()
        get_settings.cache_clear()
        assert get_provider_chain().names == ("fal",)
