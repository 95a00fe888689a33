"""
Pytest configuration and fixtures for image gateway tests.

All external services are faked: provider adapters are in-memory fakes and
SDK clients are replaced with unittest.mock objects, so no test touches the
network or needs API keys.
"""
import sys
from pathlib import Path

import pytest

# Add package root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from image_gateway.config import Settings, get_settings
from image_gateway.core.chain import get_provider_chain
from image_gateway.core.orchestrator import reset_default_runtime
from image_gateway.core.providers.base import EditRequest, GenerationRequest
from tests.utils.fakes import PNG_BASE64, FakeBlobStore

# Environment variables read by Settings that must not leak in from the host
ISOLATED_ENV_VARS = (
    "IMAGE_PROVIDERS",
    "GEMINI_API_KEY",
    "FAL_KEY",
    "REPLICATE_API_TOKEN",
    "BLOB_READ_WRITE_TOKEN",
    "ORCHESTRATION_DEADLINE_SECONDS",
)


# ============================================
# Test Fixtures
# ============================================

@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """Drop host credentials and reset process-wide caches around each test."""
    for name in ISOLATED_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    get_provider_chain.cache_clear()
    reset_default_runtime()
    yield
    get_settings.cache_clear()
    get_provider_chain.cache_clear()
    reset_default_runtime()


@pytest.fixture
def make_settings():
    """Factory for Settings that ignores any .env file."""

    def _make(**overrides) -> Settings:
        return Settings(_env_file=None, **overrides)

    return _make


@pytest.fixture
def blob_store() -> FakeBlobStore:
    return FakeBlobStore()


@pytest.fixture
def generation_request() -> GenerationRequest:
    return GenerationRequest(prompt="Poker night flyer with neon lights", aspect_ratio="9:16")


@pytest.fixture
def edit_request() -> EditRequest:
    return EditRequest(prompt="Make the background blue", image_base64=PNG_BASE64)


# ============================================
# Pytest Configuration
# ============================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "fast: Fast unit tests (no external API calls)"
    )
    config.addinivalue_line(
        "markers", "slow: Slow tests (long-running operations)"
    )
