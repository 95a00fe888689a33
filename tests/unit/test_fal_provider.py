"""Unit tests for the FAL.ai image provider.

Tests for image_gateway/core/providers/fal.py.

Run with:
    pytest tests/unit/test_fal_provider.py -v
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from image_gateway.core.catalog import ModelTier
from image_gateway.core.errors import (
    AuthenticationError,
    NoImageError,
    StorageError,
)
from image_gateway.core.providers import (
    EditRequest,
    FalProvider,
    GenerationRequest,
    ImageInput,
)
from image_gateway.core.providers.fal import _first_image_url
from tests.utils.fakes import PNG_BASE64, StallingBlobStore

FAL_RESULT = {"images": [{"url": "https://v3.fal.media/files/out.png"}]}


class HTTPStatusFailure(Exception):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code


def make_provider(blob_store, result=FAL_RESULT, error=None) -> FalProvider:
    provider = FalProvider(api_key="fal-key", blob_store=blob_store)
    provider._client = MagicMock(subscribe=AsyncMock(return_value=result, side_effect=error))
    return provider


def subscribed(provider: FalProvider) -> tuple[str, dict]:
    call = provider._client.subscribe.await_args
    return call.args[0], call.kwargs["arguments"]


@pytest.mark.fast
class TestFirstImageUrl:
    """Tests for result payload parsing."""

    def test_dict_payload(self):
        assert _first_image_url(FAL_RESULT) == "https://v3.fal.media/files/out.png"

    def test_object_with_data(self):
        assert _first_image_url(SimpleNamespace(data=FAL_RESULT)) == "https://v3.fal.media/files/out.png"

    @pytest.mark.parametrize(
        "payload",
        [{}, {"images": []}, {"images": [{"url": ""}]}, {"images": ["x"]}, None],
    )
    def test_missing_url(self, payload):
        assert _first_image_url(payload) is None


@pytest.mark.fast
class TestFalGenerate:
    """Tests for FalProvider.generate."""

    @pytest.mark.asyncio
    async def test_text_only_pro(self, blob_store):
        provider = make_provider(blob_store)

        result = await provider.generate(
            GenerationRequest(prompt="A flyer", aspect_ratio="9:16", image_size="2K")
        )

        endpoint, arguments = subscribed(provider)
        assert endpoint == "fal-ai/gemini-3-pro-image-preview"
        assert arguments == {
            "prompt": "A flyer",
            "aspect_ratio": "9:16",
            "output_format": "png",
            "resolution": "2K",
        }
        assert result.image_url == "https://v3.fal.media/files/out.png"
        assert result.used_model == endpoint
        assert blob_store.uploads == []

    @pytest.mark.asyncio
    async def test_standard_tier_has_no_resolution(self, blob_store):
        provider = make_provider(blob_store)

        result = await provider.generate(
            GenerationRequest(prompt="A flyer", model_tier=ModelTier.STANDARD)
        )

        endpoint, arguments = subscribed(provider)
        assert endpoint == "fal-ai/gemini-25-flash-image"
        assert "resolution" not in arguments
        assert result.used_model == "fal-ai/gemini-25-flash-image"

    @pytest.mark.asyncio
    async def test_references_use_edit_endpoint(self, blob_store):
        """Test references are uploaded in order and sent as image_urls."""
        provider = make_provider(blob_store)
        request = GenerationRequest(
            prompt="A flyer",
            aspect_ratio="1.91:1",
            product_images=(ImageInput(base64=PNG_BASE64),),
            person_reference_image=ImageInput(base64=PNG_BASE64, mime_type="image/jpeg"),
        )

        await provider.generate(request)

        endpoint, arguments = subscribed(provider)
        assert endpoint == "fal-ai/gemini-3-pro-image-preview/edit"
        assert arguments["aspect_ratio"] == "16:9"
        assert arguments["image_urls"] == [
            "https://blob.test/fal-ref-1.png",
            "https://blob.test/fal-ref-2.png",
        ]
        assert [u[1] for u in blob_store.uploads] == ["image/jpeg", "image/png"]

    @pytest.mark.asyncio
    async def test_empty_result(self, blob_store):
        provider = make_provider(blob_store, result={"images": []})
        with pytest.raises(NoImageError, match="No image URL"):
            await provider.generate(GenerationRequest(prompt="A flyer"))

    @pytest.mark.asyncio
    async def test_client_error_translated(self, blob_store):
        error = HTTPStatusFailure(401, "Invalid key")
        provider = make_provider(blob_store, error=error)

        with pytest.raises(AuthenticationError) as exc_info:
            await provider.generate(GenerationRequest(prompt="A flyer"))

        assert exc_info.value.provider == "fal"
        assert exc_info.value.__cause__ is error

    @pytest.mark.asyncio
    async def test_invalid_reference_payload(self, blob_store):
        provider = make_provider(blob_store)
        request = GenerationRequest(
            prompt="A flyer",
            product_images=(ImageInput(base64="not base64!"),),
        )

        with pytest.raises(StorageError):
            await provider.generate(request)
        provider._client.subscribe.assert_not_awaited()


@pytest.mark.fast
class TestFalEdit:
    """Tests for FalProvider.edit."""

    @pytest.mark.asyncio
    async def test_edit_pro(self, blob_store):
        provider = make_provider(blob_store)
        request = EditRequest(
            prompt="Make it blue",
            image_base64=PNG_BASE64,
            reference_image=ImageInput(base64=PNG_BASE64),
        )

        result = await provider.edit(request)

        endpoint, arguments = subscribed(provider)
        assert endpoint == "fal-ai/gemini-3-pro-image-preview/edit"
        assert arguments == {
            "prompt": "Make it blue",
            "image_urls": [
                "https://blob.test/fal-edit-1.png",
                "https://blob.test/fal-edit-ref-2.png",
            ],
            "output_format": "png",
            "resolution": "1K",
        }
        assert result.used_model == endpoint

    @pytest.mark.asyncio
    async def test_edit_standard(self, blob_store):
        provider = make_provider(blob_store)
        request = EditRequest(
            prompt="Make it blue",
            image_base64=PNG_BASE64,
            model_tier=ModelTier.STANDARD,
        )

        await provider.edit(request)

        endpoint, arguments = subscribed(provider)
        assert endpoint == "fal-ai/gemini-25-flash-image/edit"
        assert "resolution" not in arguments
        assert arguments["image_urls"] == ["https://blob.test/fal-edit-1.png"]

    @pytest.mark.asyncio
    async def test_failed_upload_stops_other_uploads(self):
        store = StallingBlobStore(failing_prefixes=("fal-edit-ref",))
        provider = make_provider(store)
        request = EditRequest(
            prompt="Make it blue",
            image_base64=PNG_BASE64,
            reference_image=ImageInput(base64=PNG_BASE64),
        )

        with pytest.raises(StorageError):
            await provider.edit(request)

        assert store.cancelled == ["fal-edit"]
        provider._client.subscribe.assert_not_awaited()
