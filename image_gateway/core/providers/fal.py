"""FAL.ai image provider.

Runs the same Gemini image models hosted on FAL. FAL needs HTTP URLs for
input images, so every inline image is uploaded to the blob store first.

Examples:
    >>> provider = FalProvider(api_key="fal-key", blob_store=store)
    >>> result = await provider.generate(GenerationRequest(prompt="A neon flyer"))
    >>> result.used_model
    'fal-ai/gemini-3-pro-image-preview'

Tests:
    - tests/unit/test_fal_provider.py
"""

import logging
import threading
from collections.abc import Mapping
from typing import Any

from image_gateway.config import ProviderName
from image_gateway.core.catalog import (
    FAL_ENDPOINTS,
    IMAGE_SIZES,
    ModelTier,
    map_aspect_ratio,
)
from image_gateway.core.errors import NoImageError, translate_provider_error
from image_gateway.core.providers.base import (
    EditRequest,
    GenerationRequest,
    ImageInput,
    ImageProvider,
    ProviderResult,
)
from image_gateway.storage import BlobStore, upload_many

logger = logging.getLogger(__name__)

OUTPUT_FORMAT = "png"


def _first_image_url(result: Any) -> str | None:
    """Pull ``images[0].url`` out of a FAL result payload."""
    payload = result if isinstance(result, Mapping) else getattr(result, "data", None)
    if not isinstance(payload, Mapping):
        return None
    images = payload.get("images") or []
    if not images or not isinstance(images[0], Mapping):
        return None
    url = images[0].get("url")
    return url if isinstance(url, str) and url else None


class FalProvider(ImageProvider):
    """FAL.ai adapter.

    Attributes:
        name: ProviderName.FAL
        blob_store: Store used to publish input images
        timeout: Client timeout in seconds
    """

    name = ProviderName.FAL

    def __init__(self, api_key: str, blob_store: BlobStore, timeout: float = 120.0) -> None:
        super().__init__(api_key)
        self.blob_store = blob_store
        self.timeout = timeout
        self._client: Any = None
        self._client_lock = threading.Lock()

    @property
    def client(self) -> Any:
        """Get FAL async client (lazy, constructed once)."""
        if self._client is None:
            with self._client_lock:
                if self._client is None:
                    import fal_client

                    self._client = fal_client.AsyncClient(
                        key=self.api_key,
                        default_timeout=self.timeout,
                    )
        return self._client

    async def _upload_all(self, images: list[ImageInput], prefix: str) -> list[str]:
        """Upload images in parallel, preserving order."""
        return await upload_many(
            self.blob_store, [(image.base64, image.mime_type, prefix) for image in images]
        )

    async def _subscribe(self, endpoint: str, arguments: dict[str, Any]) -> str:
        """Run an endpoint to completion and return the image URL."""
        try:
            result = await self.client.subscribe(endpoint, arguments=arguments)
        except Exception as e:
            raise translate_provider_error(e, self.name.value) from e

        url = _first_image_url(result)
        if url is None:
            raise NoImageError(self.name.value, "No image URL in response")
        return url

    async def generate(self, request: GenerationRequest) -> ProviderResult:
        """Generate an image, using the edit endpoint when references exist.

        Args:
            request: The generation request.

        Returns:
            ProviderResult with the FAL CDN URL.

        Raises:
            ProviderError: If the call fails or no image comes back.
            StorageError: If a reference upload fails.
        """
        tier = request.model_tier
        references = request.reference_images(tier)
        arguments: dict[str, Any] = {
            "prompt": request.prompt,
            "aspect_ratio": map_aspect_ratio(request.aspect_ratio),
            "output_format": OUTPUT_FORMAT,
        }
        if tier == ModelTier.PRO and request.image_size in IMAGE_SIZES:
            arguments["resolution"] = request.image_size

        if references:
            logger.info(f"FAL: uploading {len(references)} reference image(s)")
            arguments["image_urls"] = await self._upload_all(references, "fal-ref")
            endpoint = FAL_ENDPOINTS[tier]["edit"]
        else:
            endpoint = FAL_ENDPOINTS[tier]["generate"]

        logger.info(f"FAL: calling {endpoint}")
        url = await self._subscribe(endpoint, arguments)
        return ProviderResult(image_url=url, used_model=endpoint)

    async def edit(self, request: EditRequest) -> ProviderResult:
        """Edit an image through the tier's edit endpoint.

        Args:
            request: The edit request.

        Returns:
            ProviderResult with the FAL CDN URL.

        Raises:
            ProviderError: If the call fails or no image comes back.
            StorageError: If an upload fails.
        """
        tier = request.model_tier
        uploads = [(request.image_base64, request.mime_type, "fal-edit")]
        if request.reference_image is not None:
            reference = request.reference_image
            uploads.append((reference.base64, reference.mime_type, "fal-edit-ref"))
        image_urls = await upload_many(self.blob_store, uploads)

        arguments: dict[str, Any] = {
            "prompt": request.prompt,
            "image_urls": image_urls,
            "output_format": OUTPUT_FORMAT,
        }
        if tier == ModelTier.PRO:
            arguments["resolution"] = "1K"

        endpoint = FAL_ENDPOINTS[tier]["edit"]
        logger.info(f"FAL: calling {endpoint} with {len(image_urls)} image(s)")
        url = await self._subscribe(endpoint, arguments)
        return ProviderResult(image_url=url, used_model=endpoint)
