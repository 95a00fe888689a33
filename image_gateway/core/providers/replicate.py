"""Replicate image provider.

Runs Google's Nano Banana models on Replicate. Input images are uploaded
to the blob store first because Replicate only accepts URLs for
``image_input``. Replicate rate limits (429) are retried locally with a
linear backoff before the error escalates to the fallback chain.

Examples:
    >>> provider = ReplicateProvider(api_key="r8_...", blob_store=store)
    >>> result = await provider.generate(GenerationRequest(prompt="A flyer"))
    >>> result.used_model
    'google/nano-banana-pro'

Tests:
    - tests/unit/test_replicate_provider.py
"""

import logging
import threading
from typing import Any

from image_gateway.config import ProviderName
from image_gateway.core.catalog import (
    REPLICATE_MODELS,
    ModelTier,
    map_aspect_ratio,
)
from image_gateway.core.errors import (
    NoImageError,
    error_message,
    error_status,
    translate_provider_error,
)
from image_gateway.core.providers.base import (
    EditRequest,
    GenerationRequest,
    ImageProvider,
    ProviderResult,
)
from image_gateway.core.retry import with_retry
from image_gateway.storage import BlobStore, upload_many

logger = logging.getLogger(__name__)

OUTPUT_FORMAT = "png"
SAFETY_FILTER_LEVEL = "block_only_high"


def is_replicate_rate_limit(error: Any) -> bool:
    """Only HTTP 429 is retried locally; other failures escalate at once."""
    return error_status(error) == 429 or "429" in error_message(error)


def normalize_output(output: Any) -> str | None:
    """Turn a Replicate prediction output into a single URL string.

    Handles a plain string, a list of strings or file outputs, and
    file-like objects exposing ``url``.
    """
    if isinstance(output, (list, tuple)):
        output = output[0] if output else None
    if output is None:
        return None
    if isinstance(output, str):
        url = output
    else:
        url = getattr(output, "url", None)
        if callable(url):
            url = url()
        url = str(url if url is not None else output)
    return url if url.startswith("http") else None


class ReplicateProvider(ImageProvider):
    """Replicate adapter.

    Attributes:
        name: ProviderName.REPLICATE
        blob_store: Store used to publish input images
        rate_limit_attempts: Local attempts on 429
        rate_limit_backoff_ms: Backoff step on 429 (multiplied by attempt)
    """

    name = ProviderName.REPLICATE

    def __init__(
        self,
        api_key: str,
        blob_store: BlobStore,
        rate_limit_attempts: int = 3,
        rate_limit_backoff_ms: int = 10_000,
        timeout: float = 120.0,
    ) -> None:
        super().__init__(api_key)
        self.blob_store = blob_store
        self.rate_limit_attempts = rate_limit_attempts
        self.rate_limit_backoff_ms = rate_limit_backoff_ms
        self.timeout = timeout
        self._client: Any = None
        self._client_lock = threading.Lock()

    @property
    def client(self) -> Any:
        """Get Replicate client (lazy, constructed once)."""
        if self._client is None:
            with self._client_lock:
                if self._client is None:
                    import replicate

                    self._client = replicate.Client(api_token=self.api_key, timeout=self.timeout)
        return self._client

    async def _run(self, model: str, model_input: dict[str, Any]) -> str:
        """Run a model with the local 429 retry budget and return the URL."""

        async def operation() -> Any:
            try:
                return await self.client.async_run(
                    model,
                    input=model_input,
                    use_file_output=False,
                )
            except Exception as e:
                raise translate_provider_error(e, self.name.value) from e

        output = await with_retry(
            operation,
            max_attempts=self.rate_limit_attempts,
            base_delay_ms=self.rate_limit_backoff_ms,
            retryable=is_replicate_rate_limit,
            use_retry_hint=False,
        )

        url = normalize_output(output)
        if url is None:
            raise NoImageError(self.name.value, "No valid image URL in response")
        return url

    async def generate(self, request: GenerationRequest) -> ProviderResult:
        """Generate an image, optionally guided by reference images.

        Args:
            request: The generation request.

        Returns:
            ProviderResult with the Replicate CDN URL.

        Raises:
            ProviderError: If the call fails or no image comes back.
            StorageError: If a reference upload fails.
        """
        tier = request.model_tier
        model = request.replicate_model or REPLICATE_MODELS[tier]
        model_input: dict[str, Any] = {
            "prompt": request.prompt,
            "aspect_ratio": map_aspect_ratio(request.aspect_ratio),
            "resolution": request.image_size,
            "output_format": OUTPUT_FORMAT,
            "safety_filter_level": SAFETY_FILTER_LEVEL,
        }

        references = request.reference_images(tier)
        if references:
            model_input["image_input"] = await upload_many(
                self.blob_store,
                [(image.base64, image.mime_type, "replicate-ref") for image in references],
            )

        logger.debug(
            f"Replicate generate: model={model}, aspect_ratio={model_input['aspect_ratio']}, "
            f"references={len(references)}"
        )
        url = await self._run(model, model_input)
        return ProviderResult(image_url=url, used_model=model)

    async def edit(self, request: EditRequest) -> ProviderResult:
        """Edit an image. Always uses the pro model.

        Args:
            request: The edit request.

        Returns:
            ProviderResult with the Replicate CDN URL.

        Raises:
            ProviderError: If the call fails or no image comes back.
            StorageError: If an upload fails.
        """
        model = REPLICATE_MODELS[ModelTier.PRO]
        uploads = [(request.image_base64, request.mime_type, "replicate-edit")]
        if request.reference_image is not None:
            reference = request.reference_image
            uploads.append((reference.base64, reference.mime_type, "replicate-edit-ref"))
        image_urls = await upload_many(self.blob_store, uploads)

        model_input: dict[str, Any] = {
            "prompt": request.prompt,
            "image_input": image_urls,
            "aspect_ratio": "match_input_image",
            "resolution": "1K",
            "output_format": OUTPUT_FORMAT,
            "safety_filter_level": SAFETY_FILTER_LEVEL,
        }

        logger.debug(f"Replicate edit: model={model}, images={len(image_urls)}")
        url = await self._run(model, model_input)
        return ProviderResult(image_url=url, used_model=model)
