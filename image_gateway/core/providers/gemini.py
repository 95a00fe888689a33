"""Google Gen AI SDK image provider.

Generates and edits images with Gemini native image models. Reference
images are sent inline, the result comes back as inline bytes and is
returned as a ``data:`` URI.

The SDK call runs through the retry engine with a single attempt by
default: the fallback chain is the retry mechanism across providers.

Examples:
    >>> from image_gateway.core.providers.gemini import GeminiProvider
    >>> provider = GeminiProvider(api_key="AIza...")
    >>> result = await provider.generate(GenerationRequest(prompt="A sunset flyer"))
    >>> result.image_url[:22]
    'data:image/png;base64,'

Tests:
    - tests/unit/test_gemini_provider.py
"""

import base64
import logging
import threading
from typing import Any

from image_gateway.config import ProviderName
from image_gateway.core.catalog import GEMINI_MODELS, ModelTier, map_aspect_ratio
from image_gateway.core.errors import (
    NoImageError,
    SafetyBlockedError,
    translate_provider_error,
)
from image_gateway.core.providers.base import (
    EditRequest,
    GenerationRequest,
    ImageInput,
    ImageProvider,
    ProviderResult,
)
from image_gateway.core.retry import with_retry

logger = logging.getLogger(__name__)

# Finish / block reasons that mean the content was refused on policy grounds
SAFETY_REASONS = frozenset(
    {
        "SAFETY",
        "PROHIBITED_CONTENT",
        "BLOCKLIST",
        "SPII",
        "IMAGE_SAFETY",
        "IMAGE_PROHIBITED_CONTENT",
    }
)

GENERATION_TEMPERATURE = 0.7


def _reason_name(reason: Any) -> str | None:
    """Enum or string finish reason as an upper-case name."""
    if reason is None:
        return None
    name = getattr(reason, "name", None) or str(reason)
    return name.rsplit(".", 1)[-1].upper()


class GeminiProvider(ImageProvider):
    """Gemini image adapter (Nano Banana / Nano Banana Pro).

    Attributes:
        name: ProviderName.GEMINI
        api_key: Google AI API key
        max_attempts: Local attempts per call before the error escalates
        timeout: HTTP timeout in seconds
    """

    name = ProviderName.GEMINI

    def __init__(
        self,
        api_key: str,
        max_attempts: int = 1,
        timeout: float = 120.0,
    ) -> None:
        super().__init__(api_key)
        self.max_attempts = max_attempts
        self.timeout = timeout
        self._client: Any = None
        self._client_lock = threading.Lock()

    @property
    def client(self) -> Any:
        """Get Gen AI client (lazy, constructed once)."""
        if self._client is None:
            with self._client_lock:
                if self._client is None:
                    from google import genai
                    from google.genai import types

                    self._client = genai.Client(
                        api_key=self.api_key,
                        http_options=types.HttpOptions(timeout=int(self.timeout * 1000)),
                    )
        return self._client

    @staticmethod
    def _inline_part(image: ImageInput) -> Any:
        from google.genai import types

        return types.Part.from_bytes(
            data=base64.b64decode(image.base64),
            mime_type=image.mime_type,
        )

    async def _call(self, model: str, parts: list[Any], image_config: dict[str, Any]) -> Any:
        """Invoke generate_content through the retry engine."""
        from google.genai import types

        config = types.GenerateContentConfig(
            temperature=GENERATION_TEMPERATURE,
            response_modalities=["IMAGE"],
            image_config=types.ImageConfig(**image_config),
        )

        async def operation() -> Any:
            try:
                return await self.client.aio.models.generate_content(
                    model=model,
                    contents=[types.Content(role="user", parts=parts)],
                    config=config,
                )
            except Exception as e:
                raise translate_provider_error(e, self.name.value) from e

        return await with_retry(operation, max_attempts=self.max_attempts)

    def _extract_image(self, response: Any) -> str:
        """Return the first inline image as a data URI.

        Raises:
            SafetyBlockedError: If the prompt or output was blocked.
            NoImageError: If the response has no image data.
        """
        candidates = getattr(response, "candidates", None) or []
        candidate = candidates[0] if candidates else None
        content = getattr(candidate, "content", None)
        parts = getattr(content, "parts", None) or []

        for part in parts:
            inline = getattr(part, "inline_data", None)
            if inline is not None and inline.data:
                data = inline.data
                if isinstance(data, bytes):
                    data = base64.b64encode(data).decode("utf-8")
                mime_type = inline.mime_type or "image/png"
                return f"data:{mime_type};base64,{data}"

        finish_reason = _reason_name(getattr(candidate, "finish_reason", None))
        feedback = getattr(response, "prompt_feedback", None)
        block_reason = _reason_name(getattr(feedback, "block_reason", None))

        if finish_reason in SAFETY_REASONS or block_reason in SAFETY_REASONS:
            logger.warning(
                f"Gemini refused content (finish_reason={finish_reason}, "
                f"block_reason={block_reason})"
            )
            raise SafetyBlockedError(self.name.value)

        if not parts:
            raise NoImageError(self.name.value, "Invalid response structure, no content parts")
        raise NoImageError(self.name.value)

    async def generate(self, request: GenerationRequest) -> ProviderResult:
        """Generate an image from a prompt and optional inline references.

        Args:
            request: The generation request.

        Returns:
            ProviderResult with a data: URI.

        Raises:
            ProviderError: If the call fails or no image comes back.
        """
        tier = request.model_tier
        model = GEMINI_MODELS[tier]
        references = request.reference_images(tier)

        from google.genai import types

        parts = [types.Part.from_text(text=request.prompt)]
        parts.extend(self._inline_part(image) for image in references)

        image_config: dict[str, Any] = {"aspect_ratio": map_aspect_ratio(request.aspect_ratio)}
        # The standard model renders at a fixed resolution
        if tier == ModelTier.PRO:
            image_config["image_size"] = request.image_size

        logger.debug(
            f"Gemini generate: model={model}, aspect_ratio={image_config['aspect_ratio']}, "
            f"parts={len(parts)}"
        )
        response = await self._call(model, parts, image_config)
        return ProviderResult(image_url=self._extract_image(response), used_model=model)

    async def edit(self, request: EditRequest) -> ProviderResult:
        """Edit an image following an instruction.

        Args:
            request: The edit request.

        Returns:
            ProviderResult with a data: URI.

        Raises:
            ProviderError: If the call fails or no image comes back.
        """
        tier = request.model_tier
        model = GEMINI_MODELS[tier]

        from google.genai import types

        parts = [
            types.Part.from_text(text=request.prompt),
            self._inline_part(request.source_image),
        ]
        if request.reference_image is not None:
            parts.append(self._inline_part(request.reference_image))

        image_config: dict[str, Any] = {"aspect_ratio": "1:1"}
        if tier == ModelTier.PRO:
            image_config["image_size"] = "1K"

        logger.debug(f"Gemini edit: model={model}, parts={len(parts)}")
        response = await self._call(model, parts, image_config)
        return ProviderResult(image_url=self._extract_image(response), used_model=model)
