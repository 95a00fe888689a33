"""Base image provider abstraction layer.

This module defines the uniform request/result types and the abstract base
class every provider adapter implements. Adapters translate these shapes to
their provider's native API and normalise the result location (``data:`` URI
or ``https://`` URL) plus the identifier of the model actually used.

Examples:
    >>> from image_gateway.core.providers.base import GenerationRequest, ImageInput
    >>> request = GenerationRequest(
    ...     prompt="A poker flyer with neon lights",
    ...     aspect_ratio="9:16",
    ...     image_size="2K",
    ...     product_images=[ImageInput(base64="iVBOR...", mime_type="image/png")],
    ... )

Tests:
    - tests/unit/test_providers.py::TestRequests
    - tests/unit/test_providers.py::TestProviderResult
"""

from abc import ABC, abstractmethod
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from image_gateway.config import ProviderName
from image_gateway.core.catalog import ModelTier, max_reference_images

__all__ = [
    "EditRequest",
    "GenerationRequest",
    "ImageInput",
    "ImageProvider",
    "ModelTier",
    "ProviderResult",
    "is_valid_image_url",
]


class ImageInput(BaseModel):
    """A raw, un-uploaded image payload owned by the caller.

    Attributes:
        base64: Base64 image data without a ``data:`` prefix
        mime_type: MIME type, e.g. ``image/png``
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    base64: str = Field(min_length=1, description="Base64 data (no data: prefix)")
    mime_type: str = Field(default="image/png", description="Image MIME type")


class GenerationRequest(BaseModel):
    """Text-to-image request, optionally guided by reference images.

    Immutable once built. Unknown fields are rejected rather than ignored.
    ``product_images`` beyond the tier's reference cap are dropped silently
    by the adapters.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    prompt: str = Field(min_length=1, description="Full generation prompt")
    aspect_ratio: str = Field(default="1:1", description="Aspect ratio, e.g. 9:16")
    image_size: Literal["1K", "2K", "4K"] = Field(default="1K")
    product_images: tuple[ImageInput, ...] = Field(default=())
    style_reference_image: ImageInput | None = None
    person_reference_image: ImageInput | None = None
    model_tier: ModelTier = Field(default=ModelTier.PRO)
    replicate_model: str | None = Field(
        default=None,
        description="Explicit Replicate model overriding the tier default",
    )

    def reference_images(self, tier: ModelTier | None = None) -> list[ImageInput]:
        """Person, style and product references in that order, capped for the tier."""
        limit = max_reference_images(tier or self.model_tier)
        images: list[ImageInput] = []
        if self.person_reference_image is not None:
            images.append(self.person_reference_image)
        if self.style_reference_image is not None:
            images.append(self.style_reference_image)
        images.extend(self.product_images)
        return images[:limit]


class EditRequest(BaseModel):
    """Instruction-based edit of an existing image."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    prompt: str = Field(min_length=1, description="Edit instruction")
    image_base64: str = Field(min_length=1, description="Image to edit (no data: prefix)")
    mime_type: str = Field(default="image/png")
    reference_image: ImageInput | None = None
    model_tier: ModelTier = Field(default=ModelTier.PRO)

    @property
    def source_image(self) -> ImageInput:
        """The image being edited as an ImageInput."""
        return ImageInput(base64=self.image_base64, mime_type=self.mime_type)


def is_valid_image_url(url: object) -> bool:
    """True for a base64 ``data:`` URI or an ``http(s)://`` URL."""
    if not isinstance(url, str) or not url:
        return False
    if url.startswith("data:"):
        header, sep, payload = url.partition(",")
        return bool(sep and payload) and header.endswith(";base64")
    return url.startswith(("http://", "https://"))


class ProviderResult(BaseModel):
    """Normalised adapter output.

    Attributes:
        image_url: ``data:`` URI (Gemini) or ``https://`` URL (FAL, Replicate)
        used_model: Identifier of the underlying model actually used
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    image_url: str = Field(description="data: URI or http(s) URL")
    used_model: str = Field(min_length=1, description="Model actually used")

    @field_validator("image_url")
    @classmethod
    def validate_image_url(cls, v: str) -> str:
        """Reject empty or malformed image locations."""
        if not is_valid_image_url(v):
            raise ValueError("image_url must be a base64 data: URI or an http(s) URL")
        return v


class ImageProvider(ABC):
    """Abstract base class for image providers.

    All adapters expose the same contract: ``generate`` and ``edit`` return a
    ProviderResult or raise. They never return a placeholder.

    Attributes:
        name: The provider name
        api_key: Credential for the provider
    """

    name: ProviderName

    def __init__(self, api_key: str) -> None:
        """Initialize provider with API key.

        Args:
            api_key: API key for authentication.
        """
        self.api_key = api_key

    @abstractmethod
    async def generate(self, request: GenerationRequest) -> ProviderResult:
        """Generate an image.

        Raises:
            ProviderError: If the call fails or returns no usable image.
        """

    @abstractmethod
    async def edit(self, request: EditRequest) -> ProviderResult:
        """Edit an image.

        Raises:
            ProviderError: If the call fails or returns no usable image.
        """

    async def close(self) -> None:
        """Release SDK resources. No-op by default."""
