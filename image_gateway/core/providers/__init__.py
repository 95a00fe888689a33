"""Image provider abstraction and implementations.

Re-exports the request/result types and the three adapters.
"""

from image_gateway.core.providers.base import (
    EditRequest,
    GenerationRequest,
    ImageInput,
    ImageProvider,
    ModelTier,
    ProviderResult,
    is_valid_image_url,
)
from image_gateway.core.providers.fal import FalProvider
from image_gateway.core.providers.gemini import GeminiProvider
from image_gateway.core.providers.replicate import ReplicateProvider

__all__ = [
    "EditRequest",
    "GenerationRequest",
    "ImageInput",
    "ImageProvider",
    "ModelTier",
    "ProviderResult",
    "is_valid_image_url",
    # Implementations
    "FalProvider",
    "GeminiProvider",
    "ReplicateProvider",
]
