"""Image model catalog.

Single source of truth for model identifiers per provider and tier,
aspect-ratio normalisation and the mapping from caller-facing model names
to a model tier.

Examples:
    >>> from image_gateway.core.catalog import resolve_model_tier, map_aspect_ratio
    >>> resolve_model_tier("gemini-2.5-flash-image")
    <ModelTier.STANDARD: 'standard'>
    >>> map_aspect_ratio("1.91:1")
    '16:9'

Tests:
    - tests/unit/test_catalog.py
"""

from enum import Enum


class ModelTier(str, Enum):
    """Quality/cost variant of the underlying generation model.

    - STANDARD: lightweight, cheaper, fewer reference images
    - PRO: premium quality, up to 14 reference images
    """

    STANDARD = "standard"
    PRO = "pro"


# Gemini native image models
GEMINI_IMAGE_MODEL_PRO = "gemini-3-pro-image-preview"
GEMINI_IMAGE_MODEL_STANDARD = "gemini-2.5-flash-image"

# FAL.ai endpoints (same Gemini image models hosted on FAL)
FAL_IMAGE_MODEL_PRO = "fal-ai/gemini-3-pro-image-preview"
FAL_EDIT_MODEL_PRO = "fal-ai/gemini-3-pro-image-preview/edit"
FAL_IMAGE_MODEL_STANDARD = "fal-ai/gemini-25-flash-image"
FAL_EDIT_MODEL_STANDARD = "fal-ai/gemini-25-flash-image/edit"

# Replicate models
REPLICATE_MODEL_PRO = "google/nano-banana-pro"
REPLICATE_MODEL_STANDARD = "google/nano-banana"

GEMINI_MODELS: dict[ModelTier, str] = {
    ModelTier.PRO: GEMINI_IMAGE_MODEL_PRO,
    ModelTier.STANDARD: GEMINI_IMAGE_MODEL_STANDARD,
}

FAL_ENDPOINTS: dict[ModelTier, dict[str, str]] = {
    ModelTier.PRO: {"generate": FAL_IMAGE_MODEL_PRO, "edit": FAL_EDIT_MODEL_PRO},
    ModelTier.STANDARD: {"generate": FAL_IMAGE_MODEL_STANDARD, "edit": FAL_EDIT_MODEL_STANDARD},
}

REPLICATE_MODELS: dict[ModelTier, str] = {
    ModelTier.PRO: REPLICATE_MODEL_PRO,
    ModelTier.STANDARD: REPLICATE_MODEL_STANDARD,
}

# Reference images accepted per request, by tier. Extra images are dropped.
MAX_REFERENCE_IMAGES: dict[ModelTier, int] = {
    ModelTier.STANDARD: 3,
    ModelTier.PRO: 14,
}

IMAGE_SIZES = ("1K", "2K", "4K")

ASPECT_RATIOS: dict[str, str] = {
    "1:1": "1:1",
    "9:16": "9:16",
    "16:9": "16:9",
    "1.91:1": "16:9",
    "4:5": "4:5",
    "3:4": "3:4",
    "4:3": "4:3",
    "2:3": "2:3",
    "3:2": "3:2",
}

# Caller-facing names that select the standard tier
STANDARD_MODEL_ALIASES = frozenset(
    {
        "gemini-3.1-flash-image-preview",
        "gemini-2.5-flash-image",
        "gemini-25-flash-image",
        "nano-banana-2",
        "google/nano-banana-2",
        "nano-banana",
        "google/nano-banana",
    }
)

# Caller-facing names that pin a specific Replicate model
REPLICATE_MODEL_ALIASES: dict[str, str] = {
    "nano-banana": REPLICATE_MODEL_STANDARD,
    "google/nano-banana": REPLICATE_MODEL_STANDARD,
    "nano-banana-pro": REPLICATE_MODEL_PRO,
    "google/nano-banana-pro": REPLICATE_MODEL_PRO,
}


def map_aspect_ratio(ratio: str | None) -> str:
    """Normalise an aspect ratio to one the providers accept ("1:1" if unknown)."""
    if not ratio:
        return "1:1"
    return ASPECT_RATIOS.get(ratio, "1:1")


def resolve_model_tier(model: str | None) -> ModelTier:
    """Map a caller-facing model name to a tier (PRO unless a standard alias)."""
    normalized = (model or GEMINI_IMAGE_MODEL_PRO).strip().lower()
    if normalized in STANDARD_MODEL_ALIASES:
        return ModelTier.STANDARD
    return ModelTier.PRO


def resolve_replicate_model(model: str | None) -> str | None:
    """Explicit Replicate model pinned by a caller-facing name, if any."""
    if not model:
        return None
    return REPLICATE_MODEL_ALIASES.get(model.strip().lower())


def max_reference_images(tier: ModelTier) -> int:
    """Reference-image cap for a tier."""
    return MAX_REFERENCE_IMAGES[tier]
