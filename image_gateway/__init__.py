"""Image Gateway: multi-provider image generation with fallback."""

__version__ = "0.4.0"
