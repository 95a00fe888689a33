"""Blob filename generation.

Format: {prefix}-{epoch_ms}-{rand6}.{ext}

Examples:
    >>> from image_gateway.storage.naming import generate_blob_name
    >>> generate_blob_name("fal-ref", "image/png")
    'fal-ref-1760870400000-a3f2b1.png'
"""

from __future__ import annotations

import time
import uuid


def extension_for_mime(mime_type: str) -> str:
    """File extension for an image MIME type (png, webp, otherwise jpg)."""
    mime = (mime_type or "").lower()
    if "png" in mime:
        return "png"
    if "webp" in mime:
        return "webp"
    return "jpg"


def generate_blob_name(
    prefix: str,
    mime_type: str,
    timestamp_ms: int | None = None,
    uuid_str: str | None = None,
) -> str:
    """Generate a unique blob filename.

    Args:
        prefix: Filename prefix, e.g. ``replicate-ref``.
        mime_type: MIME type deciding the extension.
        timestamp_ms: Override epoch milliseconds (defaults to now).
        uuid_str: Override random suffix (defaults to random).

    Returns:
        Filename string.
    """
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    if uuid_str is None:
        uuid_str = uuid.uuid4().hex[:6]
    else:
        uuid_str = uuid_str[:6]
    return f"{prefix}-{timestamp_ms}-{uuid_str}.{extension_for_mime(mime_type)}"
