"""Result persistence.

Provider results are either ``data:`` URIs (Gemini) or short-lived CDN
URLs (FAL, Replicate). Before handing a result to a caller it is copied
into the blob store so the URL stays valid.

Examples:
    >>> data, content_type = await load_image_bytes("data:image/png;base64,iVBOR...")
    >>> content_type
    'image/png'
    >>> stored = await persist_result_image("https://cdn.fal.ai/x.png", store)

Tests:
    - tests/unit/test_delivery.py
"""

from __future__ import annotations

import base64
import binascii
import logging

import httpx

from image_gateway.core.errors import StorageError
from image_gateway.storage import BlobStore

logger = logging.getLogger(__name__)

FETCH_TIMEOUT_SECONDS = 60.0


def _require_image(content_type: str, source: str) -> str:
    content_type = content_type.split(";", 1)[0].strip().lower()
    if not content_type.startswith("image/"):
        raise StorageError(f"Expected an image from {source}, got '{content_type or 'unknown'}'")
    return content_type


def decode_data_url(image_url: str) -> tuple[bytes, str]:
    """Split a base64 ``data:`` URI into bytes and content type.

    Raises:
        StorageError: If the URI is malformed or not an image.
    """
    header, sep, payload = image_url.partition(",")
    if not sep or not header.startswith("data:") or not header.endswith(";base64"):
        raise StorageError("Malformed data URL")
    content_type = _require_image(header[len("data:") : -len(";base64")], "data URL")
    try:
        return base64.b64decode(payload, validate=True), content_type
    except (binascii.Error, ValueError) as e:
        raise StorageError(f"Invalid base64 in data URL: {e}") from e


async def load_image_bytes(
    image_url: str,
    client: httpx.AsyncClient | None = None,
) -> tuple[bytes, str]:
    """Load image bytes from a ``data:`` URI or an HTTP(S) URL.

    Args:
        image_url: Provider result location.
        client: Optional shared HTTP client.

    Returns:
        Tuple of (bytes, content type).

    Raises:
        StorageError: If the image cannot be fetched or is not an image.
    """
    if image_url.startswith("data:"):
        return decode_data_url(image_url)

    if not image_url.startswith(("http://", "https://")):
        raise StorageError("Unsupported image URL scheme")

    try:
        if client is None:
            async with httpx.AsyncClient(
                timeout=FETCH_TIMEOUT_SECONDS, follow_redirects=True
            ) as own_client:
                response = await own_client.get(image_url)
        else:
            response = await client.get(image_url)
    except httpx.HTTPError as e:
        raise StorageError(f"Image fetch failed: {e}") from e

    if response.status_code >= 400:
        raise StorageError(
            f"Image fetch failed with HTTP {response.status_code}",
            status_code=response.status_code,
        )

    content_type = _require_image(response.headers.get("content-type", ""), "remote URL")
    return response.content, content_type


async def persist_result_image(
    image_url: str,
    store: BlobStore,
    prefix: str = "generated",
    client: httpx.AsyncClient | None = None,
) -> str:
    """Copy a provider result into the blob store.

    Returns:
        The stored image URL.

    Raises:
        StorageError: If loading or uploading fails.
    """
    data, content_type = await load_image_bytes(image_url, client=client)
    stored_url = await store.upload(data, content_type, prefix)
    logger.debug(f"Persisted result image ({len(data)} bytes) to {stored_url}")
    return stored_url
