"""Vercel Blob store over its HTTP API."""

from __future__ import annotations

import logging

import httpx

from image_gateway.core.errors import StorageError
from image_gateway.storage.backends.base import BlobStore
from image_gateway.storage.naming import generate_blob_name

logger = logging.getLogger(__name__)

VERCEL_BLOB_API_URL = "https://blob.vercel-storage.com"
VERCEL_BLOB_API_VERSION = "7"


class VercelBlobStore(BlobStore):
    """Public blob uploads to Vercel Blob.

    Attributes:
        token: Read/write token (``BLOB_READ_WRITE_TOKEN``)
        base_url: API base URL
    """

    def __init__(
        self,
        token: str,
        base_url: str = VERCEL_BLOB_API_URL,
        timeout: float = 60.0,
    ) -> None:
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get httpx async client (lazy initialization)."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={
                    "Authorization": f"Bearer {self.token}",
                    "x-api-version": VERCEL_BLOB_API_VERSION,
                },
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def upload(self, data: bytes, mime_type: str, prefix: str) -> str:
        """PUT the payload with public access and return the blob URL."""
        pathname = generate_blob_name(prefix, mime_type)
        try:
            response = await self.client.put(
                f"/{pathname}",
                content=data,
                headers={
                    "x-content-type": mime_type,
                    "x-add-random-suffix": "0",
                },
            )
        except httpx.HTTPError as e:
            raise StorageError(f"Blob upload failed: {e}") from e

        if response.status_code >= 400:
            raise StorageError(
                f"Blob upload failed with status {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        url = response.json().get("url")
        if not url:
            raise StorageError("Blob upload response has no url")
        logger.debug(f"Uploaded {len(data)} bytes to {url}")
        return url
