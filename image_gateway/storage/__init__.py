"""Object storage for reference and generated images.

Exports:
    BlobStore, LocalBlobStore, VercelBlobStore, create_blob_store, upload_base64,
    upload_many
"""

from __future__ import annotations

import asyncio
import base64
import binascii
from collections.abc import Sequence

from image_gateway.config import Settings
from image_gateway.core.errors import StorageError
from image_gateway.storage.backends import BlobStore, LocalBlobStore, VercelBlobStore

__all__ = [
    "BlobStore",
    "LocalBlobStore",
    "VercelBlobStore",
    "create_blob_store",
    "upload_base64",
    "upload_many",
]


def create_blob_store(settings: Settings) -> BlobStore:
    """Vercel Blob when a token is configured, local filesystem otherwise."""
    if settings.BLOB_READ_WRITE_TOKEN:
        return VercelBlobStore(token=settings.BLOB_READ_WRITE_TOKEN)
    return LocalBlobStore(
        root=settings.BLOB_LOCAL_ROOT,
        public_base_url=settings.BLOB_PUBLIC_BASE_URL,
    )


async def upload_base64(store: BlobStore, data_b64: str, mime_type: str, prefix: str) -> str:
    """Decode a base64 payload and upload it.

    Raises:
        StorageError: If the payload is not valid base64 or the upload fails.
    """
    try:
        data = base64.b64decode(data_b64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise StorageError(f"Invalid base64 image payload: {e}") from e
    return await store.upload(data, mime_type, prefix)


async def upload_many(store: BlobStore, uploads: Sequence[tuple[str, str, str]]) -> list[str]:
    """Upload several base64 payloads in parallel, preserving order.

    Args:
        store: Target blob store.
        uploads: ``(base64, mime_type, prefix)`` triples.

    Returns:
        Public URLs in the same order as ``uploads``.

    Raises:
        StorageError: If any upload fails. The remaining uploads are
            cancelled and finished before the error propagates.
    """
    tasks = [
        asyncio.ensure_future(upload_base64(store, data_b64, mime_type, prefix))
        for data_b64, mime_type, prefix in uploads
    ]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
