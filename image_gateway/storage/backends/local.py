"""Local filesystem blob store using pathlib."""

from __future__ import annotations

import logging
from pathlib import Path

from image_gateway.core.errors import StorageError
from image_gateway.storage.backends.base import BlobStore
from image_gateway.storage.naming import generate_blob_name

logger = logging.getLogger(__name__)


class LocalBlobStore(BlobStore):
    """Pathlib-based blob store for development.

    Files land under ``root`` and are addressed as
    ``{public_base_url}/{filename}``; something else (the FastAPI static
    mount in development) must serve ``root`` at that URL.
    """

    def __init__(self, root: str, public_base_url: str) -> None:
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")

    async def upload(self, data: bytes, mime_type: str, prefix: str) -> str:
        """Write the payload to ``root`` and return its URL."""
        filename = generate_blob_name(prefix, mime_type)
        path = self.root / filename
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise StorageError(f"Local blob write failed: {e}") from e
        logger.debug(f"Stored {len(data)} bytes at {path}")
        return f"{self.public_base_url}/{filename}"
