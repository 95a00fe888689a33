"""Abstract base class for blob stores."""

from __future__ import annotations

from abc import ABC, abstractmethod


class BlobStore(ABC):
    """Object storage that accepts bytes and returns a public URL.

    Providers that need HTTP-reachable reference images (FAL, Replicate)
    upload through a BlobStore before calling the provider.
    """

    @abstractmethod
    async def upload(self, data: bytes, mime_type: str, prefix: str) -> str:
        """Store binary data and return its public URL.

        Args:
            data: Binary payload.
            mime_type: Content type of the payload.
            prefix: Filename prefix, e.g. ``fal-ref``.

        Returns:
            Stable, publicly fetchable URL.

        Raises:
            StorageError: If the upload fails.
        """

    async def close(self) -> None:
        """Release resources. No-op by default."""
