"""Blob store backends."""

from image_gateway.storage.backends.base import BlobStore
from image_gateway.storage.backends.local import LocalBlobStore
from image_gateway.storage.backends.vercel import VercelBlobStore

__all__ = ["BlobStore", "LocalBlobStore", "VercelBlobStore"]
