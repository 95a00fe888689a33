"""In-memory fakes shared by the unit tests."""

import asyncio

from image_gateway.config import ProviderName
from image_gateway.core.errors import StorageError
from image_gateway.core.providers.base import (
    EditRequest,
    GenerationRequest,
    ImageProvider,
    ProviderResult,
)
from image_gateway.storage import BlobStore

# 1x1 PNG
PNG_BASE64 = (
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="
)


class FakeProvider(ImageProvider):
    """Adapter that returns a fixed result or raises a fixed error."""

    def __init__(
        self,
        name: ProviderName,
        result: ProviderResult | None = None,
        error: Exception | None = None,
    ) -> None:
        super().__init__(api_key="fake-key")
        self.name = name
        self.result = result or ProviderResult(
            image_url=f"https://cdn.{name.value}.test/image.png",
            used_model=f"{name.value}-model",
        )
        self.error = error
        self.generate_calls: list[GenerationRequest] = []
        self.edit_calls: list[EditRequest] = []
        self.closed = False

    @property
    def call_count(self) -> int:
        return len(self.generate_calls) + len(self.edit_calls)

    async def generate(self, request: GenerationRequest) -> ProviderResult:
        self.generate_calls.append(request)
        if self.error is not None:
            raise self.error
        return self.result

    async def edit(self, request: EditRequest) -> ProviderResult:
        self.edit_calls.append(request)
        if self.error is not None:
            raise self.error
        return self.result

    async def close(self) -> None:
        self.closed = True


class FakeBlobStore(BlobStore):
    """Blob store that keeps uploads in memory."""

    def __init__(self) -> None:
        self.uploads: list[tuple[bytes, str, str]] = []

    async def upload(self, data: bytes, mime_type: str, prefix: str) -> str:
        self.uploads.append((data, mime_type, prefix))
        return f"https://blob.test/{prefix}-{len(self.uploads)}.png"


class StallingBlobStore(FakeBlobStore):
    """Blob store whose uploads hang, except for prefixes listed as failing."""

    def __init__(self, failing_prefixes: tuple[str, ...] = ()) -> None:
        super().__init__()
        self.failing_prefixes = failing_prefixes
        self.cancelled: list[str] = []

    async def upload(self, data: bytes, mime_type: str, prefix: str) -> str:
        if prefix in self.failing_prefixes:
            raise StorageError(f"Blob upload failed for {prefix}", status_code=500)
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            self.cancelled.append(prefix)
            raise
        return await super().upload(data, mime_type, prefix)
