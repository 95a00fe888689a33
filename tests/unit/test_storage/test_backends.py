"""Tests for image_gateway.storage backends and helpers.

Covers:
    - LocalBlobStore: writes under root, returns public URL
    - VercelBlobStore: request shape, error statuses (httpx.MockTransport)
    - upload_base64: decoding and invalid payloads
    - upload_many: ordering, cancellation of sibling uploads on failure
    - create_blob_store: backend selection from settings
"""

import base64
import json

import httpx
import pytest

from image_gateway.core.errors import StorageError
from image_gateway.storage import (
    LocalBlobStore,
    VercelBlobStore,
    create_blob_store,
    upload_base64,
    upload_many,
)
from tests.utils.fakes import PNG_BASE64, FakeBlobStore, StallingBlobStore

PNG_BYTES = base64.b64decode(PNG_BASE64)


def vercel_store(handler) -> VercelBlobStore:
    store = VercelBlobStore(token="vercel_blob_rw_test")
    store._client = httpx.AsyncClient(
        base_url=store.base_url,
        headers={"Authorization": f"Bearer {store.token}"},
        transport=httpx.MockTransport(handler),
    )
    return store


class TestLocalBlobStore:
    """Tests for LocalBlobStore."""

    @pytest.mark.asyncio
    async def test_upload_writes_file(self, tmp_path):
        store = LocalBlobStore(root=str(tmp_path / "blobs"), public_base_url="http://localhost:8000/blobs/")

        url = await store.upload(PNG_BYTES, "image/png", "fal-ref")

        assert url.startswith("http://localhost:8000/blobs/fal-ref-")
        assert url.endswith(".png")
        filename = url.rsplit("/", 1)[-1]
        assert (tmp_path / "blobs" / filename).read_bytes() == PNG_BYTES

    @pytest.mark.asyncio
    async def test_write_failure(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        store = LocalBlobStore(root=str(blocker), public_base_url="http://localhost/blobs")

        with pytest.raises(StorageError, match="Local blob write failed"):
            await store.upload(PNG_BYTES, "image/png", "fal-ref")


class TestVercelBlobStore:
    """Tests for VercelBlobStore."""

    @pytest.mark.asyncio
    async def test_upload(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            url = f"https://store.public.blob.vercel-storage.com{request.url.path}"
            return httpx.Response(200, json={"url": url})

        store = vercel_store(handler)
        url = await store.upload(PNG_BYTES, "image/png", "replicate-ref")
        await store.close()

        request = seen[0]
        assert request.method == "PUT"
        assert request.url.path.startswith("/replicate-ref-")
        assert request.headers["x-content-type"] == "image/png"
        assert request.headers["authorization"] == "Bearer vercel_blob_rw_test"
        assert request.content == PNG_BYTES
        assert url.startswith("https://store.public.blob.vercel-storage.com/replicate-ref-")

    @pytest.mark.asyncio
    async def test_error_status(self):
        store = vercel_store(lambda request: httpx.Response(403, text="Forbidden"))

        with pytest.raises(StorageError) as exc_info:
            await store.upload(PNG_BYTES, "image/png", "fal-ref")

        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_missing_url(self):
        store = vercel_store(lambda request: httpx.Response(200, content=json.dumps({})))
        with pytest.raises(StorageError, match="no url"):
            await store.upload(PNG_BYTES, "image/png", "fal-ref")

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        store = vercel_store(handler)
        with pytest.raises(StorageError, match="Blob upload failed"):
            await store.upload(PNG_BYTES, "image/png", "fal-ref")

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        store = VercelBlobStore(token="t")
        await store.close()
        assert store._client is None


class TestUploadBase64:
    """Tests for upload_base64()."""

    @pytest.mark.asyncio
    async def test_decodes_before_upload(self):
        store = FakeBlobStore()

        url = await upload_base64(store, PNG_BASE64, "image/png", "fal-edit")

        assert url == "https://blob.test/fal-edit-1.png"
        assert store.uploads == [(PNG_BYTES, "image/png", "fal-edit")]

    @pytest.mark.asyncio
    async def test_invalid_payload(self):
        store = FakeBlobStore()
        with pytest.raises(StorageError, match="Invalid base64"):
            await upload_base64(store, "%%%not-base64%%%", "image/png", "fal-edit")
        assert store.uploads == []


class TestUploadMany:
    """Tests for upload_many()."""

    @pytest.mark.asyncio
    async def test_preserves_order(self):
        store = FakeBlobStore()

        urls = await upload_many(
            store, [(PNG_BASE64, "image/png", "fal-edit"), (PNG_BASE64, "image/jpeg", "fal-edit-ref")]
        )

        assert urls == ["https://blob.test/fal-edit-1.png", "https://blob.test/fal-edit-ref-2.png"]
        assert [u[1] for u in store.uploads] == ["image/png", "image/jpeg"]

    @pytest.mark.asyncio
    async def test_empty(self):
        assert await upload_many(FakeBlobStore(), []) == []

    @pytest.mark.asyncio
    async def test_failure_cancels_pending_uploads(self):
        """Test sibling uploads are stopped before the error reaches the caller."""
        store = StallingBlobStore(failing_prefixes=("broken",))

        with pytest.raises(StorageError, match="broken"):
            await upload_many(
                store,
                [
                    (PNG_BASE64, "image/png", "slow-1"),
                    (PNG_BASE64, "image/png", "broken"),
                    (PNG_BASE64, "image/png", "slow-2"),
                ],
            )

        assert sorted(store.cancelled) == ["slow-1", "slow-2"]
        assert store.uploads == []

    @pytest.mark.asyncio
    async def test_invalid_payload_cancels_pending_uploads(self):
        store = StallingBlobStore()

        with pytest.raises(StorageError, match="Invalid base64"):
            await upload_many(
                store, [(PNG_BASE64, "image/png", "slow-1"), ("%%%", "image/png", "bad")]
            )

        assert store.cancelled == ["slow-1"]


class TestCreateBlobStore:
    """Tests for create_blob_store()."""

    def test_local_without_token(self, make_settings, tmp_path):
        settings = make_settings(BLOB_LOCAL_ROOT=str(tmp_path))
        store = create_blob_store(settings)
        assert isinstance(store, LocalBlobStore)
        assert store.root == tmp_path

    def test_vercel_with_token(self, make_settings):
        store = create_blob_store(make_settings(BLOB_READ_WRITE_TOKEN="vercel_blob_rw_x"))
        assert isinstance(store, VercelBlobStore)
        assert store.token == "vercel_blob_rw_x"
