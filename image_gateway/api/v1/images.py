"""Image API endpoints.

Thin HTTP layer over the fallback orchestrator. Each request runs the
orchestrator, copies the result into the blob store, logs a usage record
and returns the stored URL. Raw provider errors never reach the client.

Endpoints:
    POST /api/v1/images/generate - Generate an image
    POST /api/v1/images/edit - Edit an image

Examples:
    >>> POST /api/v1/images/generate
    >>> {"prompt": "Poker tournament flyer", "aspect_ratio": "9:16", "image_size": "2K"}
    >>>
    >>> # Response
    >>> {"image_url": "https://...", "provider": "gemini", "model": "gemini-3-pro-image-preview",
    ...  "used_fallback": false}

Tests:
    - tests/unit/test_api_images.py
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from image_gateway.config import get_settings
from image_gateway.core.catalog import resolve_model_tier, resolve_replicate_model
from image_gateway.core.errors import (
    StorageError,
    is_quota_or_rate_limit,
    user_facing_message,
)
from image_gateway.core.orchestrator import (
    FallbackOrchestrator,
    ImageOperation,
    OrchestrationResult,
    ProviderRuntime,
    get_default_runtime,
)
from image_gateway.core.providers import EditRequest, GenerationRequest, ImageInput
from image_gateway.services.delivery import persist_result_image
from image_gateway.services.usage import (
    UsageLogger,
    UsageRecord,
    calculate_image_cost,
    get_usage_logger,
    record_usage,
)
from image_gateway.storage import BlobStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/images", tags=["images"])


# Request/Response Models


class GenerateImageBody(BaseModel):
    """Request to generate an image.

    Attributes:
        prompt: Full generation prompt
        aspect_ratio: Output aspect ratio
        image_size: Output resolution (pro models only)
        model: Caller-facing model name, selects the tier
    """

    prompt: str = Field(..., min_length=1, max_length=20_000)
    aspect_ratio: str = Field(default="1:1", examples=["1:1", "9:16", "16:9"])
    image_size: Literal["1K", "2K", "4K"] = "1K"
    product_images: list[ImageInput] = Field(default_factory=list)
    style_reference_image: ImageInput | None = None
    person_reference_image: ImageInput | None = None
    model: str | None = Field(
        default=None,
        examples=["gemini-3-pro-image-preview", "gemini-2.5-flash-image"],
    )

    def to_request(self) -> GenerationRequest:
        return GenerationRequest(
            prompt=self.prompt,
            aspect_ratio=self.aspect_ratio,
            image_size=self.image_size,
            product_images=tuple(self.product_images),
            style_reference_image=self.style_reference_image,
            person_reference_image=self.person_reference_image,
            model_tier=resolve_model_tier(self.model),
            replicate_model=resolve_replicate_model(self.model),
        )


class EditImageBody(BaseModel):
    """Request to edit an image."""

    prompt: str = Field(..., min_length=1, max_length=20_000)
    image_base64: str = Field(..., min_length=1, description="Image to edit (no data: prefix)")
    mime_type: str = "image/png"
    reference_image: ImageInput | None = None
    model: str | None = None

    def to_request(self) -> EditRequest:
        return EditRequest(
            prompt=self.prompt,
            image_base64=self.image_base64,
            mime_type=self.mime_type,
            reference_image=self.reference_image,
            model_tier=resolve_model_tier(self.model),
        )


class ImageResponse(BaseModel):
    """Generated or edited image."""

    image_url: str
    provider: str
    model: str
    used_fallback: bool


# Dependencies


def get_runtime() -> ProviderRuntime:
    return get_default_runtime()


def get_blob_store(runtime: ProviderRuntime = Depends(get_runtime)) -> BlobStore:
    return runtime.blob_store


def get_usage_sink() -> UsageLogger:
    return get_usage_logger()


async def _run_operation(
    operation: ImageOperation,
    request: GenerationRequest | EditRequest,
    image_size: str | None,
    runtime: ProviderRuntime,
    blob_store: BlobStore,
    usage_logger: UsageLogger,
) -> ImageResponse:
    """Orchestrate, persist and account for one image operation.

    Raises:
        HTTPException: 429 for quota/rate-limit failures, 500 otherwise.
    """
    request_id = str(uuid.uuid4())
    started = time.monotonic()

    try:
        result: OrchestrationResult = await FallbackOrchestrator(runtime).run(
            operation,
            request,
            deadline_s=get_settings().ORCHESTRATION_DEADLINE_SECONDS,
        )
    except Exception as e:
        latency_ms = int((time.monotonic() - started) * 1000)
        logger.error(f"Image {operation.value} failed (request {request_id}): {e}")
        await record_usage(
            UsageRecord(
                request_id=request_id,
                provider=getattr(e, "provider", None),
                operation=operation.value,
                latency_ms=latency_ms,
                status="failed",
                error_message=str(e),
                image_size=image_size,
            ),
            usage_logger,
        )
        status_code = 429 if is_quota_or_rate_limit(e) else 500
        raise HTTPException(status_code=status_code, detail=user_facing_message(e)) from e

    image_url = result.image_url
    try:
        image_url = await persist_result_image(result.image_url, blob_store)
    except StorageError as e:
        logger.warning(f"Keeping provider URL, result upload failed (request {request_id}): {e}")

    await record_usage(
        UsageRecord(
            request_id=request_id,
            provider=result.used_provider,
            model=result.used_model,
            operation=operation.value,
            latency_ms=int((time.monotonic() - started) * 1000),
            status="success",
            image_size=image_size,
            used_fallback=result.used_fallback,
            estimated_cost_cents=calculate_image_cost(result.used_model, image_size),
        ),
        usage_logger,
    )

    return ImageResponse(
        image_url=image_url,
        provider=result.used_provider,
        model=result.used_model,
        used_fallback=result.used_fallback,
    )


@router.post("/generate", response_model=ImageResponse)
async def generate_image(
    body: GenerateImageBody,
    runtime: ProviderRuntime = Depends(get_runtime),
    blob_store: BlobStore = Depends(get_blob_store),
    usage_logger: UsageLogger = Depends(get_usage_sink),
) -> ImageResponse:
    """Generate an image with provider fallback.

    Args:
        body: Generation parameters.

    Returns:
        ImageResponse with the stored image URL.

    Raises:
        HTTPException: 429 for quota/rate-limit failures, 500 otherwise.
    """
    return await _run_operation(
        ImageOperation.GENERATE,
        body.to_request(),
        body.image_size,
        runtime,
        blob_store,
        usage_logger,
    )


@router.post("/edit", response_model=ImageResponse)
async def edit_image(
    body: EditImageBody,
    runtime: ProviderRuntime = Depends(get_runtime),
    blob_store: BlobStore = Depends(get_blob_store),
    usage_logger: UsageLogger = Depends(get_usage_sink),
) -> ImageResponse:
    """Edit an image with provider fallback.

    Args:
        body: Edit parameters.

    Returns:
        ImageResponse with the stored image URL.

    Raises:
        HTTPException: 429 for quota/rate-limit failures, 500 otherwise.
    """
    return await _run_operation(
        ImageOperation.EDIT,
        body.to_request(),
        "1K",
        runtime,
        blob_store,
        usage_logger,
    )
