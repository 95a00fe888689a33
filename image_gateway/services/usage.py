"""Usage records and image cost estimates.

The route layer builds one UsageRecord per orchestration call (success or
failure) and hands it to the active usage logger. The default logger
writes a structured log line; deployments with a usage database register
their own implementation via set_usage_logger().

Examples:
    >>> from image_gateway.services.usage import calculate_image_cost
    >>> calculate_image_cost("gemini-3-pro-image-preview", "4K")
    24.0
    >>> calculate_image_cost("fal-ai/gemini-25-flash-image/edit", "2K", image_count=2)
    10.0

Tests:
    - tests/unit/test_usage.py
"""

from __future__ import annotations

import logging
import uuid
from typing import Literal, Protocol

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

# USD cents per image, by output size
IMAGE_PRICING_CENTS: dict[str, dict[str, float]] = {
    # Gemini direct
    "gemini-3-pro-image-preview": {"1K": 13.4, "2K": 13.4, "4K": 24},
    "gemini-2.5-flash-image": {"1K": 4, "2K": 4, "4K": 4},
    # FAL.ai
    "fal-ai/gemini-3-pro-image-preview": {"1K": 15, "2K": 15, "4K": 30},
    "fal-ai/gemini-3-pro-image-preview/edit": {"1K": 15, "2K": 15, "4K": 30},
    "fal-ai/gemini-25-flash-image": {"1K": 5, "2K": 5, "4K": 5},
    "fal-ai/gemini-25-flash-image/edit": {"1K": 5, "2K": 5, "4K": 5},
    # Replicate (roughly twice the direct price)
    "google/nano-banana-pro": {"1K": 31, "2K": 31, "4K": 48},
    "google/nano-banana": {"1K": 8, "2K": 8, "4K": 8},
}

DEFAULT_IMAGE_SIZE = "1K"


def calculate_image_cost(model: str, image_size: str | None = None, image_count: int = 1) -> float:
    """Estimated cost in cents, rounded to two decimals.

    Unknown models cost 0 and log a warning. Unknown sizes use the 1K price.
    """
    pricing = IMAGE_PRICING_CENTS.get(model)
    if pricing is None:
        logger.warning(f"Unknown model for pricing: {model}")
        return 0.0
    if image_count <= 0:
        return 0.0
    per_image = pricing.get(image_size or DEFAULT_IMAGE_SIZE, pricing[DEFAULT_IMAGE_SIZE])
    return round(per_image * image_count, 2)


class UsageRecord(BaseModel):
    """One orchestration call, as seen by usage accounting."""

    request_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    provider: str | None = None
    model: str | None = None
    operation: Literal["generate", "edit"]
    latency_ms: int = Field(ge=0)
    status: Literal["success", "failed"]
    error_message: str | None = None
    image_size: str | None = None
    used_fallback: bool = False
    estimated_cost_cents: float = 0.0


class UsageLogger(Protocol):
    """Sink for usage records. Private deployments override this."""

    async def log(self, record: UsageRecord) -> None: ...


class LoggingUsageLogger:
    """Default: one structured log line per record."""

    async def log(self, record: UsageRecord) -> None:
        logger.info(
            f"AI usage: request_id={record.request_id} operation={record.operation} "
            f"provider={record.provider} model={record.model} status={record.status} "
            f"latency_ms={record.latency_ms} fallback={record.used_fallback} "
            f"cost_cents={record.estimated_cost_cents}",
            extra={"usage": record.model_dump()},
        )


_usage_logger: UsageLogger = LoggingUsageLogger()


def get_usage_logger() -> UsageLogger:
    return _usage_logger


def set_usage_logger(usage_logger: UsageLogger) -> None:
    global _usage_logger
    _usage_logger = usage_logger


async def record_usage(record: UsageRecord, usage_logger: UsageLogger | None = None) -> None:
    """Log a usage record. A failing logger never breaks the request."""
    try:
        await (usage_logger or get_usage_logger()).log(record)
    except Exception as e:
        logger.warning(f"Failed to log usage for request {record.request_id}: {e}")
