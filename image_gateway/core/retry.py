"""Retry engine for single provider operations.

Wraps one async operation and retries it on classified-retryable errors.
The wait before the next attempt is either a provider-supplied hint (quota
errors only, capped) or a linear backoff of ``base_delay_ms * attempt``.
Non-retryable errors and the final failure are re-raised unchanged.

Examples:
    >>> from image_gateway.core.retry import with_retry
    >>> result = await with_retry(lambda: client.call(), max_attempts=3)

    >>> # Single attempt: let the fallback chain do the retrying
    >>> result = await with_retry(lambda: client.call(), max_attempts=1)

Tests:
    - tests/unit/test_retry.py
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from image_gateway.core.errors import (
    classify_error,
    extract_retry_delay_ms,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY_MS = 1000
MAX_HINT_DELAY_MS = 60_000


def is_retryable(error: Any) -> bool:
    """Whether a local retry can help.

    Retryable = transient server error, OR temporary quota/rate limit
    (not permanent quota), OR timeout.
    """
    c = classify_error(error)
    return c.transient_server or (c.quota_or_rate_limit and not c.permanent_quota) or c.timeout


def compute_delay_ms(
    error: Any,
    attempt: int,
    base_delay_ms: int,
    use_retry_hint: bool = True,
    max_hint_delay_ms: int = MAX_HINT_DELAY_MS,
) -> int:
    """Wait time before the attempt following ``attempt``.

    Args:
        error: The error that ended ``attempt``.
        attempt: 1-based number of the attempt that just failed.
        base_delay_ms: Linear backoff step.
        use_retry_hint: Honour provider hints for quota errors.
        max_hint_delay_ms: Cap applied to provider hints.

    Returns:
        Delay in milliseconds.
    """
    if use_retry_hint and classify_error(error).quota_or_rate_limit:
        hint = extract_retry_delay_ms(error, cap_ms=max_hint_delay_ms)
        if hint:
            return hint
    return base_delay_ms * attempt


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
    *,
    retryable: Callable[[Any], bool] = is_retryable,
    use_retry_hint: bool = True,
    max_hint_delay_ms: int = MAX_HINT_DELAY_MS,
) -> T:
    """Run ``operation`` with bounded retries.

    Args:
        operation: Zero-argument callable returning a fresh awaitable per attempt.
        max_attempts: Total attempts, including the first.
        base_delay_ms: Linear backoff step in milliseconds.
        retryable: Predicate deciding whether an error may be retried.
        use_retry_hint: Honour provider-supplied wait hints on quota errors.
        max_hint_delay_ms: Cap for provider-supplied hints.

    Returns:
        The operation's result.

    Raises:
        ValueError: If max_attempts is below 1.
        Exception: The last error raised by ``operation``, unchanged.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    for attempt in range(1, max_attempts + 1):
        try:
            if attempt > 1:
                logger.debug(f"Retry attempt {attempt}/{max_attempts}")
            return await operation()
        except Exception as e:
            can_retry = retryable(e)
            logger.warning(
                f"Attempt {attempt}/{max_attempts} failed "
                f"({type(e).__name__}, retryable={can_retry}): {e}"
            )

            if not can_retry or attempt >= max_attempts:
                raise

            delay_ms = compute_delay_ms(
                e,
                attempt,
                base_delay_ms,
                use_retry_hint=use_retry_hint,
                max_hint_delay_ms=max_hint_delay_ms,
            )
            logger.info(f"Waiting {delay_ms}ms before retry")
            await asyncio.sleep(delay_ms / 1000)

    # Unreachable: the loop either returns or raises
    raise AssertionError("with_retry exited without result")
