"""Fallback orchestrator for image operations.

Runs one generate/edit operation across the provider chain, one provider
at a time and strictly in chain order. A failure either advances to the
next provider or aborts the whole operation; which one is decided by a
small decision table over the error classification:

    +------------------------------------------+------------+---------+
    | classification                           | not last   | last    |
    +------------------------------------------+------------+---------+
    | safety block                             | abort      | abort   |
    | quota / rate limit, auth, transient 5xx  | advance    | abort   |
    | anything else                            | abort      | abort   |
    +------------------------------------------+------------+---------+

Abort re-raises the triggering error unchanged. Providers are never raced
in parallel so a single request never spends quota on several paid
services.

Examples:
    >>> from image_gateway.core.orchestrator import run_with_provider_fallback
    >>> result = await run_with_provider_fallback(
    ...     "generate", GenerationRequest(prompt="Poker night flyer")
    ... )
    >>> result.used_provider, result.used_fallback
    ('gemini', False)

    >>> # Explicit runtime with fake adapters (tests)
    >>> runtime = ProviderRuntime(chain=ProviderChain((ProviderName.FAL,)),
    ...                           adapters={ProviderName.FAL: fake})
    >>> await FallbackOrchestrator(runtime).run("edit", edit_request)

Tests:
    - tests/unit/test_orchestrator.py
"""

import asyncio
import logging
import threading
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import ValidationError

from image_gateway.config import ProviderName, Settings, get_settings
from image_gateway.core.chain import ProviderChain, resolve_chain
from image_gateway.core.errors import (
    ConfigurationError,
    ErrorKind,
    NoProvidersConfiguredError,
    ProviderTimeoutError,
    UnknownOperationError,
    classify_error,
)
from image_gateway.core.providers import (
    EditRequest,
    FalProvider,
    GeminiProvider,
    GenerationRequest,
    ImageProvider,
    ReplicateProvider,
)
from image_gateway.storage import BlobStore, create_blob_store

logger = logging.getLogger(__name__)


class ImageOperation(str, Enum):
    """Operations an adapter supports."""

    GENERATE = "generate"
    EDIT = "edit"


class FallbackDecision(str, Enum):
    """What to do after a provider failed."""

    ADVANCE = "advance"
    ABORT = "abort"


def decide_fallback(error: Any, is_last_provider: bool) -> FallbackDecision:
    """Decide whether a failed provider hands over to the next one.

    Args:
        error: The error raised by the provider.
        is_last_provider: Whether the provider is the last in the chain.

    Returns:
        FallbackDecision.ADVANCE or FallbackDecision.ABORT.
    """
    if is_last_provider:
        return FallbackDecision.ABORT
    c = classify_error(error)
    # Other providers apply similar content policies
    if c.safety_block:
        return FallbackDecision.ABORT
    if c.quota_or_rate_limit or c.auth_failure or c.transient_server:
        return FallbackDecision.ADVANCE
    return FallbackDecision.ABORT


@dataclass(frozen=True)
class ProviderAttempt:
    """One provider invocation within an orchestration call."""

    provider: str
    latency_ms: int
    error: BaseException | None = None
    error_kinds: frozenset[ErrorKind] = frozenset()

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class OrchestrationResult:
    """Successful outcome of an orchestration call.

    Attributes:
        image_url: data: URI or https URL returned by the provider
        used_model: Model the provider actually used
        used_provider: Chain entry that succeeded
        used_fallback: True when the success was not the first provider
        attempts: Every provider invocation, in order
    """

    image_url: str
    used_model: str
    used_provider: str
    used_fallback: bool
    attempts: list[ProviderAttempt] = field(default_factory=list)

    @property
    def latency_ms(self) -> int:
        """Total time spent across all attempts."""
        return sum(a.latency_ms for a in self.attempts)


def create_adapter(
    provider: ProviderName,
    settings: Settings,
    blob_store: BlobStore,
) -> ImageProvider:
    """Build the adapter for a provider from settings.

    Raises:
        ValueError: If the provider's credential is not configured.
    """
    api_key = settings.get_api_key(provider)
    timeout = settings.PROVIDER_TIMEOUT_SECONDS

    if provider == ProviderName.GEMINI:
        return GeminiProvider(
            api_key=api_key,
            max_attempts=settings.GEMINI_LOCAL_ATTEMPTS,
            timeout=timeout,
        )
    if provider == ProviderName.FAL:
        return FalProvider(api_key=api_key, blob_store=blob_store, timeout=timeout)
    if provider == ProviderName.REPLICATE:
        return ReplicateProvider(
            api_key=api_key,
            blob_store=blob_store,
            rate_limit_attempts=settings.REPLICATE_RATE_LIMIT_ATTEMPTS,
            rate_limit_backoff_ms=settings.REPLICATE_RATE_LIMIT_BACKOFF_MS,
            timeout=timeout,
        )
    raise ValueError(f"Unknown provider: {provider}")


class ProviderRuntime:
    """Injectable context holding everything the orchestrator needs.

    Adapters passed in explicitly are used as-is. Missing ones are built
    lazily from settings the first time they are needed, once per runtime.

    Attributes:
        settings: Application settings
        chain: Resolved provider chain
    """

    def __init__(
        self,
        settings: Settings | None = None,
        chain: ProviderChain | None = None,
        blob_store: BlobStore | None = None,
        adapters: Mapping[ProviderName, ImageProvider] | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.chain = chain if chain is not None else resolve_chain(self.settings)
        self._blob_store = blob_store
        self._adapters: dict[ProviderName, ImageProvider] = dict(adapters or {})
        self._built: set[ProviderName] = set()
        self._lock = threading.Lock()

    @property
    def blob_store(self) -> BlobStore:
        """Blob store (lazy, created from settings when not injected)."""
        if self._blob_store is None:
            with self._lock:
                if self._blob_store is None:
                    self._blob_store = create_blob_store(self.settings)
        return self._blob_store

    def get_adapter(self, provider: ProviderName) -> ImageProvider:
        """Adapter for a provider, constructed at most once."""
        adapter = self._adapters.get(provider)
        if adapter is not None:
            return adapter
        blob_store = self.blob_store
        with self._lock:
            adapter = self._adapters.get(provider)
            if adapter is None:
                adapter = create_adapter(provider, self.settings, blob_store)
                self._adapters[provider] = adapter
                self._built.add(provider)
                logger.debug(f"Initialized {provider.value} image adapter")
        return adapter

    async def close(self) -> None:
        """Close adapters and the blob store this runtime created."""
        for provider in list(self._built):
            await self._adapters[provider].close()
        self._built.clear()
        if self._blob_store is not None:
            await self._blob_store.close()


def _coerce_params(
    operation: ImageOperation,
    params: GenerationRequest | EditRequest | Mapping[str, Any],
) -> GenerationRequest | EditRequest:
    model = GenerationRequest if operation == ImageOperation.GENERATE else EditRequest
    if isinstance(params, model):
        return params
    if isinstance(params, Mapping):
        try:
            return model.model_validate(dict(params))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid {operation.value} parameters: {e}") from e
    raise ConfigurationError(
        f"{operation.value} expects {model.__name__}, got {type(params).__name__}"
    )


def _parse_operation(operation: ImageOperation | str) -> ImageOperation:
    try:
        return ImageOperation(operation)
    except ValueError:
        raise UnknownOperationError(f"Unknown image operation: {operation!r}") from None


class FallbackOrchestrator:
    """Sequential trial-by-fallback over the provider chain.

    Example:
        >>> orchestrator = FallbackOrchestrator(ProviderRuntime())
        >>> result = await orchestrator.run("generate", request, deadline_s=90)
    """

    def __init__(self, runtime: ProviderRuntime) -> None:
        self.runtime = runtime

    async def _invoke(
        self,
        adapter: ImageProvider,
        operation: ImageOperation,
        request: GenerationRequest | EditRequest,
        remaining_s: float | None,
    ) -> Any:
        if operation == ImageOperation.GENERATE:
            call = adapter.generate(request)  # type: ignore[arg-type]
        else:
            call = adapter.edit(request)  # type: ignore[arg-type]
        if remaining_s is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=remaining_s)
        except asyncio.TimeoutError:
            raise ProviderTimeoutError(adapter.name.value) from None

    async def run(
        self,
        operation: ImageOperation | str,
        params: GenerationRequest | EditRequest | Mapping[str, Any],
        deadline_s: float | None = None,
    ) -> OrchestrationResult:
        """Run an operation across the chain.

        Args:
            operation: "generate" or "edit".
            params: Request model, or a mapping validated into one.
            deadline_s: Optional overall budget in seconds. Each provider
                call gets whatever is left and is cancelled when it runs out.

        Returns:
            OrchestrationResult from the first provider that succeeded.

        Raises:
            UnknownOperationError: If the operation is not generate/edit.
            NoProvidersConfiguredError: If the chain is empty.
            ConfigurationError: If params do not fit the operation.
            ProviderTimeoutError: If the overall deadline runs out.
            Exception: The error of the provider that aborted the run.
        """
        op = _parse_operation(operation)
        chain = self.runtime.chain
        if not chain:
            raise NoProvidersConfiguredError()
        request = _coerce_params(op, params)

        started = time.monotonic()
        attempts: list[ProviderAttempt] = []
        last_error: Exception | None = None

        for index, provider in enumerate(chain):
            remaining_s: float | None = None
            if deadline_s is not None:
                remaining_s = deadline_s - (time.monotonic() - started)
                if remaining_s <= 0:
                    logger.warning(f"Deadline reached before trying {provider.value}")
                    raise ProviderTimeoutError(provider.value)

            adapter = self.runtime.get_adapter(provider)
            attempt_started = time.monotonic()
            try:
                result = await self._invoke(adapter, op, request, remaining_s)
            except Exception as e:
                latency_ms = int((time.monotonic() - attempt_started) * 1000)
                kinds = classify_error(e).kinds
                attempts.append(ProviderAttempt(provider.value, latency_ms, e, kinds))
                last_error = e

                decision = decide_fallback(e, chain.is_last(index))
                if decision == FallbackDecision.ABORT:
                    logger.error(f"{op.value} failed on {provider.value}, aborting: {e}")
                    raise

                next_provider = chain.providers[index + 1]
                logger.warning(
                    f"{provider.value} failed ({', '.join(sorted(k.value for k in kinds))}), "
                    f"falling back to {next_provider.value}: {e}"
                )
                continue

            latency_ms = int((time.monotonic() - attempt_started) * 1000)
            attempts.append(ProviderAttempt(provider.value, latency_ms))
            used_fallback = index > 0
            if used_fallback:
                logger.info(f"{op.value} succeeded on fallback provider {provider.value}")
            return OrchestrationResult(
                image_url=result.image_url,
                used_model=result.used_model,
                used_provider=provider.value,
                used_fallback=used_fallback,
                attempts=attempts,
            )

        # Only reachable if the decision table ever advances past the last provider
        assert last_error is not None
        raise last_error


_default_runtime: ProviderRuntime | None = None
_default_runtime_lock = threading.Lock()


def get_default_runtime() -> ProviderRuntime:
    """Process-wide runtime built from the cached settings."""
    global _default_runtime
    if _default_runtime is None:
        with _default_runtime_lock:
            if _default_runtime is None:
                _default_runtime = ProviderRuntime()
    return _default_runtime


def reset_default_runtime() -> None:
    """Drop the process-wide runtime so the next call rebuilds it."""
    global _default_runtime
    with _default_runtime_lock:
        _default_runtime = None


async def run_with_provider_fallback(
    operation: ImageOperation | str,
    params: GenerationRequest | EditRequest | Mapping[str, Any],
    runtime: ProviderRuntime | None = None,
    deadline_s: float | None = None,
) -> OrchestrationResult:
    """Run an operation with provider fallback.

    Args:
        operation: "generate" or "edit".
        params: Request model or mapping.
        runtime: Explicit runtime; the process-wide one when omitted.
        deadline_s: Optional overall budget in seconds.

    Returns:
        OrchestrationResult.
    """
    orchestrator = FallbackOrchestrator(runtime or get_default_runtime())
    return await orchestrator.run(operation, params, deadline_s=deadline_s)
