# Copyright 2025 KTTC AI (https://github.com/kttc-ai)
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Base abstract class for LLM providers.

Defines the capability set every backend adapter implements, the behavior
they share (usage accounting, recent-failure counters, health derivation,
structured analysis on top of ``complete``) and the error hierarchy used
across the package.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

import aiohttp

from ..store import SharedStore, StoreError
from .models import (
    AnalysisSchema,
    CompletionOptions,
    LLMResponse,
    ProviderHealth,
    ProviderType,
    StructuredResponse,
    UsageStats,
)
from .prompts import STANDARD_STYLE, AnalysisPromptStyle, build_analysis_prompt

if TYPE_CHECKING:
    from .multi_provider.rate_limiter import FixedWindowRateLimiter

logger = logging.getLogger(__name__)

# Recent-failure counters expire this long after the last recorded failure
FAILURE_WINDOW_SECONDS = 600


class BaseLLMProvider(ABC):
    """Abstract base class for LLM providers.

    Subclasses implement availability, completion and model listing for one
    concrete backend. When a rate limiter and a ceiling are supplied,
    ``complete`` is wrapped at construction time so every call (including the
    ones made by ``analyze``) passes admission control first.

    Attributes:
        provider_name: Default registry name of the adapter
        provider_type: Kind of backend
        failure_threshold: Recent failures above which the provider is degraded
        analysis_max_tokens: Token budget for structured analysis prompts
        analysis_temperature: Temperature for structured analysis prompts
        analysis_style: Wording of analysis prompts
    """

    provider_name: str = ""
    provider_type: ProviderType = ProviderType.CLOUD_API
    failure_threshold: int = 5
    analysis_max_tokens: int = 1000
    analysis_temperature: float = 0.1
    analysis_style: AnalysisPromptStyle = STANDARD_STYLE

    def __init__(
        self,
        store: SharedStore,
        *,
        name: str | None = None,
        timeout: float = 30.0,
        rate_limiter: FixedWindowRateLimiter | None = None,
        requests_per_minute: int | None = None,
    ) -> None:
        """Initialize provider state.

        Args:
            store: Shared store for failure counters
            name: Registry name (defaults to ``provider_name``)
            timeout: Request timeout in seconds
            rate_limiter: Limiter applied to ``complete`` when a ceiling is set
            requests_per_minute: Ceiling for this provider (None = unlimited)
        """
        self._name = name or self.provider_name
        if not self._name:
            raise ValueError("Provider name must not be empty")
        self._store = store
        self._usage = UsageStats()
        self._session: aiohttp.ClientSession | None = None
        self.timeout = timeout
        self.requests_per_minute = requests_per_minute

        if rate_limiter is not None and requests_per_minute:
            self.complete = rate_limiter.limit(  # type: ignore[method-assign]
                self._name, requests_per_minute
            )(self.complete)

    @property
    def name(self) -> str:
        """Unique provider name."""
        return self._name

    @property
    def failure_key(self) -> str:
        """Shared-store key of the recent-failure counter."""
        return f"health:{self._name}:failures"

    # Capability set

    @abstractmethod
    async def is_available(self) -> bool:
        """Check whether the provider can serve requests right now."""
        pass

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        options: CompletionOptions | None = None,
    ) -> LLMResponse:
        """Generate a completion.

        Args:
            prompt: The prompt to send to the model
            options: Completion options (defaults when None)

        Returns:
            LLMResponse produced by this provider

        Raises:
            ProviderUnavailable: If the provider is not available
            RequestBuildError: If the request cannot be encoded
            ProviderAPIError: On any HTTP or transport failure
        """
        pass

    @abstractmethod
    async def supported_models(self) -> list[str]:
        """List models this provider can serve (empty on lookup errors)."""
        pass

    async def analyze(self, text: str, schema: AnalysisSchema) -> StructuredResponse:
        """Extract the fields of ``schema`` from ``text``.

        The reply is returned verbatim as the ``raw_response`` field with
        confidence 1.0. Callers that want the decoded JSON use
        ``StructuredResponse.parsed_json()``.
        """
        prompt = build_analysis_prompt(text, schema, self.analysis_style)
        options = CompletionOptions(
            max_tokens=self.analysis_max_tokens,
            temperature=self.analysis_temperature,
        )
        response = await self.complete(prompt, options)
        return StructuredResponse(
            data={"raw_response": response.text},
            confidence_scores={"raw_response": 1.0},
            raw_text=response.text,
            tokens_used=response.tokens_used,
            timestamp=response.timestamp,
            provider_id=response.provider_id,
            metadata=dict(response.metadata),
        )

    def usage_stats(self) -> UsageStats:
        """Snapshot of this provider's local usage counters."""
        return self._usage.model_copy(deep=True)

    def record_usage(self, response: LLMResponse | StructuredResponse) -> None:
        """Account for a successful request in the local usage counters."""
        model = response.metadata.get("model")
        cost = float(response.metadata.get("cost_usd", 0.0) or 0.0)
        self._usage.record(
            tokens=response.tokens_used,
            model=str(model) if model else None,
            cost=cost,
            when=response.timestamp,
        )

    # Recent-failure tracking

    async def record_failure(self) -> None:
        """Increment the shared recent-failure counter.

        Store errors are logged and ignored.
        """
        try:
            await self._store.increment(self.failure_key)
            await self._store.expire(self.failure_key, FAILURE_WINDOW_SECONDS)
        except StoreError as e:
            logger.warning(f"Could not record failure for '{self._name}': {e}")

    async def recent_failures(self) -> int:
        """Read the shared recent-failure counter.

        Raises:
            StoreError: If the shared store cannot be read
        """
        value = await self._store.get(self.failure_key)
        if value is None:
            return 0
        try:
            return int(value)
        except ValueError:
            logger.warning(f"Ignoring non-integer failure counter for '{self._name}': {value!r}")
            return 0

    async def health(self) -> ProviderHealth:
        """Derive health from availability and recent failures."""
        if not await self.is_available():
            return ProviderHealth.unhealthy(f"Provider '{self._name}' is not available")

        try:
            failures = await self.recent_failures()
        except StoreError as e:
            return ProviderHealth.unknown(f"Failure counter unavailable: {e}")

        details: dict[str, Any] = {"recent_failures": failures}
        if failures > self.failure_threshold:
            return ProviderHealth.degraded(
                f"High failure rate: {failures} recent failures", details=details
            )
        return ProviderHealth.healthy(details=details)

    # HTTP session

    def _session_headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers=self._session_headers(),
            )
        return self._session

    async def _read_json(self, response: aiohttp.ClientResponse) -> dict[str, Any]:
        """Decode a successful reply body as a JSON object.

        Raises:
            ProviderAPIError: If the body is not valid JSON or not an object
        """
        try:
            data = await response.json(content_type=None)
        except ValueError as e:
            raise ProviderAPIError(
                f"{self._name} returned an unreadable response: {e}",
                provider=self._name,
            ) from e
        if not isinstance(data, dict):
            raise ProviderAPIError(
                f"{self._name} returned {type(data).__name__} instead of a JSON object",
                provider=self._name,
            )
        return data

    async def close(self) -> None:
        """Close the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self._name!r})"

    def __del__(self) -> None:
        """Cleanup: warn if the session is still open."""
        session = getattr(self, "_session", None)
        if session is not None and not session.closed:
            # Can't await in __del__, just warn
            logger.warning(
                f"{type(self).__name__} session not properly closed. "
                "Use 'await provider.close()'"
            )


class LLMError(Exception):
    """Base exception for LLM-related errors.

    Attributes:
        provider: Name of the provider involved, if any
        error_code: Stable machine-readable code
    """

    default_code = "LLM_ERROR"

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        error_code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.error_code = error_code or self.default_code


class ProviderUnavailable(LLMError):
    """Raised when a provider is unknown or currently not live."""

    default_code = "PROVIDER_UNAVAILABLE"


class RateLimitExceeded(LLMError):
    """Raised when a provider's requests-per-minute ceiling is reached."""

    default_code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, provider: str, requests_per_minute: int, retry_after_seconds: int) -> None:
        super().__init__(
            f"Rate limit exceeded for provider '{provider}': "
            f"{requests_per_minute} requests per minute. "
            f"Try again in {retry_after_seconds} seconds.",
            provider=provider,
        )
        self.requests_per_minute = requests_per_minute
        self.retry_after_seconds = retry_after_seconds


class RequestBuildError(LLMError):
    """Raised when a prompt or options cannot be encoded into a request."""

    default_code = "REQUEST_ERROR"


class ProviderAPIError(LLMError):
    """Raised on any HTTP or transport failure from a backend."""

    default_code = "API_ERROR"

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        status_code: int | None = None,
        error_code: str | None = None,
    ) -> None:
        super().__init__(message, provider=provider, error_code=error_code)
        self.status_code = status_code


class ProviderTimeoutError(ProviderAPIError):
    """Raised when a backend request times out."""

    default_code = "TIMEOUT"


class NoProviderAvailable(LLMError):
    """Raised when no registered provider is available."""

    default_code = "NO_PROVIDER"


class AllProvidersFailed(LLMError):
    """Raised when the primary provider and its fallback both failed.

    Attributes:
        attempts: Ordered (provider name, exception) pairs
    """

    default_code = "ALL_PROVIDERS_FAILED"

    def __init__(self, attempts: list[tuple[str, Exception]]) -> None:
        summary = "; ".join(f"{name}: {error}" for name, error in attempts)
        super().__init__(f"All providers failed ({summary})")
        self.attempts = attempts

    @property
    def causes(self) -> list[Exception]:
        return [error for _, error in self.attempts]
