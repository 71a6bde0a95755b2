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

"""Orchestrator serving completion and analysis requests.

Coordinates one request across the registered providers:
- resolves the active provider through the shared pointer
- invokes it (rate limiting is applied inside the adapter)
- on a provider failure, retries exactly once against a fallback provider
- records usage locally and in the shared usage ledger on success

Fallback provider selection:
1. gemini and ollama fall back to each other when the partner is available
2. any other provider falls back to the first other available provider

Example:
    >>> store = InMemoryStore()
    >>> registry = ProviderRegistry([GeminiProvider(store, api_key="..."), OllamaProvider(store)])
    >>> orchestrator = LLMOrchestrator(registry, store)
    >>> await orchestrator.initialize()
    >>> response = await orchestrator.complete("Summarize this contract")
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from ...store import SharedStore
from ..base import (
    AllProvidersFailed,
    BaseLLMProvider,
    LLMError,
    ProviderAPIError,
    ProviderUnavailable,
)
from ..models import (
    AnalysisSchema,
    CompletionOptions,
    LLMResponse,
    ProviderHealth,
    ProviderInfo,
    ProviderTestResult,
    StructuredResponse,
    UsageStats,
)
from .aggregators import UsageLedger, aggregate_usage, collect_health, provider_health
from .config import OrchestratorConfig, fallback_partner
from .registry import ProviderRegistry
from .selector import ActiveProviderSelector

logger = logging.getLogger(__name__)

R = TypeVar("R", LLMResponse, StructuredResponse)

# Errors that make the orchestrator try the fallback provider
FAILOVER_ERRORS: tuple[type[LLMError], ...] = (ProviderAPIError, ProviderUnavailable)

TEST_PROMPT = "Test"
TEST_OPTIONS = CompletionOptions(max_tokens=10, temperature=0.1)


class LLMOrchestrator:
    """Façade over the provider registry.

    Args:
        registry: Registered providers
        store: Shared store for the active pointer and usage ledger
        config: Orchestrator configuration (uses defaults if None)
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        store: SharedStore,
        config: OrchestratorConfig | None = None,
    ) -> None:
        self.config = config or OrchestratorConfig()
        self.registry = registry
        self._store = store
        self.selector = ActiveProviderSelector(
            registry,
            store,
            default_provider=self.config.default_provider,
            ttl_seconds=self.config.active_provider_ttl,
        )
        self.ledger = UsageLedger(store, ttl_seconds=self.config.usage_ttl)

        logger.info(
            f"LLM orchestrator initialized with {len(registry)} providers: "
            f"{', '.join(registry.names()) or 'none'}"
        )

    async def initialize(self) -> None:
        """Seed the active pointer and make sure local models are present."""
        await self.selector.initialize()

        for provider in self.registry:
            ensure = getattr(provider, "ensure_model_available", None)
            if ensure is None or not await provider.is_available():
                continue
            try:
                await ensure()
            except ProviderAPIError as e:
                logger.warning(f"Could not prepare default model for '{provider.name}': {e}")

    # Requests

    async def complete(
        self,
        prompt: str,
        options: CompletionOptions | None = None,
    ) -> LLMResponse:
        """Generate a completion with the active provider, falling back once on failure.

        Raises:
            NoProviderAvailable: If no provider is available
            RateLimitExceeded: If the active provider's ceiling is reached
            RequestBuildError: If the request cannot be encoded
            AllProvidersFailed: If the provider and its fallback both failed
        """
        return await self._execute("completion", lambda p: p.complete(prompt, options))

    async def analyze(self, text: str, schema: AnalysisSchema) -> StructuredResponse:
        """Run structured analysis with the active provider, falling back once on failure."""
        return await self._execute("analysis", lambda p: p.analyze(text, schema))

    async def _execute(
        self,
        operation: str,
        call: Callable[[BaseLLMProvider], Awaitable[R]],
    ) -> R:
        primary = await self.selector.resolve()
        logger.debug(f"Using provider '{primary.name}' for {operation} request")

        try:
            result = await call(primary)
        except FAILOVER_ERRORS as error:
            logger.warning(f"Provider '{primary.name}' failed during {operation}: {error}")
            if not self.config.fallback_enabled:
                raise

            fallback = await self.fallback_for(primary.name)
            if fallback is None:
                logger.error(f"No fallback provider available for '{primary.name}'")
                raise AllProvidersFailed([(primary.name, error)]) from error

            logger.info(f"Attempting {operation} fallback to provider: {fallback.name}")
            try:
                result = await call(fallback)
            except LLMError as fallback_error:
                logger.error(f"Fallback provider '{fallback.name}' also failed: {fallback_error}")
                raise AllProvidersFailed(
                    [(primary.name, error), (fallback.name, fallback_error)]
                ) from fallback_error

            await self._record_usage(fallback, result)
            return result

        await self._record_usage(primary, result)
        return result

    async def fallback_for(self, failed_name: str) -> BaseLLMProvider | None:
        """Pick the provider to retry against after ``failed_name`` failed."""
        partner_name = fallback_partner(failed_name)
        if partner_name is None:
            return await self.registry.first_available(exclude=failed_name)

        partner = self.registry.get(partner_name)
        if partner is not None and await partner.is_available():
            return partner
        return None

    async def _record_usage(
        self, provider: BaseLLMProvider, response: LLMResponse | StructuredResponse
    ) -> None:
        provider.record_usage(response)
        await self.ledger.record(provider.name, response)

    # Provider management

    async def active_provider(self) -> BaseLLMProvider:
        """Resolve the active provider (correcting the pointer if needed)."""
        return await self.selector.resolve()

    async def activate(self, name: str) -> None:
        """Switch the active provider.

        Raises:
            ProviderUnavailable: If the provider is unknown or not available
        """
        await self.selector.activate(name)

    async def available_providers(self) -> list[BaseLLMProvider]:
        return await self.registry.available()

    async def provider_info(self) -> list[ProviderInfo]:
        """Describe every registered provider with its current health."""
        try:
            active_name: str | None = (await self.selector.resolve()).name
        except LLMError:
            active_name = None

        health = await collect_health(self.registry)
        return [
            ProviderInfo(
                name=provider.name,
                type=provider.provider_type,
                available=await provider.is_available(),
                active=provider.name == active_name,
                health=health.get(provider.name),
            )
            for provider in self.registry
        ]

    async def test_provider(self, name: str) -> ProviderTestResult:
        """Send a tiny completion to ``name``; never raises."""
        provider = self.registry.get(name)
        if provider is None:
            return ProviderTestResult(
                provider_name=name, success=False, message=f"Provider '{name}' not found"
            )
        return await self._test(provider)

    async def test_active_provider(self) -> ProviderTestResult:
        """Connectivity test of the active provider; never raises."""
        try:
            provider = await self.selector.resolve()
        except LLMError as e:
            return ProviderTestResult(provider_name="", success=False, message=str(e))
        return await self._test(provider)

    async def _test(self, provider: BaseLLMProvider) -> ProviderTestResult:
        try:
            await provider.complete(TEST_PROMPT, TEST_OPTIONS)
        except LLMError as e:
            logger.debug(f"Provider test failed for {provider.name}: {e}")
            return ProviderTestResult(provider_name=provider.name, success=False, message=str(e))
        return ProviderTestResult(
            provider_name=provider.name, success=True, message="Provider is working correctly"
        )

    async def supported_models(self, name: str | None = None) -> list[str]:
        """Models of a named provider, or of the active one when ``name`` is None.

        Raises:
            ProviderUnavailable: If the named provider is unknown or not available
        """
        if name is None:
            provider = await self.selector.resolve()
        else:
            provider = self.registry.get(name)
            if provider is None or not await provider.is_available():
                raise ProviderUnavailable(f"Provider not available: {name}", provider=name)
        return await provider.supported_models()

    # Usage and health

    def aggregated_usage(self) -> UsageStats:
        """Sum of every provider's local usage."""
        return aggregate_usage(provider.usage_stats() for provider in self.registry)

    async def persisted_usage(self, name: str) -> UsageStats:
        """Usage of ``name`` as recorded in the shared ledger by all processes."""
        return await self.ledger.read(name)

    async def provider_health(self, name: str) -> ProviderHealth:
        return await provider_health(self.registry, name)

    async def all_provider_health(self) -> dict[str, ProviderHealth]:
        return await collect_health(self.registry)

    def get_status(self) -> dict[str, Any]:
        """Static configuration summary for monitoring."""
        return {
            "config": {
                "default_provider": self.config.default_provider,
                "fallback_enabled": self.config.fallback_enabled,
            },
            "providers": {
                provider.name: {
                    "type": provider.provider_type.value,
                    "requests_per_minute": provider.requests_per_minute,
                    "usage": provider.usage_stats().model_dump(mode="json"),
                }
                for provider in self.registry
            },
        }

    async def close(self) -> None:
        """Release HTTP sessions and the store connection."""
        await self.registry.close()
        await self._store.close()
