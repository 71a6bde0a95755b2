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

"""Provider registry and startup wiring.

The registry is an insertion-ordered, name-keyed mapping built once at
startup from the adapters whose configuration marks them enabled. Its
iteration order is the order used when a substitute provider is needed.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import TYPE_CHECKING

from ...store import InMemoryStore, RedisStore, SharedStore
from ..base import BaseLLMProvider
from .config import provider_configs_from_settings
from .rate_limiter import FixedWindowRateLimiter

if TYPE_CHECKING:
    from ...utils.config import Settings

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Name-keyed collection of provider adapters.

    Example:
        >>> registry = ProviderRegistry([gemini, ollama])
        >>> registry.names()
        ['gemini', 'ollama']
        >>> first = await registry.first_available(exclude="gemini")
    """

    def __init__(self, providers: list[BaseLLMProvider] | None = None) -> None:
        self._providers: dict[str, BaseLLMProvider] = {}
        for provider in providers or []:
            self.register(provider)

    def register(self, provider: BaseLLMProvider) -> None:
        """Add a provider.

        Raises:
            ValueError: If a provider with the same name is already registered
        """
        if provider.name in self._providers:
            raise ValueError(f"Provider '{provider.name}' is already registered")
        self._providers[provider.name] = provider
        logger.info(f"Registered provider '{provider.name}' ({provider.provider_type.value})")

    def get(self, name: str) -> BaseLLMProvider | None:
        return self._providers.get(name)

    def names(self) -> list[str]:
        return list(self._providers)

    def __contains__(self, name: object) -> bool:
        return name in self._providers

    def __iter__(self) -> Iterator[BaseLLMProvider]:
        return iter(list(self._providers.values()))

    def __len__(self) -> int:
        return len(self._providers)

    async def available(self) -> list[BaseLLMProvider]:
        """Providers whose liveness check currently passes, in registry order."""
        return [provider for provider in self if await provider.is_available()]

    async def first_available(self, exclude: str | None = None) -> BaseLLMProvider | None:
        """First available provider in registry order, optionally skipping one name."""
        for provider in self:
            if provider.name == exclude:
                continue
            if await provider.is_available():
                return provider
        return None

    async def close(self) -> None:
        """Close every provider's HTTP session."""
        for provider in self:
            await provider.close()


def create_store(settings: Settings) -> SharedStore:
    """Create the shared store selected by ``settings.store_backend``."""
    if settings.store_backend == "memory":
        logger.warning("Using in-memory store; state is not shared between processes")
        return InMemoryStore()
    return RedisStore.from_url(settings.redis_url)


def build_registry(
    settings: Settings,
    store: SharedStore,
    rate_limiter: FixedWindowRateLimiter | None = None,
) -> ProviderRegistry:
    """Construct the enabled adapters and register them.

    Gemini is registered before Ollama. A provider's ``complete`` is wrapped
    with the rate limiter when it has a ceiling configured.

    Args:
        settings: Application settings
        store: Shared store handed to every adapter
        rate_limiter: Limiter for providers with a ceiling (created if None)

    Returns:
        Populated registry (possibly empty)
    """
    from ..gemini_provider import GeminiProvider
    from ..ollama_provider import OllamaProvider

    rate_limiter = rate_limiter or FixedWindowRateLimiter(
        store, strict=settings.strict_rate_limiting
    )
    configs = provider_configs_from_settings(settings)
    registry = ProviderRegistry()

    gemini_config = configs["gemini"]
    if gemini_config.enabled:
        registry.register(
            GeminiProvider(
                store,
                api_key=settings.gemini_api_key,
                model=settings.gemini_model,
                base_url=settings.gemini_base_url,
                timeout=gemini_config.timeout,
                max_retries=gemini_config.max_retries,
                rate_limiter=rate_limiter,
                requests_per_minute=gemini_config.requests_per_minute,
            )
        )

    ollama_config = configs["ollama"]
    if ollama_config.enabled:
        registry.register(
            OllamaProvider(
                store,
                base_url=settings.ollama_base_url,
                default_model=settings.ollama_default_model,
                auto_model_pull=settings.ollama_auto_model_pull,
                timeout=ollama_config.timeout,
                rate_limiter=rate_limiter,
                requests_per_minute=ollama_config.requests_per_minute,
            )
        )

    if not len(registry):
        logger.warning("No LLM providers enabled")
    else:
        logger.info(f"Provider registry built: {', '.join(registry.names())}")
    return registry
