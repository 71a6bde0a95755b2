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

"""Active provider selection persisted in the shared store.

One pointer key names the provider that serves new requests for every
process. ``resolve`` corrects a pointer that names a missing or unavailable
provider and writes the substitute back, so later resolutions agree on it
until it too becomes unavailable. The pointer lifetime is refreshed on
writes only, so an idle system eventually forgets an explicit selection.
"""

from __future__ import annotations

import logging

from ...store import SharedStore, StoreError
from ..base import BaseLLMProvider, NoProviderAvailable, ProviderUnavailable
from .config import ACTIVE_PROVIDER_KEY, ACTIVE_PROVIDER_TTL_SECONDS
from .registry import ProviderRegistry

logger = logging.getLogger(__name__)


class ActiveProviderSelector:
    """Resolves and persists the active provider.

    Example:
        >>> selector = ActiveProviderSelector(registry, store, default_provider="ollama")
        >>> provider = await selector.resolve()
        >>> await selector.activate("gemini")
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        store: SharedStore,
        default_provider: str = "ollama",
        ttl_seconds: int = ACTIVE_PROVIDER_TTL_SECONDS,
    ) -> None:
        """Initialize selector.

        Args:
            registry: Registered providers
            store: Shared store holding the pointer
            default_provider: Name used when no pointer is stored
            ttl_seconds: Pointer lifetime, refreshed on each write
        """
        self._registry = registry
        self._store = store
        self.default_provider = default_provider
        self.ttl_seconds = ttl_seconds

    async def stored_name(self) -> str | None:
        """Read the persisted pointer (None if absent or the store is unreachable)."""
        try:
            return await self._store.get(ACTIVE_PROVIDER_KEY)
        except StoreError as e:
            logger.warning(f"Could not read active provider, using default: {e}")
            return None

    async def _persist(self, name: str) -> None:
        try:
            await self._store.set(ACTIVE_PROVIDER_KEY, name, ttl_seconds=self.ttl_seconds)
        except StoreError as e:
            logger.warning(f"Could not persist active provider '{name}': {e}")

    async def resolve(self) -> BaseLLMProvider:
        """Return the provider that should serve the next request.

        Raises:
            NoProviderAvailable: If no registered provider is available
        """
        name = await self.stored_name() or self.default_provider
        provider = self._registry.get(name)
        if provider is not None and await provider.is_available():
            return provider

        substitute = await self._registry.first_available()
        if substitute is None:
            raise NoProviderAvailable("No LLM providers are currently available")

        logger.info(
            f"Active provider '{name}' is not available, switching to '{substitute.name}'"
        )
        await self._persist(substitute.name)
        return substitute

    async def activate(self, name: str) -> None:
        """Make ``name`` the active provider.

        Raises:
            ProviderUnavailable: If the provider is unknown or not available;
                the stored pointer is left unchanged
        """
        provider = self._registry.get(name)
        if provider is None:
            raise ProviderUnavailable(f"Provider '{name}' is not registered", provider=name)
        if not await provider.is_available():
            raise ProviderUnavailable(f"Provider '{name}' is not available", provider=name)

        await self._persist(name)
        logger.info(f"Switched active LLM provider to: {name}")

    async def initialize(self) -> None:
        """Seed the pointer at startup when none is stored yet."""
        if await self.stored_name() is not None:
            return

        provider = self._registry.get(self.default_provider)
        if provider is not None and await provider.is_available():
            await self._persist(provider.name)
            logger.info(f"Initialized active provider: {provider.name}")
            return

        substitute = await self._registry.first_available()
        if substitute is None:
            logger.warning("No LLM providers available at startup")
            return
        await self._persist(substitute.name)
        logger.info(f"Initialized active provider with fallback: {substitute.name}")
