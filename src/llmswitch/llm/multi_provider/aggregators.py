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

"""Usage and health aggregation across providers.

- merge_usage / aggregate_usage: fold per-provider UsageStats into one view
- UsageLedger: persisted per-provider usage hash in the shared store
- collect_health: recompute health for every registered provider
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

from ...store import SharedStore, StoreError
from ..models import LLMResponse, ProviderHealth, StructuredResponse, UsageStats
from .config import USAGE_TTL_SECONDS
from .registry import ProviderRegistry

logger = logging.getLogger(__name__)


def _merge_counts(left: dict[str, int], right: dict[str, int]) -> dict[str, int]:
    merged = dict(left)
    for key, value in right.items():
        merged[key] = merged.get(key, 0) + value
    return merged


def merge_usage(left: UsageStats, right: UsageStats) -> UsageStats:
    """Combine two usage records.

    Counters and per-day/per-model maps are added key-wise, the most recent
    ``last_request`` wins. The operation is associative and commutative.
    """
    last_requests = [value for value in (left.last_request, right.last_request) if value]
    return UsageStats(
        total_requests=left.total_requests + right.total_requests,
        total_tokens=left.total_tokens + right.total_tokens,
        last_request=max(last_requests) if last_requests else None,
        daily_usage=_merge_counts(left.daily_usage, right.daily_usage),
        model_usage=_merge_counts(left.model_usage, right.model_usage),
        total_cost=left.total_cost + right.total_cost,
    )


def aggregate_usage(stats: Iterable[UsageStats]) -> UsageStats:
    """Fold any number of usage records into one (empty record for none)."""
    total = UsageStats()
    for item in stats:
        total = merge_usage(total, item)
    return total


class UsageLedger:
    """Per-provider usage persisted as a hash under ``usage:{provider}``.

    Fields: ``total_requests``, ``total_tokens``, ``daily:{date}`` and
    ``model:{name}``. The hash expires 30 days after its last update.
    Store failures never propagate.
    """

    def __init__(self, store: SharedStore, ttl_seconds: int = USAGE_TTL_SECONDS) -> None:
        self._store = store
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def key(provider: str) -> str:
        return f"usage:{provider}"

    async def record(self, provider: str, response: LLMResponse | StructuredResponse) -> None:
        """Add one successful request to the provider's ledger."""
        key = self.key(provider)
        tokens = response.tokens_used
        day = response.timestamp.date().isoformat()
        model = response.metadata.get("model")
        try:
            await self._store.hash_increment(key, "total_requests", 1)
            await self._store.hash_increment(key, "total_tokens", tokens)
            await self._store.hash_increment(key, f"daily:{day}", tokens)
            if model:
                await self._store.hash_increment(key, f"model:{model}", tokens)
            await self._store.expire(key, self.ttl_seconds)
        except StoreError as e:
            logger.warning(f"Failed to record usage stats for '{provider}': {e}")

    async def read(self, provider: str) -> UsageStats:
        """Read the ledger back (empty stats if absent or unreachable)."""
        try:
            raw = await self._store.hash_get_all(self.key(provider))
        except StoreError as e:
            logger.warning(f"Failed to read usage stats for '{provider}': {e}")
            return UsageStats()

        stats = UsageStats()
        for field_name, value in raw.items():
            try:
                count = int(value)
            except ValueError:
                continue
            if field_name == "total_requests":
                stats.total_requests = count
            elif field_name == "total_tokens":
                stats.total_tokens = count
            elif field_name.startswith("daily:"):
                stats.daily_usage[field_name.removeprefix("daily:")] = count
            elif field_name.startswith("model:"):
                stats.model_usage[field_name.removeprefix("model:")] = count
        return stats


def _failed_health(name: str, error: BaseException) -> ProviderHealth:
    logger.warning(f"Health check for '{name}' failed: {error}")
    return ProviderHealth.unknown(f"Health check failed: {error}")


async def provider_health(registry: ProviderRegistry, name: str) -> ProviderHealth:
    """Health of one provider (unknown status for an unregistered name)."""
    provider = registry.get(name)
    if provider is None:
        return ProviderHealth.unknown(f"Provider '{name}' is not registered")
    try:
        return await provider.health()
    except Exception as e:  # noqa: BLE001
        return _failed_health(name, e)


async def collect_health(registry: ProviderRegistry) -> dict[str, ProviderHealth]:
    """Recompute health of every registered provider concurrently."""
    providers = list(registry)
    results = await asyncio.gather(
        *(provider.health() for provider in providers), return_exceptions=True
    )
    health: dict[str, ProviderHealth] = {}
    for provider, result in zip(providers, results):
        if isinstance(result, BaseException):
            health[provider.name] = _failed_health(provider.name, result)
        else:
            health[provider.name] = result
    return health


def summarize_health(health: dict[str, ProviderHealth]) -> dict[str, int]:
    """Count providers per health status."""
    summary: dict[str, int] = {}
    for item in health.values():
        summary[item.status.value] = summary.get(item.status.value, 0) + 1
    return summary

