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

"""Unit tests for usage aggregation, the usage ledger and health collection."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Any
from unittest.mock import AsyncMock

import pytest

from llmswitch.llm.models import HealthStatus, LLMResponse, UsageStats
from llmswitch.llm.multi_provider import (
    ProviderRegistry,
    UsageLedger,
    aggregate_usage,
    collect_health,
    merge_usage,
    provider_health,
)
from llmswitch.llm.multi_provider.aggregators import summarize_health
from llmswitch.store import InMemoryStore, StoreError


@pytest.mark.unit
class TestMergeUsage:
    """Test folding of usage records."""

    def test_counters_add(self) -> None:
        merged = merge_usage(
            UsageStats(total_requests=3, total_tokens=100),
            UsageStats(total_requests=2, total_tokens=50),
        )
        assert merged.total_requests == 5
        assert merged.total_tokens == 150

    def test_daily_usage_merges_key_wise(self) -> None:
        merged = merge_usage(
            UsageStats(daily_usage={"2024-01-01": 10}),
            UsageStats(daily_usage={"2024-01-01": 5, "2024-01-02": 1}),
        )
        assert merged.daily_usage == {"2024-01-01": 15, "2024-01-02": 1}

    def test_most_recent_last_request_wins(self) -> None:
        earlier = datetime(2024, 1, 1, 9, 0)
        later = datetime(2024, 1, 2, 9, 0)
        merged = merge_usage(
            UsageStats(last_request=later), UsageStats(last_request=earlier)
        )
        assert merged.last_request == later
        assert merge_usage(UsageStats(), UsageStats()).last_request is None

    def test_merge_is_commutative(self) -> None:
        left = UsageStats(total_requests=1, total_tokens=7, model_usage={"a": 7}, total_cost=0.5)
        right = UsageStats(total_requests=4, total_tokens=9, model_usage={"b": 9})
        assert merge_usage(left, right) == merge_usage(right, left)

    def test_aggregate_does_not_mutate_inputs(self) -> None:
        first = UsageStats(total_requests=1, daily_usage={"2024-01-01": 1})
        second = UsageStats(total_requests=1, daily_usage={"2024-01-01": 1})

        total = aggregate_usage([first, second])

        assert total.total_requests == 2
        assert first.daily_usage == {"2024-01-01": 1}

    def test_aggregate_empty(self) -> None:
        assert aggregate_usage([]) == UsageStats()


@pytest.mark.unit
class TestUsageLedger:
    """Test the persisted usage hash."""

    @pytest.mark.asyncio
    async def test_record_and_read(self, store: InMemoryStore) -> None:
        ledger = UsageLedger(store, ttl_seconds=3600)
        when = datetime(2024, 1, 1, 10, 0)
        for tokens in (10, 5):
            await ledger.record(
                "gemini",
                LLMResponse(
                    text="x",
                    tokens_used=tokens,
                    provider_id="gemini",
                    timestamp=when,
                    metadata={"model": "gemini-1.5-flash-latest"},
                ),
            )

        stats = await ledger.read("gemini")

        assert stats.total_requests == 2
        assert stats.total_tokens == 15
        assert stats.daily_usage == {"2024-01-01": 15}
        assert stats.model_usage == {"gemini-1.5-flash-latest": 15}
        assert store.ttl("usage:gemini") == pytest.approx(3600, abs=1)

    @pytest.mark.asyncio
    async def test_store_failure_is_swallowed(self, store: InMemoryStore) -> None:
        failing = AsyncMock(side_effect=StoreError("down"))
        store.hash_increment = failing  # type: ignore[method-assign]
        store.hash_get_all = failing  # type: ignore[method-assign]
        ledger = UsageLedger(store)

        await ledger.record("ollama", LLMResponse(text="x", tokens_used=3, provider_id="ollama"))
        assert await ledger.read("ollama") == UsageStats()


@pytest.mark.unit
class TestHealthCollection:
    """Test health aggregation helpers."""

    @pytest.mark.asyncio
    async def test_collect_health_survives_failing_check(
        self, make_provider: Callable[..., Any]
    ) -> None:
        broken = make_provider("broken")
        broken.health = AsyncMock(side_effect=RuntimeError("probe crashed"))
        registry = ProviderRegistry([make_provider("fine"), broken])

        report = await collect_health(registry)

        assert report["fine"].status == HealthStatus.HEALTHY
        assert report["broken"].status == HealthStatus.UNKNOWN
        assert "probe crashed" in report["broken"].message
        assert summarize_health(report) == {"healthy": 1, "unknown": 1}

    @pytest.mark.asyncio
    async def test_provider_health_unknown_name(self) -> None:
        health = await provider_health(ProviderRegistry(), "missing")
        assert health.status == HealthStatus.UNKNOWN

    @pytest.mark.asyncio
    async def test_health_unknown_when_counter_unreadable(
        self, store: InMemoryStore, make_provider: Callable[..., Any]
    ) -> None:
        provider = make_provider("gemini")
        store.get = AsyncMock(side_effect=StoreError("down"))  # type: ignore[method-assign]

        health = await provider.health()
        assert health.status == HealthStatus.UNKNOWN
