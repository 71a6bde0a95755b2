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

"""Unit tests for the LLM orchestrator."""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from llmswitch.llm import GeminiProvider
from llmswitch.llm.base import (
    AllProvidersFailed,
    NoProviderAvailable,
    ProviderAPIError,
    ProviderUnavailable,
    RateLimitExceeded,
    RequestBuildError,
)
from llmswitch.llm.models import AnalysisSchema, HealthStatus
from llmswitch.llm.multi_provider import (
    ACTIVE_PROVIDER_KEY,
    LLMOrchestrator,
    OrchestratorConfig,
    ProviderRegistry,
)
from llmswitch.store import InMemoryStore


def _orchestrator(
    store: InMemoryStore, *providers: Any, fallback_enabled: bool = True
) -> LLMOrchestrator:
    return LLMOrchestrator(
        ProviderRegistry(list(providers)),
        store,
        OrchestratorConfig(default_provider="gemini", fallback_enabled=fallback_enabled),
    )


@pytest.mark.unit
class TestComplete:
    """Test the completion request path."""

    @pytest.mark.asyncio
    async def test_complete_uses_active_provider(
        self, store: InMemoryStore, make_provider: Callable[..., Any]
    ) -> None:
        gemini, ollama = make_provider("gemini"), make_provider("ollama")
        orchestrator = _orchestrator(store, gemini, ollama)

        response = await orchestrator.complete("Hello")

        assert response.text == "gemini reply"
        assert response.provider_id == "gemini"
        assert len(gemini.calls) == 1
        assert ollama.calls == []

    @pytest.mark.asyncio
    async def test_fallback_on_provider_error(
        self, store: InMemoryStore, make_provider: Callable[..., Any]
    ) -> None:
        gemini = make_provider("gemini", outcomes=[ProviderAPIError("boom", status_code=500)])
        ollama = make_provider("ollama", outcomes=["local answer"])
        orchestrator = _orchestrator(store, gemini, ollama)

        response = await orchestrator.complete("Hello")

        assert response.text == "local answer"
        assert response.provider_id == "ollama"
        # Fallback does not move the active pointer
        assert (await orchestrator.active_provider()).name == "gemini"

    @pytest.mark.asyncio
    async def test_fallback_on_unreadable_backend_reply(
        self, store: InMemoryStore, make_provider: Callable[..., Any]
    ) -> None:
        gemini = GeminiProvider(store, api_key="test-key", max_retries=1)
        ollama = make_provider("ollama", outcomes=["local answer"])
        orchestrator = _orchestrator(store, gemini, ollama)

        reply = MagicMock(status=200)
        reply.json = AsyncMock(side_effect=json.JSONDecodeError("Expecting value", "{", 16))
        mock_session = MagicMock()
        mock_session.post = MagicMock(
            return_value=AsyncMock(__aenter__=AsyncMock(return_value=reply))
        )

        with patch.object(gemini, "_get_session", return_value=mock_session):
            response = await orchestrator.complete("Hello")

        assert response.provider_id == "ollama"
        assert response.text == "local answer"
        assert await gemini.recent_failures() == 1

        assert (await orchestrator.active_provider()).name == "gemini"

    @pytest.mark.asyncio
    async def test_both_fail_raises_all_providers_failed(
        self, store: InMemoryStore, make_provider: Callable[..., Any]
    ) -> None:
        first = ProviderAPIError("cloud down")
        second = ProviderAPIError("local down")
        gemini = make_provider("gemini", outcomes=[first])
        ollama = make_provider("ollama", outcomes=[second])
        orchestrator = _orchestrator(store, gemini, ollama)

        with pytest.raises(AllProvidersFailed) as exc_info:
            await orchestrator.complete("Hello")

        assert exc_info.value.attempts == [("gemini", first), ("ollama", second)]
        assert exc_info.value.causes == [first, second]

    @pytest.mark.asyncio
    async def test_unavailable_partner_means_no_fallback(
        self, store: InMemoryStore, make_provider: Callable[..., Any]
    ) -> None:
        error = ProviderAPIError("cloud down")
        gemini = make_provider("gemini", outcomes=[error])
        ollama = make_provider("ollama", available=False)
        orchestrator = _orchestrator(store, gemini, ollama)

        with pytest.raises(AllProvidersFailed) as exc_info:
            await orchestrator.complete("Hello")

        assert exc_info.value.attempts == [("gemini", error)]
        assert ollama.calls == []

    @pytest.mark.asyncio
    async def test_fallback_disabled_reraises(
        self, store: InMemoryStore, make_provider: Callable[..., Any]
    ) -> None:
        gemini = make_provider("gemini", outcomes=[ProviderAPIError("cloud down")])
        ollama = make_provider("ollama")
        orchestrator = _orchestrator(store, gemini, ollama, fallback_enabled=False)

        with pytest.raises(ProviderAPIError, match="cloud down"):
            await orchestrator.complete("Hello")
        assert ollama.calls == []

    @pytest.mark.asyncio
    async def test_rate_limit_is_not_failed_over(
        self, store: InMemoryStore, make_provider: Callable[..., Any]
    ) -> None:
        gemini = make_provider("gemini", outcomes=[RateLimitExceeded("gemini", 15, 30)])
        ollama = make_provider("ollama")
        orchestrator = _orchestrator(store, gemini, ollama)

        with pytest.raises(RateLimitExceeded):
            await orchestrator.complete("Hello")
        assert ollama.calls == []

    @pytest.mark.asyncio
    async def test_request_build_error_propagates(
        self, store: InMemoryStore, make_provider: Callable[..., Any]
    ) -> None:
        gemini = make_provider("gemini", outcomes=[RequestBuildError("empty prompt")])
        orchestrator = _orchestrator(store, gemini, make_provider("ollama"))

        with pytest.raises(RequestBuildError):
            await orchestrator.complete("")

    @pytest.mark.asyncio
    async def test_no_provider_available(
        self, store: InMemoryStore, make_provider: Callable[..., Any]
    ) -> None:
        orchestrator = _orchestrator(store, make_provider("gemini", available=False))
        with pytest.raises(NoProviderAvailable):
            await orchestrator.complete("Hello")

    @pytest.mark.asyncio
    async def test_unpaired_provider_falls_back_to_first_available(
        self, store: InMemoryStore, make_provider: Callable[..., Any]
    ) -> None:
        custom = make_provider("custom", outcomes=[ProviderUnavailable("gone")])
        backup = make_provider("backup")
        orchestrator = _orchestrator(store, custom, backup)
        await orchestrator.activate("custom")

        response = await orchestrator.complete("Hello")
        assert response.provider_id == "backup"

    @pytest.mark.asyncio
    async def test_usage_is_recorded_for_serving_provider(
        self, store: InMemoryStore, make_provider: Callable[..., Any]
    ) -> None:
        gemini = make_provider("gemini", outcomes=[ProviderAPIError("down")])
        ollama = make_provider("ollama", tokens=25)
        orchestrator = _orchestrator(store, gemini, ollama)

        await orchestrator.complete("Hello")

        assert gemini.usage_stats().total_requests == 0
        assert ollama.usage_stats().total_requests == 1
        assert ollama.usage_stats().total_tokens == 25
        persisted = await orchestrator.persisted_usage("ollama")
        assert persisted.total_requests == 1
        assert persisted.model_usage == {"ollama-model": 25}

    @pytest.mark.asyncio
    async def test_failure_is_counted(
        self, store: InMemoryStore, make_provider: Callable[..., Any]
    ) -> None:
        gemini = make_provider("gemini", outcomes=[ProviderAPIError("down")])
        orchestrator = _orchestrator(store, gemini, make_provider("ollama"))

        await orchestrator.complete("Hello")
        assert await gemini.recent_failures() == 1


@pytest.mark.unit
class TestAnalyze:
    """Test the analysis request path."""

    @pytest.mark.asyncio
    async def test_analyze_returns_raw_response(
        self, store: InMemoryStore, make_provider: Callable[..., Any]
    ) -> None:
        gemini = make_provider("gemini", outcomes=['{"total": 42}'])
        orchestrator = _orchestrator(store, gemini)
        schema = AnalysisSchema(document_type="invoice").add_field("total", "number", True)

        result = await orchestrator.analyze("Total: 42 EUR", schema)

        assert result.data == {"raw_response": '{"total": 42}'}
        assert result.confidence_scores == {"raw_response": 1.0}
        assert result.parsed_json() == {"total": 42}
        prompt, options = gemini.calls[0]
        assert "- total (number) [REQUIRED]" in prompt
        assert options is not None and options.temperature == 0.1

    @pytest.mark.asyncio
    async def test_analyze_falls_back(
        self, store: InMemoryStore, make_provider: Callable[..., Any]
    ) -> None:
        gemini = make_provider("gemini", outcomes=[ProviderAPIError("down")])
        ollama = make_provider("ollama", outcomes=["{}"])
        orchestrator = _orchestrator(store, gemini, ollama)

        result = await orchestrator.analyze("text", AnalysisSchema(document_type="memo"))
        assert result.provider_id == "ollama"


@pytest.mark.unit
class TestProviderManagement:
    """Test activation, info, testing and models."""

    @pytest.mark.asyncio
    async def test_activate_and_active_provider(
        self, store: InMemoryStore, make_provider: Callable[..., Any]
    ) -> None:
        orchestrator = _orchestrator(store, make_provider("gemini"), make_provider("ollama"))
        await orchestrator.activate("ollama")

        assert (await orchestrator.active_provider()).name == "ollama"
        assert await store.get(ACTIVE_PROVIDER_KEY) == "ollama"

    @pytest.mark.asyncio
    async def test_available_providers(
        self, store: InMemoryStore, make_provider: Callable[..., Any]
    ) -> None:
        orchestrator = _orchestrator(
            store, make_provider("gemini", available=False), make_provider("ollama")
        )
        assert [p.name for p in await orchestrator.available_providers()] == ["ollama"]

    @pytest.mark.asyncio
    async def test_provider_info(
        self, store: InMemoryStore, make_provider: Callable[..., Any]
    ) -> None:
        orchestrator = _orchestrator(
            store, make_provider("gemini"), make_provider("ollama", available=False)
        )

        infos = {info.name: info for info in await orchestrator.provider_info()}

        assert infos["gemini"].active is True
        assert infos["gemini"].available is True
        assert infos["ollama"].active is False
        assert infos["ollama"].health is not None
        assert infos["ollama"].health.status == HealthStatus.UNHEALTHY

    @pytest.mark.asyncio
    async def test_test_provider(
        self, store: InMemoryStore, make_provider: Callable[..., Any]
    ) -> None:
        broken = make_provider("ollama", outcomes=[ProviderAPIError("refused")])
        orchestrator = _orchestrator(store, make_provider("gemini"), broken)

        ok = await orchestrator.test_provider("gemini")
        failed = await orchestrator.test_provider("ollama")
        missing = await orchestrator.test_provider("nope")

        assert ok.success is True
        assert failed.success is False and "refused" in failed.message
        assert missing.success is False and "not found" in missing.message

    @pytest.mark.asyncio
    async def test_test_active_provider_without_providers(self, store: InMemoryStore) -> None:
        orchestrator = _orchestrator(store)
        result = await orchestrator.test_active_provider()
        assert result.success is False

    @pytest.mark.asyncio
    async def test_supported_models(
        self, store: InMemoryStore, make_provider: Callable[..., Any]
    ) -> None:
        orchestrator = _orchestrator(store, make_provider("gemini"), make_provider("ollama"))

        assert await orchestrator.supported_models() == ["gemini-model"]
        assert await orchestrator.supported_models("ollama") == ["ollama-model"]
        with pytest.raises(ProviderUnavailable):
            await orchestrator.supported_models("unknown")

    @pytest.mark.asyncio
    async def test_initialize_seeds_pointer_and_prepares_models(
        self, store: InMemoryStore, make_provider: Callable[..., Any]
    ) -> None:
        ollama = make_provider("ollama")
        ollama.ensure_model_available = AsyncMock(return_value=True)
        orchestrator = LLMOrchestrator(ProviderRegistry([ollama]), store)

        await orchestrator.initialize()

        assert await store.get(ACTIVE_PROVIDER_KEY) == "ollama"
        ollama.ensure_model_available.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_initialize_tolerates_pull_failure(
        self, store: InMemoryStore, make_provider: Callable[..., Any]
    ) -> None:
        ollama = make_provider("ollama")
        ollama.ensure_model_available = AsyncMock(side_effect=ProviderAPIError("pull failed"))
        orchestrator = LLMOrchestrator(ProviderRegistry([ollama]), store)

        await orchestrator.initialize()
        assert await store.get(ACTIVE_PROVIDER_KEY) == "ollama"


@pytest.mark.unit
class TestUsageAndHealth:
    """Test aggregated usage and health."""

    @pytest.mark.asyncio
    async def test_aggregated_usage_sums_providers(
        self, store: InMemoryStore, make_provider: Callable[..., Any]
    ) -> None:
        gemini = make_provider("gemini", tokens=30)
        ollama = make_provider("ollama", tokens=20)
        orchestrator = _orchestrator(store, gemini, ollama)

        await orchestrator.complete("a")
        await orchestrator.activate("ollama")
        await orchestrator.complete("b")
        await orchestrator.complete("c")

        usage = orchestrator.aggregated_usage()
        assert usage.total_requests == 3
        assert usage.total_tokens == 70
        assert usage.model_usage == {"gemini-model": 30, "ollama-model": 40}

    @pytest.mark.asyncio
    async def test_health_degraded_above_threshold(
        self, store: InMemoryStore, make_provider: Callable[..., Any]
    ) -> None:
        gemini = make_provider("gemini")
        orchestrator = _orchestrator(store, gemini)

        assert (await orchestrator.provider_health("gemini")).status == HealthStatus.HEALTHY

        for _ in range(6):
            await gemini.record_failure()

        health = await orchestrator.provider_health("gemini")
        assert health.status == HealthStatus.DEGRADED
        assert health.details["recent_failures"] == 6

    @pytest.mark.asyncio
    async def test_health_at_threshold_is_healthy(
        self, store: InMemoryStore, make_provider: Callable[..., Any]
    ) -> None:
        gemini = make_provider("gemini")
        for _ in range(5):
            await gemini.record_failure()

        health = await _orchestrator(store, gemini).provider_health("gemini")
        assert health.status == HealthStatus.HEALTHY

    @pytest.mark.asyncio
    async def test_unavailable_is_unhealthy_regardless_of_failures(
        self, store: InMemoryStore, make_provider: Callable[..., Any]
    ) -> None:
        gemini = make_provider("gemini", available=False)
        for _ in range(6):
            await gemini.record_failure()

        health = await _orchestrator(store, gemini).provider_health("gemini")
        assert health.status == HealthStatus.UNHEALTHY
        assert await gemini.recent_failures() == 6

    @pytest.mark.asyncio
    async def test_all_provider_health(
        self, store: InMemoryStore, make_provider: Callable[..., Any]
    ) -> None:
        orchestrator = _orchestrator(
            store, make_provider("gemini"), make_provider("ollama", available=False)
        )

        report = await orchestrator.all_provider_health()

        assert report["gemini"].status == HealthStatus.HEALTHY
        assert report["ollama"].status == HealthStatus.UNHEALTHY

    @pytest.mark.asyncio
    async def test_get_status(
        self, store: InMemoryStore, make_provider: Callable[..., Any]
    ) -> None:
        orchestrator = _orchestrator(store, make_provider("gemini"))
        status = orchestrator.get_status()

        assert status["config"]["default_provider"] == "gemini"
        assert status["providers"]["gemini"]["usage"]["total_requests"] == 0
