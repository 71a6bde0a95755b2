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

"""Shared pytest fixtures for llmswitch tests.

Provides an in-memory shared store and a scriptable fake provider.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from llmswitch.llm.base import BaseLLMProvider
from llmswitch.llm.models import CompletionOptions, LLMResponse, ProviderType
from llmswitch.store import InMemoryStore, SharedStore
from llmswitch.utils.config import reset_settings

# ============================================================================
# Fake Provider
# ============================================================================


class FakeProvider(BaseLLMProvider):
    """Provider whose availability and replies are scripted by the test.

    ``outcomes`` is consumed one item per ``complete`` call: strings become
    response texts, exceptions are raised (after counting a failure). When
    the queue is empty the provider answers ``"{name} reply"``.
    """

    def __init__(
        self,
        store: SharedStore,
        name: str = "fake",
        available: bool = True,
        outcomes: list[str | Exception] | None = None,
        tokens: int = 10,
        provider_type: ProviderType = ProviderType.CLOUD_API,
        **kwargs: Any,
    ) -> None:
        super().__init__(store, name=name, **kwargs)
        self.available = available
        self.outcomes: list[str | Exception] = list(outcomes or [])
        self.tokens = tokens
        self.provider_type = provider_type
        self.calls: list[tuple[str, CompletionOptions | None]] = []

    async def is_available(self) -> bool:
        return self.available

    async def complete(
        self,
        prompt: str,
        options: CompletionOptions | None = None,
    ) -> LLMResponse:
        self.calls.append((prompt, options))
        outcome = self.outcomes.pop(0) if self.outcomes else f"{self.name} reply"
        if isinstance(outcome, Exception):
            await self.record_failure()
            raise outcome
        return LLMResponse(
            text=outcome,
            tokens_used=self.tokens,
            provider_id=self.name,
            metadata={"model": f"{self.name}-model"},
        )

    async def supported_models(self) -> list[str]:
        return [f"{self.name}-model"]


# ============================================================================
# Clock
# ============================================================================


class WallClock:
    """Manually advanced wall clock for rate-limit windows."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def store() -> InMemoryStore:
    """Provide an empty in-memory shared store."""
    return InMemoryStore()


@pytest.fixture
def make_provider(store: InMemoryStore) -> Callable[..., FakeProvider]:
    """Factory for FakeProvider instances sharing the ``store`` fixture.

    Example:
        def test_something(make_provider):
            gemini = make_provider("gemini", available=False)
    """

    def _make(name: str = "fake", **kwargs: Any) -> FakeProvider:
        return FakeProvider(store, name=name, **kwargs)

    return _make


@pytest.fixture
def clock() -> WallClock:
    """Provide a clock fixed at 12:00:15 UTC, 45 seconds before the next minute."""
    return WallClock(datetime(2025, 1, 1, 12, 0, 15, tzinfo=timezone.utc))


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    """Isolate tests from the developer's environment and cached settings."""
    monkeypatch.setenv("LLMSWITCH_STORE_BACKEND", "memory")
    reset_settings()


# ============================================================================
# Pytest Configuration Hooks
# ============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
