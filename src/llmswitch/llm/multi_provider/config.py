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

"""Configuration models for multi-provider orchestration.

Defines per-provider settings, orchestrator behavior, retry backoff and the
pairwise fallback table:
1. gemini (cloud API) falls back to ollama
2. ollama (local runtime) falls back to gemini
Any other provider falls back to the first other available provider.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ...utils.config import Settings

# Designated partner of each well-known provider
FALLBACK_PARTNERS: dict[str, str] = {
    "gemini": "ollama",
    "ollama": "gemini",
}

ACTIVE_PROVIDER_KEY = "llm:active_provider"
ACTIVE_PROVIDER_TTL_SECONDS = 7 * 24 * 60 * 60
USAGE_TTL_SECONDS = 30 * 24 * 60 * 60


def fallback_partner(provider_name: str) -> str | None:
    """Get the designated fallback partner of a provider, if it has one."""
    return FALLBACK_PARTNERS.get(provider_name.lower())


@dataclass
class ProviderConfig:
    """Configuration for a single LLM provider.

    Attributes:
        enabled: Whether this provider is constructed at startup
        requests_per_minute: Rate-limit ceiling (None = unlimited)
        timeout: Request timeout in seconds
        max_retries: Attempts made inside the adapter for transient failures
    """

    enabled: bool = True
    requests_per_minute: int | None = None
    timeout: float = 30.0
    max_retries: int = 1


@dataclass
class OrchestratorConfig:
    """Configuration for the orchestrator.

    Attributes:
        default_provider: Provider used when no active pointer is stored
        fallback_enabled: Retry once against a fallback provider on failure
        active_provider_ttl: Lifetime of the active pointer in seconds
        usage_ttl: Lifetime of the persisted usage ledger in seconds
    """

    default_provider: str = "ollama"
    fallback_enabled: bool = True
    active_provider_ttl: int = ACTIVE_PROVIDER_TTL_SECONDS
    usage_ttl: int = USAGE_TTL_SECONDS

    @classmethod
    def from_settings(cls, settings: Settings) -> OrchestratorConfig:
        return cls(
            default_provider=settings.default_provider,
            fallback_enabled=settings.fallback_enabled,
        )


@dataclass
class RetryConfig:
    """Configuration for retry behavior.

    Attributes:
        max_attempts: Maximum number of attempts
        initial_delay: Initial delay before first retry (seconds)
        max_delay: Maximum delay between retries (seconds)
        exponential_base: Base for exponential backoff
        jitter: Add random jitter to delays
        retryable_status_codes: HTTP status codes that should trigger retry
    """

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = True
    retryable_status_codes: tuple[int, ...] = field(
        default_factory=lambda: (429, 500, 502, 503, 504)
    )

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for a given attempt number.

        Args:
            attempt: Attempt number (0-indexed)

        Returns:
            Delay in seconds
        """
        delay = min(
            self.initial_delay * (self.exponential_base**attempt),
            self.max_delay,
        )

        if self.jitter:
            # 0.5x to 1.5x of calculated delay
            delay = delay * (0.5 + random.random())  # nosec B311 - not for crypto

        return delay

    def is_retryable_status(self, status_code: int | None) -> bool:
        """Check whether an HTTP status should be retried."""
        if status_code is None:
            return False
        return status_code in self.retryable_status_codes or status_code >= 500


def provider_configs_from_settings(settings: Settings) -> dict[str, ProviderConfig]:
    """Build the per-provider configuration table from application settings.

    Args:
        settings: Application settings

    Returns:
        Mapping of provider name to ProviderConfig, in registry order
    """
    return {
        "gemini": ProviderConfig(
            enabled=settings.gemini_enabled,
            requests_per_minute=settings.gemini_rate_limit_per_minute,
            timeout=settings.gemini_timeout,
            max_retries=settings.gemini_max_retries,
        ),
        "ollama": ProviderConfig(
            enabled=settings.ollama_enabled,
            requests_per_minute=settings.ollama_rate_limit_per_minute,
            timeout=settings.ollama_timeout,
            max_retries=1,
        ),
    }
