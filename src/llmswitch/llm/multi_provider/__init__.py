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

"""Multi-provider orchestration with a shared active provider.

This module routes requests to one globally agreed provider, enforces
per-provider request ceilings and retries once against a fallback provider
when the active one fails.

Key components:
- FixedWindowRateLimiter: Requests-per-minute ceiling shared through the store
- ProviderRegistry: Ordered, name-keyed collection of enabled adapters
- ActiveProviderSelector: Resolves and persists the active provider
- LLMOrchestrator: Serves complete/analyze requests with one-step failover
- Aggregators: Usage folding, persisted usage ledger and health collection

Example:
    >>> from llmswitch.llm.multi_provider import LLMOrchestrator, build_registry, create_store
    >>> from llmswitch.utils.config import get_settings
    >>>
    >>> settings = get_settings()
    >>> store = create_store(settings)
    >>> orchestrator = LLMOrchestrator(build_registry(settings, store), store)
    >>> await orchestrator.initialize()
    >>> response = await orchestrator.complete("Summarize: ...")
"""

from .aggregators import (
    UsageLedger,
    aggregate_usage,
    collect_health,
    merge_usage,
    provider_health,
)
from .config import (
    ACTIVE_PROVIDER_KEY,
    FALLBACK_PARTNERS,
    OrchestratorConfig,
    ProviderConfig,
    RetryConfig,
    fallback_partner,
)
from .orchestrator import LLMOrchestrator
from .rate_limiter import FixedWindowRateLimiter, RateLimitMetrics
from .registry import ProviderRegistry, build_registry, create_store
from .selector import ActiveProviderSelector

__all__ = [
    # Rate limiting
    "FixedWindowRateLimiter",
    "RateLimitMetrics",
    # Configuration
    "ACTIVE_PROVIDER_KEY",
    "FALLBACK_PARTNERS",
    "OrchestratorConfig",
    "ProviderConfig",
    "RetryConfig",
    "fallback_partner",
    # Registry and selection
    "ProviderRegistry",
    "ActiveProviderSelector",
    "build_registry",
    "create_store",
    # Orchestrator
    "LLMOrchestrator",
    # Aggregators
    "UsageLedger",
    "aggregate_usage",
    "collect_health",
    "merge_usage",
    "provider_health",
]
