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

"""LLM integration layer for llmswitch.

Provides the provider capability contract, the Gemini (cloud API) and
Ollama (local runtime) adapters, and the shared request/response models.
"""

from .base import (
    AllProvidersFailed,
    BaseLLMProvider,
    LLMError,
    NoProviderAvailable,
    ProviderAPIError,
    ProviderTimeoutError,
    ProviderUnavailable,
    RateLimitExceeded,
    RequestBuildError,
)
from .gemini_provider import GeminiProvider
from .models import (
    AnalysisSchema,
    CompletionOptions,
    FieldDefinition,
    HealthStatus,
    LLMResponse,
    ProviderHealth,
    ProviderInfo,
    ProviderTestResult,
    ProviderType,
    StructuredResponse,
    UsageStats,
)
from .ollama_provider import OllamaProvider

__all__ = [
    "BaseLLMProvider",
    "GeminiProvider",
    "OllamaProvider",
    # Errors
    "LLMError",
    "ProviderUnavailable",
    "RateLimitExceeded",
    "RequestBuildError",
    "ProviderAPIError",
    "ProviderTimeoutError",
    "NoProviderAvailable",
    "AllProvidersFailed",
    # Models
    "AnalysisSchema",
    "CompletionOptions",
    "FieldDefinition",
    "HealthStatus",
    "LLMResponse",
    "ProviderHealth",
    "ProviderInfo",
    "ProviderTestResult",
    "ProviderType",
    "StructuredResponse",
    "UsageStats",
]
