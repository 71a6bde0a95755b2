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

"""Google Gemini LLM provider implementation.

Implements the BaseLLMProvider interface for Google's Gemini API.
Uses REST API via aiohttp for lightweight, async operation.

Supported models:
- gemini-1.5-flash-latest (default, fast and capable)
- gemini-1.5-pro-latest (most capable)
- gemini-1.0-pro
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import aiohttp

from ..store import SharedStore
from .base import (
    BaseLLMProvider,
    ProviderAPIError,
    ProviderTimeoutError,
    ProviderUnavailable,
    RequestBuildError,
)
from .models import CompletionOptions, LLMResponse, ProviderType
from .multi_provider.config import RetryConfig
from .prompts import STANDARD_STYLE

logger = logging.getLogger(__name__)

# Gemini API base URL
GEMINI_API_BASE = "https://generativelanguage.googleapis.com"
GEMINI_API_VERSION = "v1beta"

SUPPORTED_MODELS = [
    "gemini-1.5-flash-latest",
    "gemini-1.5-pro-latest",
    "gemini-1.0-pro",
]


class GeminiProvider(BaseLLMProvider):
    """Google Gemini LLM provider implementation.

    Available when enabled in configuration and an API key is present; no
    network probe is made. Transient failures (HTTP 429, HTTP 5xx, timeouts)
    are retried with exponential backoff up to ``max_retries`` attempts.

    Example:
        >>> provider = GeminiProvider(store, api_key="your-api-key")
        >>> response = await provider.complete("Summarize: ...")
        >>> response.metadata["model"]
        'gemini-1.5-flash-latest'
    """

    provider_name = "gemini"
    provider_type = ProviderType.CLOUD_API
    failure_threshold = 5
    analysis_max_tokens = 1000
    analysis_temperature = 0.1
    analysis_style = STANDARD_STYLE

    # Pricing per 1M tokens (input, output)
    PRICING_PER_1M: dict[str, tuple[float, float]] = {
        "gemini-1.5-flash": (0.075, 0.30),
        "gemini-1.5-pro": (1.25, 5.00),
        "gemini-1.0-pro": (0.50, 1.50),
        "gemini-2.0-flash": (0.10, 0.40),
    }

    def __init__(
        self,
        store: SharedStore,
        api_key: str | None = None,
        model: str = "gemini-1.5-flash-latest",
        base_url: str = GEMINI_API_BASE,
        enabled: bool = True,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        **kwargs: Any,
    ) -> None:
        """Initialize Gemini provider.

        Args:
            store: Shared store for failure counters
            api_key: Google AI API key (from https://aistudio.google.com/)
            model: Default model name
            base_url: API root URL
            enabled: Configuration switch
            timeout: Request timeout in seconds
            max_retries: Attempts for transient failures (at least 1)
            retry_delay: Initial backoff delay in seconds
            **kwargs: Passed to BaseLLMProvider (name, rate_limiter, requests_per_minute)
        """
        super().__init__(store, timeout=timeout, **kwargs)
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.enabled = enabled
        self.max_retries = max(1, max_retries)
        self._retry = RetryConfig(max_attempts=self.max_retries, initial_delay=retry_delay)

        logger.info(
            f"Gemini provider initialized (base URL: {self.base_url}, enabled: {enabled}, "
            f"has API key: {bool(api_key and api_key.strip())})"
        )

    def _session_headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-goog-api-key": self.api_key or "",
        }

    async def is_available(self) -> bool:
        return bool(self.enabled and self.api_key and self.api_key.strip())

    async def supported_models(self) -> list[str]:
        return list(SUPPORTED_MODELS)

    def _build_request_body(self, prompt: str, options: CompletionOptions) -> dict[str, Any]:
        """Build request body for Gemini API.

        Args:
            prompt: User prompt
            options: Completion options

        Returns:
            Request body dictionary

        Raises:
            RequestBuildError: If the prompt is empty
        """
        if not prompt or not prompt.strip():
            raise RequestBuildError("Prompt must not be empty", provider=self.name)
        return {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": options.temperature,
                "maxOutputTokens": options.max_tokens,
            },
        }

    def estimate_cost(self, model: str, input_tokens: int, output_tokens: int) -> float:
        """Estimate request cost in USD from the price table (0.0 for unknown models)."""
        pricing = self.PRICING_PER_1M.get(model.removesuffix("-latest"))
        if pricing is None:
            return 0.0
        cost = (input_tokens / 1_000_000) * pricing[0] + (output_tokens / 1_000_000) * pricing[1]
        return round(cost, 8)

    async def complete(
        self,
        prompt: str,
        options: CompletionOptions | None = None,
    ) -> LLMResponse:
        """Generate a single completion from Gemini.

        Args:
            prompt: The prompt to send
            options: Completion options (model override honored)

        Returns:
            LLMResponse with text, total tokens and timing metadata

        Raises:
            ProviderUnavailable: If disabled or no API key is configured
            RequestBuildError: If the request cannot be built
            ProviderAPIError: On HTTP or transport failure after retries
        """
        options = options or CompletionOptions()
        if not await self.is_available():
            raise ProviderUnavailable("Gemini provider not properly configured", provider=self.name)

        model = options.model or self.model
        body = self._build_request_body(prompt, options)
        url = f"{self.base_url}/{GEMINI_API_VERSION}/models/{model}:generateContent"

        last_error: ProviderAPIError | None = None
        for attempt in range(self.max_retries):
            try:
                return await self._generate(url, body, model)
            except ProviderAPIError as e:
                last_error = e
                retryable = isinstance(e, ProviderTimeoutError) or self._retry.is_retryable_status(
                    e.status_code
                )
                if not retryable or attempt == self.max_retries - 1:
                    break
                delay = self._retry.get_delay(attempt)
                logger.warning(f"Gemini request failed ({e}), retrying in {delay:.1f}s")
                await asyncio.sleep(delay)

        assert last_error is not None
        await self.record_failure()
        logger.error(f"Gemini completion failed: {last_error}")
        raise last_error

    async def _generate(self, url: str, body: dict[str, Any], model: str) -> LLMResponse:
        session = await self._get_session()
        start = time.monotonic()

        try:
            async with session.post(url, json=body) as response:
                if response.status in (401, 403):
                    raise ProviderAPIError(
                        "Gemini authentication failed: Invalid API key",
                        provider=self.name,
                        status_code=response.status,
                    )
                if response.status >= 400:
                    error_text = await response.text()
                    raise ProviderAPIError(
                        f"Gemini API error ({response.status}): {error_text}",
                        provider=self.name,
                        status_code=response.status,
                    )

                data = await self._read_json(response)

        except TimeoutError as e:
            raise ProviderTimeoutError(
                f"Gemini request timed out: {e}", provider=self.name
            ) from e
        except aiohttp.ClientError as e:
            raise ProviderAPIError(f"Gemini connection error: {e}", provider=self.name) from e

        elapsed_ms = int((time.monotonic() - start) * 1000)
        try:
            return self._parse_response(data, model, elapsed_ms)
        except (AttributeError, TypeError, ValueError) as e:
            raise ProviderAPIError(
                f"Gemini returned a malformed response: {e}", provider=self.name
            ) from e

    def _parse_response(self, data: dict[str, Any], model: str, elapsed_ms: int) -> LLMResponse:
        candidates = data.get("candidates") or []
        if not candidates:
            feedback = data.get("promptFeedback") or {}
            if feedback.get("blockReason"):
                raise ProviderAPIError(
                    f"Gemini blocked request: {feedback['blockReason']}", provider=self.name
                )
            raise ProviderAPIError("Gemini returned no candidates", provider=self.name)

        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts)

        usage = data.get("usageMetadata") or {}
        input_tokens = int(usage.get("promptTokenCount", 0))
        output_tokens = int(usage.get("candidatesTokenCount", 0))
        total_tokens = int(usage.get("totalTokenCount", input_tokens + output_tokens))

        return LLMResponse(
            text=text,
            tokens_used=total_tokens,
            provider_id=self.name,
            metadata={
                "response_time_ms": elapsed_ms,
                "model": model,
                "cost_usd": self.estimate_cost(model, input_tokens, output_tokens),
            },
        )
