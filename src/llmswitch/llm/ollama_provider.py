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

"""Ollama LLM provider implementation for local model execution.

Talks to an Ollama runtime over its REST API via aiohttp. Availability is a
live probe of ``GET /api/tags``; completions use ``POST /api/generate`` in
non-streaming mode. Models can be pulled on demand.
"""

from __future__ import annotations

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
from .models import CompletionOptions, HealthStatus, LLMResponse, ProviderHealth, ProviderType
from .prompts import STRICT_JSON_STYLE

logger = logging.getLogger(__name__)

OLLAMA_DEFAULT_URL = "http://ollama:11434"

# Rough estimate used when the runtime does not report eval_count
CHARS_PER_TOKEN = 4


class OllamaProvider(BaseLLMProvider):
    """Ollama local-runtime provider.

    Example:
        >>> provider = OllamaProvider(store, base_url="http://localhost:11434")
        >>> await provider.ensure_model_available("llama3.1")
        >>> response = await provider.complete("Summarize: ...")
    """

    provider_name = "ollama"
    provider_type = ProviderType.LOCAL_RUNTIME
    failure_threshold = 3
    analysis_max_tokens = 1500
    analysis_temperature = 0.2
    analysis_style = STRICT_JSON_STYLE

    def __init__(
        self,
        store: SharedStore,
        base_url: str = OLLAMA_DEFAULT_URL,
        default_model: str = "llama3.1",
        enabled: bool = True,
        auto_model_pull: bool = True,
        timeout: float = 30.0,
        **kwargs: Any,
    ) -> None:
        """Initialize Ollama provider.

        Args:
            store: Shared store for failure counters
            base_url: Ollama runtime URL
            default_model: Model used when a request has no override
            enabled: Configuration switch
            auto_model_pull: Pull missing models in ensure_model_available
            timeout: Request timeout in seconds
            **kwargs: Passed to BaseLLMProvider (name, rate_limiter, requests_per_minute)
        """
        super().__init__(store, timeout=timeout, **kwargs)
        self.base_url = base_url.rstrip("/")
        self.default_model = default_model
        self.enabled = enabled
        self.auto_model_pull = auto_model_pull

        logger.info(f"Ollama provider initialized with base URL: {self.base_url}")

    async def _fetch_tags(self) -> dict[str, Any]:
        session = await self._get_session()
        async with session.get(f"{self.base_url}/api/tags") as response:
            if response.status >= 400:
                raise ProviderAPIError(
                    f"Ollama tags request failed ({response.status})",
                    provider=self.name,
                    status_code=response.status,
                )
            return await self._read_json(response)

    async def is_available(self) -> bool:
        if not self.enabled:
            return False
        try:
            await self._fetch_tags()
        except (TimeoutError, aiohttp.ClientError, ProviderAPIError) as e:
            logger.debug(f"Ollama connectivity probe failed: {e}")
            return False
        return True

    async def health(self) -> ProviderHealth:
        """Health with probe latency and connection details."""
        start = time.monotonic()
        result = await super().health()
        if result.status == HealthStatus.UNHEALTHY:
            result.message = "Cannot connect to Ollama service"
            return result
        result.response_time_ms = int((time.monotonic() - start) * 1000)
        result.details["base_url"] = self.base_url
        return result

    async def supported_models(self) -> list[str]:
        """Models installed in the runtime (empty list if the runtime cannot be queried)."""
        try:
            data = await self._fetch_tags()
        except (TimeoutError, aiohttp.ClientError, ProviderAPIError) as e:
            logger.warning(f"Could not list Ollama models: {e}")
            return []
        models = data.get("models")
        if not isinstance(models, list):
            return []
        return [
            model["name"] for model in models if isinstance(model, dict) and model.get("name")
        ]

    async def is_model_available(self, model_name: str) -> bool:
        """Check whether ``model_name`` is installed (``name`` matches ``name:latest``)."""
        models = await self.supported_models()
        return model_name in models or f"{model_name}:latest" in models

    async def pull_model(self, model_name: str) -> None:
        """Download a model into the runtime and wait for completion.

        Raises:
            ProviderAPIError: If the pull fails
        """
        session = await self._get_session()
        logger.info(f"Pulling Ollama model '{model_name}'")
        try:
            async with session.post(
                f"{self.base_url}/api/pull",
                json={"name": model_name, "stream": False},
                timeout=aiohttp.ClientTimeout(total=None),
            ) as response:
                if response.status >= 400:
                    error_text = await response.text()
                    raise ProviderAPIError(
                        f"Ollama pull of '{model_name}' failed ({response.status}): {error_text}",
                        provider=self.name,
                        status_code=response.status,
                    )
                await response.read()
        except aiohttp.ClientError as e:
            raise ProviderAPIError(f"Ollama connection error: {e}", provider=self.name) from e

    async def ensure_model_available(self, model_name: str | None = None) -> bool:
        """Make sure a model is installed, pulling it when auto-pull is on.

        Args:
            model_name: Model to check (default model when None)

        Returns:
            True if the model is installed after the call
        """
        model_name = model_name or self.default_model
        if await self.is_model_available(model_name):
            return True
        if not self.auto_model_pull:
            logger.warning(f"Ollama model '{model_name}' not available and auto-pull is off")
            return False
        logger.info(f"Model {model_name} not available, attempting to pull")
        await self.pull_model(model_name)
        return True

    def _build_request_body(
        self, prompt: str, options: CompletionOptions, model: str
    ) -> dict[str, Any]:
        if not prompt or not prompt.strip():
            raise RequestBuildError("Prompt must not be empty", provider=self.name)
        return {
            "model": model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": options.temperature,
                "num_predict": options.max_tokens,
            },
        }

    async def complete(
        self,
        prompt: str,
        options: CompletionOptions | None = None,
    ) -> LLMResponse:
        """Generate a completion with the local runtime.

        Raises:
            ProviderUnavailable: If disabled or the runtime does not answer
            RequestBuildError: If the request cannot be built
            ProviderAPIError: On HTTP or transport failure
        """
        options = options or CompletionOptions()
        if not await self.is_available():
            raise ProviderUnavailable("Ollama service not available", provider=self.name)

        model = options.model or self.default_model
        body = self._build_request_body(prompt, options, model)

        try:
            return await self._generate(body, model)
        except ProviderAPIError as e:
            logger.error(f"Ollama completion failed: {e}")
            await self.record_failure()
            raise

    async def _generate(self, body: dict[str, Any], model: str) -> LLMResponse:
        session = await self._get_session()
        start = time.monotonic()

        try:
            async with session.post(f"{self.base_url}/api/generate", json=body) as response:
                if response.status >= 400:
                    error_text = await response.text()
                    raise ProviderAPIError(
                        f"Ollama API error ({response.status}): {error_text}",
                        provider=self.name,
                        status_code=response.status,
                    )
                data = await self._read_json(response)
        except TimeoutError as e:
            raise ProviderTimeoutError(
                f"Ollama request timed out: {e}", provider=self.name
            ) from e
        except aiohttp.ClientError as e:
            raise ProviderAPIError(f"Ollama connection error: {e}", provider=self.name) from e

        elapsed_ms = int((time.monotonic() - start) * 1000)
        text = data.get("response") or ""
        eval_count = data.get("eval_count")
        if not isinstance(text, str):
            raise ProviderAPIError(
                f"Ollama returned a malformed response: {type(text).__name__}", provider=self.name
            )
        try:
            tokens = int(eval_count) if eval_count is not None else len(text) // CHARS_PER_TOKEN
        except (TypeError, ValueError) as e:
            raise ProviderAPIError(
                f"Ollama returned a malformed token count: {e}", provider=self.name
            ) from e

        return LLMResponse(
            text=text,
            tokens_used=tokens,
            provider_id=self.name,
            metadata={
                "response_time_ms": elapsed_ms,
                "model": model,
                "eval_duration": data.get("eval_duration"),
                "total_duration": data.get("total_duration"),
            },
        )
