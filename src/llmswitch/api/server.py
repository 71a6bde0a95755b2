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

"""FastAPI server exposing the LLM orchestrator.

Provides REST endpoints under ``/api/v1/llm`` for completions, structured
analysis, provider management, usage, health and connectivity tests.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from llmswitch import __version__
from llmswitch.llm.base import (
    AllProvidersFailed,
    LLMError,
    NoProviderAvailable,
    ProviderAPIError,
    ProviderUnavailable,
    RateLimitExceeded,
    RequestBuildError,
)
from llmswitch.llm.models import (
    AnalysisSchema,
    CompletionOptions,
    FieldDefinition,
    LLMResponse,
    ProviderHealth,
    ProviderInfo,
    ProviderTestResult,
    StructuredResponse,
    UsageStats,
)
from llmswitch.llm.multi_provider import (
    LLMOrchestrator,
    OrchestratorConfig,
    build_registry,
    create_store,
)
from llmswitch.utils.config import get_settings

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1/llm"


# Request/Response models
class CompletionRequest(BaseModel):
    """Request model for a text completion."""

    prompt: str = Field(..., description="Prompt to complete", min_length=1)
    max_tokens: int | None = Field(default=None, description="Maximum tokens", ge=1, le=4000)
    temperature: float | None = Field(default=None, description="Temperature", ge=0.0, le=2.0)
    model: str | None = Field(default=None, description="Model override")


class AnalysisRequest(BaseModel):
    """Request model for structured document analysis."""

    text: str = Field(..., description="Document text", min_length=1)
    document_type: str = Field(default="general", description="Document classifier")
    fields: dict[str, FieldDefinition] = Field(
        default_factory=dict, description="Fields to extract"
    )
    instructions: str | None = Field(default=None, description="Additional instructions")


class ActivateResponse(BaseModel):
    """Response model after switching the active provider."""

    active_provider: str
    message: str


class ModelsResponse(BaseModel):
    """Models served by a provider."""

    provider: str | None
    models: list[str]


def _error_status(error: LLMError) -> int:
    if isinstance(error, RateLimitExceeded):
        return 429
    if isinstance(error, (ProviderUnavailable, NoProviderAvailable)):
        return 503
    if isinstance(error, RequestBuildError):
        return 400
    if isinstance(error, (AllProvidersFailed, ProviderAPIError)):
        return 502
    return 500


def _to_http_exception(error: LLMError, status_code: int | None = None) -> HTTPException:
    """Convert an LLM error into an HTTPException with a structured detail."""
    headers = None
    if isinstance(error, RateLimitExceeded):
        headers = {"Retry-After": str(error.retry_after_seconds)}
    detail: dict[str, Any] = {
        "error": error.error_code,
        "message": error.message,
        "provider": error.provider,
    }
    if isinstance(error, AllProvidersFailed):
        detail["attempts"] = [
            {"provider": name, "error": str(cause)} for name, cause in error.attempts
        ]
    return HTTPException(
        status_code=status_code or _error_status(error), detail=detail, headers=headers
    )


def _get_orchestrator(request: Request) -> LLMOrchestrator:
    orchestrator: LLMOrchestrator | None = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Service temporarily unavailable")
    return orchestrator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build the orchestrator from settings unless one was injected."""
    owned = app.state.orchestrator is None
    if owned:
        logger.info("Initializing LLM orchestrator...")
        settings = get_settings()
        store = create_store(settings)
        registry = build_registry(settings, store)
        app.state.orchestrator = LLMOrchestrator(
            registry, store, OrchestratorConfig.from_settings(settings)
        )
        await app.state.orchestrator.initialize()

    logger.info("llmswitch API ready")

    yield

    if owned and app.state.orchestrator is not None:
        logger.info("Shutting down llmswitch API...")
        await app.state.orchestrator.close()
        app.state.orchestrator = None


def create_app(orchestrator: LLMOrchestrator | None = None) -> FastAPI:
    """Create FastAPI application.

    Args:
        orchestrator: Pre-built orchestrator (built from settings at startup if None)

    Returns:
        Configured FastAPI app
    """
    app = FastAPI(
        title="llmswitch",
        description="LLM provider orchestration API",
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator

    _configure_middleware(app)
    _register_routes(app)

    return app


def _configure_middleware(app: FastAPI) -> None:
    """Configure CORS middleware."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def _register_routes(app: FastAPI) -> None:
    """Register all API routes."""

    @app.post(f"{API_PREFIX}/complete", response_model=LLMResponse)
    async def complete(body: CompletionRequest, request: Request) -> LLMResponse:
        """Generate a completion with the active provider."""
        return await _handle_complete(_get_orchestrator(request), body)

    @app.post(f"{API_PREFIX}/analyze", response_model=StructuredResponse)
    async def analyze(body: AnalysisRequest, request: Request) -> StructuredResponse:
        """Extract structured fields from a document."""
        return await _handle_analyze(_get_orchestrator(request), body)

    @app.get(f"{API_PREFIX}/providers", response_model=list[ProviderInfo])
    async def list_providers(request: Request) -> list[ProviderInfo]:
        """List registered providers with availability and health."""
        return await _get_orchestrator(request).provider_info()

    @app.get(f"{API_PREFIX}/providers/active", response_model=ProviderInfo)
    async def active_provider(request: Request) -> ProviderInfo:
        """Get the active provider."""
        return await _handle_active_provider(_get_orchestrator(request))

    @app.post(f"{API_PREFIX}/providers/{{name}}/activate", response_model=ActivateResponse)
    async def activate_provider(name: str, request: Request) -> ActivateResponse:
        """Switch the active provider."""
        orchestrator = _get_orchestrator(request)
        try:
            await orchestrator.activate(name)
        except ProviderUnavailable as e:
            raise _to_http_exception(e, status_code=400) from None
        return ActivateResponse(
            active_provider=name, message=f"Successfully switched to provider: {name}"
        )

    @app.get(f"{API_PREFIX}/usage", response_model=UsageStats)
    def usage(request: Request) -> UsageStats:
        """Aggregated usage across providers (this process)."""
        return _get_orchestrator(request).aggregated_usage()

    @app.get(f"{API_PREFIX}/usage/{{name}}", response_model=UsageStats)
    async def provider_usage(name: str, request: Request) -> UsageStats:
        """Usage of one provider from the shared ledger (all processes)."""
        return await _get_orchestrator(request).persisted_usage(name)

    @app.get(f"{API_PREFIX}/health", response_model=dict[str, ProviderHealth])
    async def health(request: Request) -> dict[str, ProviderHealth]:
        """Health of every provider."""
        return await _get_orchestrator(request).all_provider_health()

    @app.get(f"{API_PREFIX}/health/{{name}}", response_model=ProviderHealth)
    async def provider_health(name: str, request: Request) -> ProviderHealth:
        """Health of one provider."""
        return await _get_orchestrator(request).provider_health(name)

    @app.post(f"{API_PREFIX}/test", response_model=ProviderTestResult)
    async def test_provider(
        request: Request,
        provider_name: str | None = Query(default=None, description="Provider to test"),
    ) -> ProviderTestResult:
        """Test connectivity of one provider or of the active one."""
        orchestrator = _get_orchestrator(request)
        if provider_name:
            return await orchestrator.test_provider(provider_name)
        return await orchestrator.test_active_provider()

    @app.get(f"{API_PREFIX}/models", response_model=ModelsResponse)
    async def models(
        request: Request,
        provider_name: str | None = Query(default=None, description="Provider to query"),
    ) -> ModelsResponse:
        """List models of a provider or of the active one."""
        orchestrator = _get_orchestrator(request)
        try:
            model_names = await orchestrator.supported_models(provider_name)
        except LLMError as e:
            raise _to_http_exception(e) from None
        return ModelsResponse(provider=provider_name, models=model_names)


async def _handle_complete(orchestrator: LLMOrchestrator, body: CompletionRequest) -> LLMResponse:
    """Handle a completion request."""
    settings = get_settings()
    options = CompletionOptions(
        max_tokens=body.max_tokens or settings.default_max_tokens,
        temperature=(
            body.temperature if body.temperature is not None else settings.default_temperature
        ),
        model=body.model,
    )
    try:
        return await orchestrator.complete(body.prompt, options)
    except LLMError as e:
        logger.error(f"Completion request failed: {e}")
        raise _to_http_exception(e) from None


async def _handle_analyze(
    orchestrator: LLMOrchestrator, body: AnalysisRequest
) -> StructuredResponse:
    """Handle an analysis request."""
    schema = AnalysisSchema(
        document_type=body.document_type,
        fields=body.fields,
        instructions=body.instructions,
    )
    try:
        return await orchestrator.analyze(body.text, schema)
    except LLMError as e:
        logger.error(f"Analysis request failed: {e}")
        raise _to_http_exception(e) from None


async def _handle_active_provider(orchestrator: LLMOrchestrator) -> ProviderInfo:
    """Describe the active provider."""
    try:
        provider = await orchestrator.active_provider()
    except LLMError as e:
        raise _to_http_exception(e) from None
    return ProviderInfo(
        name=provider.name,
        type=provider.provider_type,
        available=True,
        active=True,
        health=await provider.health(),
    )


def run_server(host: str = "127.0.0.1", port: int = 8000, reload: bool = False) -> None:
    """Run the API server.

    Args:
        host: Host to bind to (default: 127.0.0.1).
              Use 0.0.0.0 to bind to all interfaces.
        port: Port to listen on
        reload: Enable auto-reload for development
    """
    import uvicorn

    if host == "0.0.0.0":  # nosec B104
        logger.warning(
            "Binding to 0.0.0.0 exposes the server to all network interfaces. "
            "Use 127.0.0.1 for local-only access."
        )

    logger.info(f"Starting llmswitch API on http://{host}:{port}")

    uvicorn.run(
        "llmswitch.api.server:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )
