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

"""Data models shared by providers, the orchestrator and the HTTP surface.

This module defines:
- Request options and schemas (CompletionOptions, AnalysisSchema)
- Provider responses (LLMResponse, StructuredResponse)
- Usage and health snapshots (UsageStats, ProviderHealth)
- Provider descriptors (ProviderType, ProviderInfo, ProviderTestResult)
"""

from __future__ import annotations

import json
import re
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

_JSON_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


class ProviderType(str, Enum):
    """Kind of backend a provider talks to."""

    CLOUD_API = "cloud_api"
    LOCAL_RUNTIME = "local_runtime"


class HealthStatus(str, Enum):
    """Point-in-time health classification of a provider."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


class CompletionOptions(BaseModel):
    """Options for a single completion request.

    ``stream`` is accepted for API compatibility but responses are always
    delivered in one piece.
    """

    max_tokens: int = Field(default=1000, ge=1, le=4000, description="Maximum tokens to generate")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0, description="Sampling temperature")
    model: str | None = Field(default=None, description="Model override for this request")
    stream: bool = Field(default=False, description="Reserved, not implemented")

    model_config = ConfigDict(
        json_schema_extra={"example": {"max_tokens": 500, "temperature": 0.2, "model": None}}
    )


class LLMResponse(BaseModel):
    """Text produced by a provider."""

    text: str = Field(..., description="Generated text")
    tokens_used: int = Field(default=0, ge=0, description="Tokens consumed by the request")
    timestamp: datetime = Field(default_factory=datetime.now)
    provider_id: str = Field(..., description="Name of the provider that produced the text")
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def model(self) -> str | None:
        """Model name reported by the provider, if any."""
        value = self.metadata.get("model")
        return str(value) if value is not None else None


class FieldDefinition(BaseModel):
    """Definition of one field to extract from a document."""

    type: str = Field(default="string", description="Expected value type (string, date, number...)")
    required: bool = Field(default=False)
    description: str | None = Field(default=None)


class AnalysisSchema(BaseModel):
    """Caller-built description of what to extract from a document.

    Example:
        >>> schema = AnalysisSchema(document_type="invoice")
        >>> schema.add_field("total", "number", required=True, description="Invoice total")
    """

    document_type: str = Field(..., description="Free-form document classifier")
    fields: dict[str, FieldDefinition] = Field(default_factory=dict)
    instructions: str | None = Field(default=None, description="Additional free-text instructions")

    def add_field(
        self,
        name: str,
        field_type: str = "string",
        required: bool = False,
        description: str | None = None,
    ) -> AnalysisSchema:
        """Add a field definition and return the schema for chaining."""
        self.fields[name] = FieldDefinition(
            type=field_type, required=required, description=description
        )
        return self


class StructuredResponse(BaseModel):
    """Result of a structured analysis request.

    The extracted ``data`` holds the raw model reply under ``raw_response``;
    use :meth:`parsed_json` to decode it when the model answered with JSON.
    """

    data: dict[str, Any] = Field(default_factory=dict)
    confidence_scores: dict[str, float] = Field(default_factory=dict)
    raw_text: str = Field(default="")
    tokens_used: int = Field(default=0, ge=0)
    timestamp: datetime = Field(default_factory=datetime.now)
    provider_id: str = Field(...)
    metadata: dict[str, Any] = Field(default_factory=dict)

    def parsed_json(self) -> dict[str, Any] | None:
        """Decode the raw reply as a JSON object.

        Markdown code fences around the payload are tolerated.

        Returns:
            The decoded object, or None when the reply is not a JSON object
        """
        text = self.raw_text.strip()
        match = _JSON_FENCE.match(text)
        if match:
            text = match.group(1)
        try:
            value = json.loads(text)
        except json.JSONDecodeError:
            return None
        return value if isinstance(value, dict) else None


class UsageStats(BaseModel):
    """Request and token counters for one provider or for all of them.

    Counters only grow; a provider's instance is updated by its own
    request path through :meth:`record`.
    """

    total_requests: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)
    last_request: datetime | None = Field(default=None)
    daily_usage: dict[str, int] = Field(default_factory=dict)
    model_usage: dict[str, int] = Field(default_factory=dict)
    total_cost: float = Field(default=0.0, ge=0.0)

    def record(
        self,
        tokens: int,
        model: str | None = None,
        cost: float = 0.0,
        when: datetime | None = None,
    ) -> None:
        """Account for one completed request."""
        when = when or datetime.now()
        day = when.date().isoformat()
        self.total_requests += 1
        self.total_tokens += tokens
        self.total_cost += cost
        self.daily_usage[day] = self.daily_usage.get(day, 0) + tokens
        if model:
            self.model_usage[model] = self.model_usage.get(model, 0) + tokens
        if self.last_request is None or when > self.last_request:
            self.last_request = when

    @property
    def average_tokens_per_request(self) -> float:
        """Average tokens per request (0.0 when no requests)."""
        if self.total_requests == 0:
            return 0.0
        return self.total_tokens / self.total_requests


class ProviderHealth(BaseModel):
    """Health snapshot, recomputed on every request for it."""

    status: HealthStatus = Field(default=HealthStatus.UNKNOWN)
    message: str = Field(default="")
    last_checked: datetime = Field(default_factory=datetime.now)
    response_time_ms: int = Field(default=-1, description="-1 when unknown")
    details: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def healthy(cls, message: str = "Provider is healthy", **kwargs: Any) -> ProviderHealth:
        return cls(status=HealthStatus.HEALTHY, message=message, **kwargs)

    @classmethod
    def degraded(cls, message: str, **kwargs: Any) -> ProviderHealth:
        return cls(status=HealthStatus.DEGRADED, message=message, **kwargs)

    @classmethod
    def unhealthy(cls, message: str, **kwargs: Any) -> ProviderHealth:
        return cls(status=HealthStatus.UNHEALTHY, message=message, **kwargs)

    @classmethod
    def unknown(cls, message: str, **kwargs: Any) -> ProviderHealth:
        return cls(status=HealthStatus.UNKNOWN, message=message, **kwargs)

    @property
    def is_healthy(self) -> bool:
        return self.status == HealthStatus.HEALTHY


class ProviderInfo(BaseModel):
    """Descriptor of a registered provider, as listed to callers."""

    name: str
    type: ProviderType
    available: bool
    active: bool = False
    health: ProviderHealth | None = None


class ProviderTestResult(BaseModel):
    """Outcome of a connectivity test against one provider."""

    provider_name: str
    success: bool
    message: str = ""
    timestamp: datetime = Field(default_factory=datetime.now)
