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

"""Configuration management for llmswitch.

Handles provider switches, credentials, rate limits and store settings using
Pydantic Settings. Supports environment variables and .env files.
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    Loads configuration from environment variables or .env file.
    All settings can be overridden via environment variables with LLMSWITCH_ prefix.

    Example .env file:
        LLMSWITCH_DEFAULT_PROVIDER=ollama
        LLMSWITCH_GEMINI_ENABLED=true
        LLMSWITCH_GEMINI_API_KEY=...
        LLMSWITCH_REDIS_URL=redis://redis:6379/0

    Example usage:
        >>> settings = Settings()
        >>> print(settings.default_provider)
        ollama
    """

    # Orchestration
    default_provider: str = Field(
        default="ollama",
        description="Provider used when no active provider is stored",
    )

    fallback_enabled: bool = Field(
        default=True,
        description="Retry once against a fallback provider when the active one fails",
    )

    default_max_tokens: int = Field(
        default=1000,
        description="Default max tokens for completions",
        ge=1,
        le=4000,
    )

    default_temperature: float = Field(
        default=0.7,
        description="Default temperature for completions",
        ge=0.0,
        le=2.0,
    )

    # Shared store
    store_backend: Literal["redis", "memory"] = Field(
        default="redis",
        description="Shared store backend (memory is process-local)",
    )

    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )

    strict_rate_limiting: bool = Field(
        default=False,
        description="Increment-then-compare rate limiting instead of check-then-increment",
    )

    # Gemini (cloud API)
    gemini_enabled: bool = Field(default=False, description="Enable the Gemini provider")

    gemini_api_key: str | None = Field(default=None, description="Google AI API key")

    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com",
        description="Gemini API root URL",
    )

    gemini_model: str = Field(default="gemini-1.5-flash-latest", description="Gemini model")

    gemini_rate_limit_per_minute: int | None = Field(
        default=15,
        description="Gemini requests per minute (unset for no limit)",
        ge=1,
    )

    gemini_max_retries: int = Field(
        default=3,
        description="Attempts for transient Gemini failures",
        ge=1,
    )

    gemini_timeout: float = Field(default=30.0, description="Gemini request timeout (s)", gt=0)

    # Ollama (local runtime)
    ollama_enabled: bool = Field(default=True, description="Enable the Ollama provider")

    ollama_base_url: str = Field(default="http://ollama:11434", description="Ollama runtime URL")

    ollama_default_model: str = Field(default="llama3.1", description="Default Ollama model")

    ollama_timeout: float = Field(default=30.0, description="Ollama request timeout (s)", gt=0)

    ollama_rate_limit_per_minute: int | None = Field(
        default=None,
        description="Ollama requests per minute (unset for no limit)",
        ge=1,
    )

    ollama_auto_model_pull: bool = Field(
        default=True,
        description="Pull the default model at startup when it is missing",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    # HTTP server
    api_host: str = Field(default="127.0.0.1", description="Bind address of the HTTP API")
    api_port: int = Field(default=8000, description="Port of the HTTP API", ge=1, le=65535)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="LLMSWITCH_",
        case_sensitive=False,
        extra="ignore",
    )


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the global settings instance.

    Returns:
        Settings instance

    Example:
        >>> settings = get_settings()
        >>> print(settings.redis_url)
        redis://localhost:6379/0
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next get_settings() re-reads the environment."""
    global _settings
    _settings = None
