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

"""Main CLI application entry point for llmswitch.

Commands operate on the same shared store as the HTTP API, so switching the
active provider here is seen by every running server instance.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

import typer
from rich.table import Table

from llmswitch import __version__
from llmswitch.llm.models import CompletionOptions
from llmswitch.llm.multi_provider import (
    LLMOrchestrator,
    OrchestratorConfig,
    build_registry,
    create_store,
)
from llmswitch.llm.multi_provider.aggregators import summarize_health
from llmswitch.utils.config import get_settings
from llmswitch.utils.console import (
    console,
    format_health,
    print_error,
    print_info,
    print_success,
)

T = TypeVar("T")

app = typer.Typer(
    name="llmswitch",
    help="llmswitch - route LLM requests across Gemini and Ollama with shared failover state.",
    add_completion=True,
    rich_markup_mode="rich",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"llmswitch version: [bold cyan]{__version__}[/bold cyan]")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    if verbose:
        level = logging.DEBUG
    else:
        level = getattr(logging, get_settings().log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(message)s", force=True)


@app.callback()
def main(
    version: bool = typer.Option(  # noqa: ARG001 - Used by Typer callback
        False,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging"),
) -> None:
    """
    llmswitch - LLM provider orchestration.

    Manage the shared active provider, inspect usage and health, and send
    completions through the same failover path as the HTTP API.
    """
    _configure_logging(verbose)


async def _build_orchestrator() -> LLMOrchestrator:
    settings = get_settings()
    store = create_store(settings)
    registry = build_registry(settings, store)
    return LLMOrchestrator(registry, store, OrchestratorConfig.from_settings(settings))


async def _with_orchestrator(action: Callable[[LLMOrchestrator], Awaitable[T]]) -> T:
    orchestrator = await _build_orchestrator()
    try:
        return await action(orchestrator)
    finally:
        await orchestrator.close()


def _run(action: Callable[[LLMOrchestrator], Awaitable[None]]) -> None:
    """Run an async command body, mapping failures to exit codes."""
    try:
        asyncio.run(_with_orchestrator(action))
    except typer.Exit:
        raise
    except KeyboardInterrupt:
        console.print("\n[yellow]⚠ Interrupted by user[/yellow]")
        raise typer.Exit(code=130)
    except Exception as e:
        console.print(f"\n[red]✗ Error: {e}[/red]")
        raise typer.Exit(code=1)


@app.command()
def providers() -> None:
    """
    List registered providers.

    Shows type, availability, health and which provider is active.
    """

    async def _providers(orchestrator: LLMOrchestrator) -> None:
        infos = await orchestrator.provider_info()
        if not infos:
            print_info("No providers enabled")
            return

        table = Table(title="LLM Providers")
        table.add_column("Provider", style="cyan")
        table.add_column("Type")
        table.add_column("Available")
        table.add_column("Health")
        table.add_column("Active", justify="center")

        for info in infos:
            table.add_row(
                info.name,
                info.type.value,
                "[green]yes[/green]" if info.available else "[red]no[/red]",
                format_health(info.health.status) if info.health else "-",
                "●" if info.active else "",
            )
        console.print(table)

    _run(_providers)


@app.command()
def active() -> None:
    """Show the active provider."""

    async def _active(orchestrator: LLMOrchestrator) -> None:
        provider = await orchestrator.active_provider()
        console.print(
            f"Active provider: [bold cyan]{provider.name}[/bold cyan] "
            f"({provider.provider_type.value})"
        )

    _run(_active)


@app.command()
def activate(name: str = typer.Argument(..., help="Provider to make active")) -> None:
    """
    Switch the active provider.

    Example:
        llmswitch activate gemini
    """

    async def _activate(orchestrator: LLMOrchestrator) -> None:
        await orchestrator.activate(name)
        print_success(f"Successfully switched to provider: {name}")

    _run(_activate)


@app.command()
def usage(
    provider: str | None = typer.Option(
        None, "--provider", "-p", help="Show the shared ledger of one provider"
    ),
) -> None:
    """
    Show usage statistics.

    Without --provider, prints the usage counted by this process. With
    --provider, prints the usage recorded by all processes in the store.
    """

    async def _usage(orchestrator: LLMOrchestrator) -> None:
        if provider:
            stats = await orchestrator.persisted_usage(provider)
            title = f"Usage: {provider}"
        else:
            stats = orchestrator.aggregated_usage()
            title = "Usage (all providers)"

        table = Table(title=title)
        table.add_column("Metric", style="cyan")
        table.add_column("Value", justify="right")
        table.add_row("Requests", str(stats.total_requests))
        table.add_row("Tokens", str(stats.total_tokens))
        table.add_row("Avg tokens/request", f"{stats.average_tokens_per_request:.1f}")
        table.add_row("Cost (USD)", f"{stats.total_cost:.6f}")
        for day, tokens in sorted(stats.daily_usage.items()):
            table.add_row(f"  {day}", f"{tokens} tokens")
        for model, tokens in sorted(stats.model_usage.items()):
            table.add_row(f"  {model}", f"{tokens} tokens")
        console.print(table)

    _run(_usage)


@app.command()
def health() -> None:
    """Show health of every provider."""

    async def _health(orchestrator: LLMOrchestrator) -> None:
        report = await orchestrator.all_provider_health()
        if not report:
            print_info("No providers enabled")
            return

        table = Table(title="Provider Health")
        table.add_column("Provider", style="cyan")
        table.add_column("Status")
        table.add_column("Message")
        table.add_column("Response (ms)", justify="right")

        for name, status in report.items():
            table.add_row(
                name,
                format_health(status.status),
                status.message,
                str(status.response_time_ms) if status.response_time_ms >= 0 else "-",
            )
        console.print(table)

        summary = summarize_health(report)
        console.print(", ".join(f"{state}: {count}" for state, count in sorted(summary.items())))

    _run(_health)


@app.command()
def test(
    provider: str | None = typer.Option(
        None, "--provider", "-p", help="Provider to test (default: active provider)"
    ),
) -> None:
    """Send a tiny completion to check connectivity."""

    async def _test(orchestrator: LLMOrchestrator) -> None:
        if provider:
            result = await orchestrator.test_provider(provider)
        else:
            result = await orchestrator.test_active_provider()

        label = result.provider_name or "active provider"
        if result.success:
            print_success(f"{label}: {result.message}")
        else:
            print_error(f"{label}: {result.message}")
            raise typer.Exit(code=1)

    _run(_test)


@app.command()
def models(
    provider: str | None = typer.Option(
        None, "--provider", "-p", help="Provider to query (default: active provider)"
    ),
) -> None:
    """List models served by a provider."""

    async def _models(orchestrator: LLMOrchestrator) -> None:
        names = await orchestrator.supported_models(provider)
        if not names:
            print_info("No models reported")
            return
        for name in names:
            console.print(f"  • {name}")

    _run(_models)


@app.command()
def complete(
    prompt: str = typer.Argument(..., help="Prompt to send"),
    max_tokens: int | None = typer.Option(None, "--max-tokens", help="Maximum tokens"),
    temperature: float | None = typer.Option(None, "--temperature", help="Sampling temperature"),
    model: str | None = typer.Option(None, "--model", "-m", help="Model override"),
) -> None:
    """
    Generate a completion through the active provider.

    Example:
        llmswitch complete "Summarize the plot of Hamlet" --max-tokens 200
    """

    async def _complete(orchestrator: LLMOrchestrator) -> None:
        settings = get_settings()
        options = CompletionOptions(
            max_tokens=max_tokens if max_tokens is not None else settings.default_max_tokens,
            temperature=temperature if temperature is not None else settings.default_temperature,
            model=model,
        )
        response = await orchestrator.complete(prompt, options)
        console.print(response.text)
        console.print(
            f"\n[dim]{response.provider_id} · {response.model or 'default model'} · "
            f"{response.tokens_used} tokens[/dim]"
        )

    _run(_complete)


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", help="Bind address"),
    port: int | None = typer.Option(None, "--port", help="Port"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload for development"),
) -> None:
    """Run the HTTP API server."""
    from llmswitch.api.server import run_server

    settings = get_settings()
    run_server(host=host or settings.api_host, port=port or settings.api_port, reload=reload)


def run() -> None:
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    run()
