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

"""Console utilities for rich terminal output.

Shared console used by the CLI for status messages and tables.
"""

from __future__ import annotations

from rich.console import Console

from ..llm.models import HealthStatus

# Global console instance shared across the application
console = Console()

HEALTH_STYLES: dict[HealthStatus, str] = {
    HealthStatus.HEALTHY: "green",
    HealthStatus.DEGRADED: "yellow",
    HealthStatus.UNHEALTHY: "red",
    HealthStatus.UNKNOWN: "dim",
}


def print_success(message: str) -> None:
    """Print a success message.

    Args:
        message: Success message to display
    """
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str) -> None:
    """Print an error message.

    Args:
        message: Error message to display
    """
    console.print(f"[red]✗[/red] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[cyan]ℹ[/cyan] {message}")


def format_health(status: HealthStatus) -> str:
    """Rich markup for a health status."""
    style = HEALTH_STYLES.get(status, "white")
    return f"[{style}]{status.value}[/{style}]"


__all__ = [
    "console",
    "format_health",
    "print_success",
    "print_error",
    "print_info",
]
