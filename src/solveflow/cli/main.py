"""
Main SolveFlow CLI application.

Provides the entry point for the solveflow command-line interface
with subcommands for solving, debugging and inspecting configuration.
"""

from __future__ import annotations

import asyncio
import platform
import sys
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from solveflow.cli.commands import solve as solve_commands
from solveflow.core.config import ALLOWED_MODELS, DEFAULT_MODELS, SolveFlowConfig, get_config
from solveflow.core.types import ApiProvider
from solveflow.providers.registry import ProviderRegistry, get_provider_class, list_providers
from solveflow.utils.errors import MissingAPIKeyError, SolveFlowError
from solveflow.utils.logging import mask_secret, setup_logging

# =============================================================================
# CLI Application Setup
# =============================================================================

app = typer.Typer(
    name="solveflow",
    help="SolveFlow CLI - Screenshot to Solution Pipeline",
    add_completion=False,
    rich_markup_mode="rich",
    pretty_exceptions_enable=True,
    pretty_exceptions_show_locals=False,
)

console = Console()
error_console = Console(stderr=True)

app.command()(solve_commands.solve)
app.command()(solve_commands.debug)


# =============================================================================
# Version and Info Commands
# =============================================================================


def _get_version() -> str:
    """Get package version."""
    from solveflow import __version__

    return __version__


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold blue]SolveFlow[/bold blue] version [green]{_get_version()}[/green]")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    log_level: Annotated[
        Optional[str],
        typer.Option("--log-level", help="Log level (DEBUG, INFO, WARNING, ERROR)"),
    ] = None,
) -> None:
    """
    SolveFlow - Screenshot to Solution Pipeline.

    Extracts a coding problem from screenshots and walks it through edge
    cases, solution insights, an approach with pseudocode, code generation
    and complexity analysis.

    Examples:
        solveflow solve problem.png
        solveflow debug error.png --problem-file problem.json
        solveflow info
    """
    config = get_config()
    setup_logging(
        level=log_level or config.logging.level,
        json_format=config.logging.json_format,
        log_file=config.logging.log_file,
    )


# =============================================================================
# Additional Commands
# =============================================================================


async def _validate(config: SolveFlowConfig) -> bool:
    """Send a one-token request with the active credential."""
    registry = ProviderRegistry()
    registry.apply(config)
    client = registry.require_client()
    try:
        return await client.validate_credentials()
    finally:
        await client.close()


def _credential_status(config: SolveFlowConfig) -> str:
    try:
        valid = asyncio.run(_validate(config))
    except MissingAPIKeyError:
        return "[red]not configured[/red]"
    except SolveFlowError as e:
        return f"[yellow]unreachable ({escape(e.message)})[/yellow]"
    return "[green]valid[/green]" if valid else "[red]rejected[/red]"


@app.command()
def info(
    check: Annotated[
        bool,
        typer.Option("--check", help="Validate the active API key with a one-token request"),
    ] = False,
) -> None:
    """Display system and configuration information."""
    config = get_config()

    table = Table(title="SolveFlow System Info", show_header=False, box=None)
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Version", _get_version())
    table.add_row("Python", platform.python_version())
    table.add_row("Platform", platform.platform())
    table.add_row("Provider", config.api_provider.value)
    table.add_row("Extraction Model", config.extraction_model)
    table.add_row("Solution Model", config.solution_model)
    table.add_row("Debugging Model", config.debugging_model)
    table.add_row("Language", config.language)
    table.add_row("Timeout", f"{config.timeout:g}s")
    table.add_row("Max Retries", str(config.max_retries))

    for name, key in config.api_keys.items():
        display = mask_secret(key) if key else "[red]not set[/red]"
        table.add_row(f"{name} API Key", display)

    if check:
        table.add_row("Credentials", _credential_status(config))

    console.print()
    console.print(table)
    console.print()


@app.command()
def providers() -> None:
    """List available LLM providers and their models."""
    config = get_config()

    table = Table(title="Available Providers", show_header=True, header_style="bold cyan")
    table.add_column("Provider", style="cyan")
    table.add_column("Adapter")
    table.add_column("Status", style="green")
    table.add_column("Models")

    for provider_name in list_providers():
        try:
            provider = ApiProvider(provider_name)
        except ValueError:
            table.add_row(provider_name, get_provider_class(provider_name).__name__, "-", "-")
            continue

        has_key = bool(config.api_keys.get(provider_name))
        status = "[green]Key set[/green]" if has_key else "[yellow]No key[/yellow]"
        if provider == config.api_provider:
            status += " [bold](active)[/bold]"
        models = ", ".join(
            f"[bold]{model}[/bold]" if model == DEFAULT_MODELS[provider] else model
            for model in ALLOWED_MODELS[provider]
        )
        table.add_row(provider_name, get_provider_class(provider_name).__name__, status, models)

    console.print()
    console.print(table)
    console.print()
    console.print("[dim]Use --provider/-p with solve/debug to pick a provider.[/dim]")


# =============================================================================
# Entry Point
# =============================================================================


def cli() -> None:
    """Entry point for the CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    cli()


__all__ = ["app", "cli", "main"]
