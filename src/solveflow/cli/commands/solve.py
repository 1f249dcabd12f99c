"""
Solve and debug commands for SolveFlow CLI.

Both commands run one pipeline, render its events as they arrive and
cancel the run cleanly on Ctrl+C.
"""

from __future__ import annotations

import asyncio
import json
import signal
from pathlib import Path
from typing import Annotated, Optional

import typer
from pydantic import ValidationError as PydanticValidationError
from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from solveflow.core.config import ConfigManager, SolveFlowConfig, get_config_manager
from solveflow.core.events import RunEvent, RunEventType
from solveflow.core.orchestrator import RunOutcome, SolveFlow
from solveflow.core.types import ImagePayload, ProblemInfo
from solveflow.utils.errors import SolveFlowError

console = Console()
error_console = Console(stderr=True)

EXIT_CANCELLED = 130


# =============================================================================
# Event Rendering
# =============================================================================


def _bullets(items: list[str]) -> str:
    return "\n".join(f"• {escape(item)}" for item in items) or "[dim](none)[/dim]"


class EventRenderer:
    """Prints run events with rich; ``json_output`` suppresses everything but errors."""

    def __init__(self, language: str, json_output: bool = False, verbose: bool = False):
        self.language = language
        self.json_output = json_output
        self.verbose = verbose

    def __call__(self, event: RunEvent) -> None:
        if self.json_output:
            if self.verbose:
                error_console.print_json(json.dumps(event.to_dict(), default=str))
            return

        data = event.data
        if event.type == RunEventType.PROCESSING_STATUS:
            console.print(f"[dim][{data.get('progress', 0):>3}%] {data.get('message', '')}[/dim]")

        elif event.type in (RunEventType.RUN_STARTED, RunEventType.DEBUG_STARTED):
            console.print(
                f"[bold blue]Started[/bold blue] {event.run_id} "
                f"[dim](provider: {data.get('provider')}, language: {data.get('language')})[/dim]"
            )

        elif event.type == RunEventType.PROBLEM_EXTRACTED:
            console.print(Panel(escape(data.get("problem_statement", "")), title="[blue]Problem[/blue]"))

        elif event.type == RunEventType.EDGE_CASES_EXTRACTED:
            console.print(Panel(_bullets(data.get("edge_cases", [])), title="[blue]Edge Cases[/blue]"))

        elif event.type == RunEventType.SOLUTION_THINKING:
            console.print(Panel(_bullets(data.get("thoughts", [])), title="[blue]Key Insights[/blue]"))

        elif event.type == RunEventType.APPROACH_DEVELOPED:
            console.print(Panel(_bullets(data.get("thoughts", [])), title="[blue]Approach[/blue]"))
            if data.get("pseudocode"):
                console.print(Panel(escape(data["pseudocode"]), title="[blue]Pseudocode[/blue]"))

        elif event.type == RunEventType.CODE_GENERATED and self.verbose:
            console.print("[green]Code generated[/green]")

        elif event.type == RunEventType.RUN_SUCCEEDED:
            console.print(Panel(Syntax(data.get("code", ""), self.language), title="[green]Solution[/green]"))
            table = Table(show_header=False, box=None)
            table.add_column("Metric", style="cyan")
            table.add_column("Value", style="green")
            table.add_row("Time", data.get("time_complexity", ""))
            table.add_row("Space", data.get("space_complexity", ""))
            console.print(table)

        elif event.type == RunEventType.DEBUG_SUCCEEDED:
            console.print(Panel(Markdown(data.get("debug_analysis", "")), title="[green]Debug Analysis[/green]"))
            console.print(Panel(Syntax(data.get("code", ""), self.language), title="[green]Code[/green]"))

        elif event.type in (RunEventType.RUN_FAILED, RunEventType.DEBUG_FAILED):
            error_console.print(
                f"[red]Failed:[/red] {escape(str(data.get('message')))} [dim]({data.get('classification')})[/dim]"
            )

        elif event.type in (RunEventType.RUN_CANCELLED, RunEventType.DEBUG_CANCELLED):
            error_console.print(f"[yellow]{escape(data.get('message', 'Cancelled'))}[/yellow]")


# =============================================================================
# Helpers
# =============================================================================


def _load_manager(config_file: Path | None, provider: str | None) -> ConfigManager:
    manager = (
        ConfigManager(SolveFlowConfig.from_file(config_file)) if config_file else get_config_manager()
    )
    if provider:
        manager.update(api_provider=provider)
    return manager


def _load_images(paths: list[Path]) -> list[ImagePayload]:
    return [ImagePayload.from_bytes(path.read_bytes()) for path in paths]


def _install_interrupt(flow: SolveFlow) -> bool:
    """Route Ctrl+C to ``cancel_all``; returns False where signals are unsupported."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, flow.cancel_all)
    except (NotImplementedError, RuntimeError):
        return False
    return True


async def _run(
    manager: ConfigManager,
    renderer: EventRenderer,
    follow_up: bool,
    images: list[ImagePayload],
    language: str | None,
    problem: ProblemInfo | None = None,
) -> tuple[RunOutcome, ProblemInfo | None]:
    flow = SolveFlow(config_manager=manager)
    listener = asyncio.create_task(flow.events.listen(renderer))
    installed = _install_interrupt(flow)
    try:
        if follow_up:
            outcome = await flow.process_follow_up(images, problem_info=problem, language=language)
        else:
            outcome = await flow.process_initial(images, language=language)
        return outcome, flow.problem_info
    finally:
        if installed:
            asyncio.get_running_loop().remove_signal_handler(signal.SIGINT)
        await flow.close()
        await listener


def _finish(outcome: RunOutcome, json_output: bool) -> None:
    if json_output:
        console.print_json(json.dumps(outcome.to_dict(), default=str))
    if outcome.cancelled:
        raise typer.Exit(code=EXIT_CANCELLED)
    if not outcome.success:
        raise typer.Exit(code=1)


# =============================================================================
# Commands
# =============================================================================


def solve(
    images: Annotated[
        list[Path],
        typer.Argument(help="Screenshots of the problem", exists=True, dir_okay=False),
    ],
    language: Annotated[
        Optional[str],
        typer.Option("--language", "-l", help="Solution language (default: configured)"),
    ] = None,
    provider: Annotated[
        Optional[str],
        typer.Option("--provider", "-p", help="Provider: openai, gemini, anthropic"),
    ] = None,
    config_file: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="YAML configuration file", exists=True, dir_okay=False),
    ] = None,
    save_problem: Annotated[
        Optional[Path],
        typer.Option("--save-problem", help="Write the extracted problem as JSON for 'debug'"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Print the outcome as JSON"),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Verbose output"),
    ] = False,
) -> None:
    """
    Solve a coding problem from screenshots.

    Examples:
        solveflow solve problem.png
        solveflow solve part1.png part2.png -l java --save-problem problem.json
    """
    try:
        manager = _load_manager(config_file, provider)
        payloads = _load_images(images)
        target_language = language or manager.config.language
        renderer = EventRenderer(target_language, json_output=json_output, verbose=verbose)
        outcome, problem = asyncio.run(_run(manager, renderer, False, payloads, target_language))
    except (SolveFlowError, OSError) as e:
        error_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    if save_problem and problem is not None:
        save_problem.write_text(json.dumps(problem.to_dict(), indent=2), encoding="utf-8")
        console.print(f"[green]Problem written to:[/green] {save_problem}")

    _finish(outcome, json_output)


def debug(
    images: Annotated[
        list[Path],
        typer.Argument(help="Screenshots of your code, errors or test cases", exists=True, dir_okay=False),
    ],
    problem_file: Annotated[
        Optional[Path],
        typer.Option("--problem-file", "-f", help="Problem JSON written by 'solve --save-problem'", exists=True),
    ] = None,
    language: Annotated[
        Optional[str],
        typer.Option("--language", "-l", help="Solution language (default: configured)"),
    ] = None,
    provider: Annotated[
        Optional[str],
        typer.Option("--provider", "-p", help="Provider: openai, gemini, anthropic"),
    ] = None,
    config_file: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="YAML configuration file", exists=True, dir_okay=False),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Print the outcome as JSON"),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Verbose output"),
    ] = False,
) -> None:
    """
    Debug an attempt at a previously solved problem.

    Example:
        solveflow debug error.png --problem-file problem.json
    """
    problem: ProblemInfo | None = None
    try:
        if problem_file:
            problem = ProblemInfo.model_validate_json(problem_file.read_text(encoding="utf-8"))
        manager = _load_manager(config_file, provider)
        payloads = _load_images(images)
        target_language = language or manager.config.language
        renderer = EventRenderer(target_language, json_output=json_output, verbose=verbose)
        outcome, _ = asyncio.run(_run(manager, renderer, True, payloads, target_language, problem))
    except PydanticValidationError as e:
        error_console.print(f"[red]Invalid problem file:[/red] {e.error_count()} error(s)")
        raise typer.Exit(code=1)
    except (SolveFlowError, OSError) as e:
        error_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    _finish(outcome, json_output)


__all__ = ["solve", "debug", "EventRenderer"]
