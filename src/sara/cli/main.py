"""
CLI for the Sara orchestration client.

Commands:
    sara ask MESSAGE - Run one request with live agent progress
    sara chat - Interactive conversation keeping history and session
    sara config - Show current configuration
    sara version - Print version
"""

from __future__ import annotations

import asyncio
from typing import Annotated, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from sara import __version__
from sara.cli.progress import AgentProgress
from sara.config import Settings, clear_settings_cache, get_settings
from sara.conversation import Conversation
from sara.logging import setup_logging
from sara.orchestrator.run import RunOrchestrator
from sara.types import ExecutionPath, ProviderTier, ResultRecord, RunMode

app = typer.Typer(
    name="sara",
    help="Sara - multi-agent answers with live per-agent progress",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)

EXIT_WORDS = {"/exit", "/quit", "exit", "quit"}


def _get_settings_safe() -> Settings | None:
    """Get settings, returning None if configuration is invalid."""
    try:
        clear_settings_cache()
        return get_settings()
    except ValidationError:
        return None


def _require_settings() -> Settings:
    settings = _get_settings_safe()
    if settings is None:
        error_console.print(
            "[red]Error:[/red] Configuration is invalid. "
            "Run 'sara config' to see what's missing."
        )
        raise typer.Exit(1)
    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)
    return settings


def _print_record(record: ResultRecord, orchestrator: RunOrchestrator) -> None:
    console.print()
    console.print(Markdown(record.answer))

    previews = orchestrator.assembler.previews(record)
    if previews:
        console.print()
        table = Table(title="Agent outputs", show_header=True)
        table.add_column("Agent", style="cyan")
        table.add_column("Preview")
        for agent_id, text in previews.items():
            table.add_row(agent_id, text)
        console.print(table)

    flags = []
    if record.rag_used:
        flags.append("RAG")
    if record.web_used:
        flags.append("web")
    console.print(
        f"\n[dim]{record.mode.value} | {record.tier.value} | {record.duration_ms / 1000:.1f}s"
        f"{' | ' + ', '.join(flags) if flags else ''}[/dim]"
    )
    if record.fallback_tier is not None:
        console.print(f"[yellow]Default tier is now {record.fallback_tier.value}.[/yellow]")


async def _run_one(
    orchestrator: RunOrchestrator,
    conversation: Conversation,
    message: str,
    mode: RunMode,
    path: ExecutionPath,
    tier: ProviderTier | None,
    repos: list[str],
) -> ResultRecord | None:
    request = conversation.request(message, repos=repos)
    conversation.add_user(message)

    progress = AgentProgress(console, orchestrator.store, title=f"{mode.value} run")
    unsubscribe = orchestrator.subscribe(progress.on_event)
    try:
        with progress:
            record = await orchestrator.execute(request, path=path, mode=mode, tier=tier)
            if record is not None and record.error:
                progress.mark_error(record.answer)
            elif record is not None:
                progress.mark_complete()
    finally:
        unsubscribe()

    if record is None:
        console.print("[yellow]Run abandoned.[/yellow]")
        return None

    conversation.add_result(record)
    _print_record(record, orchestrator)
    return record


async def _ask(
    settings: Settings,
    message: str,
    mode: RunMode,
    path: ExecutionPath,
    tier: ProviderTier | None,
    repos: list[str],
) -> ResultRecord | None:
    async with RunOrchestrator(settings) as orchestrator:
        conversation = Conversation(settings.HISTORY_WINDOW)
        return await _run_one(orchestrator, conversation, message, mode, path, tier, repos)


async def _chat(
    settings: Settings,
    mode: RunMode,
    path: ExecutionPath,
    tier: ProviderTier | None,
    repos: list[str],
) -> None:
    async with RunOrchestrator(settings) as orchestrator:
        conversation = Conversation(settings.HISTORY_WINDOW)
        if tier is not None:
            orchestrator.default_tier = tier

        while True:
            try:
                message = await asyncio.to_thread(console.input, "\n[bold cyan]you>[/bold cyan] ")
            except (EOFError, KeyboardInterrupt):
                break

            message = message.strip()
            if not message:
                continue
            if message in EXIT_WORDS:
                break
            if message == "/clear":
                conversation.clear()
                orchestrator.session_id = None
                console.print("[dim]Conversation cleared.[/dim]")
                continue

            await _run_one(orchestrator, conversation, message, mode, path, None, repos)


@app.command()
def ask(
    message: Annotated[str, typer.Argument(help="Question or request")],
    mode: Annotated[
        Optional[RunMode],
        typer.Option("--mode", "-m", help="single or multi (four agents)"),
    ] = None,
    path: Annotated[
        Optional[ExecutionPath],
        typer.Option("--path", "-p", help="streamed or simulated progress"),
    ] = None,
    tier: Annotated[
        Optional[ProviderTier],
        typer.Option("--tier", "-t", help="Provider tier"),
    ] = None,
    repo: Annotated[
        Optional[list[str]],
        typer.Option("--repo", "-r", help="Repository id to use as context (repeatable)"),
    ] = None,
) -> None:
    """Run one request and show each agent's progress live."""
    settings = _require_settings()

    record = asyncio.run(
        _ask(
            settings,
            message,
            mode or RunMode(settings.DEFAULT_MODE),
            path or ExecutionPath(settings.DEFAULT_PATH),
            tier,
            repo or [],
        )
    )
    if record is None or record.error:
        raise typer.Exit(1)


@app.command()
def chat(
    mode: Annotated[
        Optional[RunMode],
        typer.Option("--mode", "-m", help="single or multi (four agents)"),
    ] = None,
    path: Annotated[
        Optional[ExecutionPath],
        typer.Option("--path", "-p", help="streamed or simulated progress"),
    ] = None,
    tier: Annotated[
        Optional[ProviderTier],
        typer.Option("--tier", "-t", help="Initial provider tier"),
    ] = None,
    repo: Annotated[
        Optional[list[str]],
        typer.Option("--repo", "-r", help="Repository id to use as context (repeatable)"),
    ] = None,
) -> None:
    """Interactive conversation. Type /clear to reset, /exit to leave."""
    settings = _require_settings()

    console.print(f"[bold]Sara[/bold] [dim]v{__version__}, /exit to leave[/dim]")
    asyncio.run(
        _chat(
            settings,
            mode or RunMode(settings.DEFAULT_MODE),
            path or ExecutionPath(settings.DEFAULT_PATH),
            tier,
            repo or [],
        )
    )


@app.command()
def config() -> None:
    """Show current configuration.

    Displays all configuration values with the API key redacted.
    """
    console.print()
    console.print("[bold]Sara Configuration[/bold]")
    console.print()

    settings = _get_settings_safe()

    if settings is None:
        error_console.print("[red]Configuration is invalid or incomplete.[/red]")
        error_console.print()
        error_console.print("Required environment variables:")
        error_console.print("  - BACKEND_URL (http:// or https://)")
        error_console.print("  - BACKEND_API_KEY")
        error_console.print()
        error_console.print("Create a .env file or set environment variables.")
        raise typer.Exit(1)

    table = Table(title="Settings", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for key, value in settings.redacted_display().items():
        display_value = str(value) if value is not None else "[dim]not set[/dim]"
        table.add_row(key, display_value)

    console.print(table)
    console.print()


@app.command()
def version() -> None:
    """Print the version number."""
    console.print(f"sara version {__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
