"""Rich live panel of agent streams."""

from __future__ import annotations

import time
from typing import Any

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from sara.agents.phases import AGENT_META
from sara.agents.store import AgentStateStore
from sara.types import AgentStatus, AgentStream, FrameEvent


class AgentProgress:
    """Live display of the agents of one run.

    Subscribe ``on_event`` to the orchestrator; the panel redraws from
    the store on every applied event and on each auto refresh.
    """

    STATUS_ICONS = {
        AgentStatus.IDLE: "[dim]...[/dim]",
        AgentStatus.THINKING: "[yellow]~~~[/yellow]",
        AgentStatus.STREAMING: "[cyan]>>>[/cyan]",
        AgentStatus.DONE: "[green]OK[/green]",
        AgentStatus.ERROR: "[red]ERR[/red]",
    }

    NAME_STYLES = {
        AgentStatus.IDLE: "dim",
        AgentStatus.THINKING: "bold yellow",
        AgentStatus.STREAMING: "bold cyan",
        AgentStatus.DONE: "green",
        AgentStatus.ERROR: "red",
    }

    TAIL_CHARS = 60

    def __init__(self, console: Console, store: AgentStateStore, title: str) -> None:
        """Initialize progress display.

        Args:
            console: Rich console to write to.
            store: Store of the run being displayed.
            title: Panel title, e.g. the mode and provider.
        """
        self.console = console
        self.store = store
        self.title = title
        self.started_at = time.time()
        self.is_complete = False
        self.error_message: str | None = None

        self._live: Live | None = None

    def _build_display(self) -> Panel:
        """Build the progress display panel."""
        table = Table(show_header=False, box=None, padding=(0, 1))
        table.add_column("Status", width=4)
        table.add_column("Icon", width=2)
        table.add_column("Agent", width=12)
        table.add_column("Time", width=6, justify="right", style="dim")
        table.add_column("Output", style="dim")

        for agent in self.store.agents:
            meta = AGENT_META.get(agent.id)
            table.add_row(
                self.STATUS_ICONS.get(agent.status, ""),
                meta.icon if meta else "",
                Text(agent.label or agent.id, style=self.NAME_STYLES.get(agent.status, "")),
                self._format_duration(agent.duration),
                self._tail(agent),
            )

        footer = Text()
        footer.append("Elapsed: ", style="dim")
        footer.append(f"{time.time() - self.started_at:.0f}s", style="cyan")

        if self.is_complete:
            title = f"[bold green]{self.title} complete[/bold green]"
            border_style = "green"
        elif self.error_message:
            title = f"[bold red]{self.title} failed[/bold red]"
            border_style = "red"
        else:
            title = f"[bold cyan]{self.title}...[/bold cyan]"
            border_style = "cyan"

        return Panel(Group(table, Text(""), footer), title=title, border_style=border_style)

    def _tail(self, agent: AgentStream) -> str:
        content = " ".join(agent.content.split())
        if len(content) > self.TAIL_CHARS:
            return "..." + content[-self.TAIL_CHARS:]
        return content

    @staticmethod
    def _format_duration(seconds: float | None) -> str:
        if seconds is None:
            return ""
        return f"{seconds:.1f}s"

    def on_event(self, event: FrameEvent, store: AgentStateStore) -> None:
        """Store listener: redraw after each applied event."""
        if self._live:
            self._live.update(self._build_display())

    def mark_complete(self) -> None:
        self.is_complete = True
        if self._live:
            self._live.update(self._build_display())

    def mark_error(self, message: str) -> None:
        self.error_message = message
        if self._live:
            self._live.update(self._build_display())

    def __enter__(self) -> AgentProgress:
        """Start the live display."""
        self._live = Live(
            self._build_display(),
            console=self.console,
            refresh_per_second=4,
            transient=False,
            auto_refresh=True,
            get_renderable=self._build_display,
        )
        self._live.__enter__()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Stop the live display."""
        if self._live:
            self._live.update(self._build_display())
            self._live.__exit__(exc_type, exc_val, exc_tb)
            self._live = None
