"""
Phase announcement: which agents take part in a run, and in what order.
"""

from __future__ import annotations

from dataclasses import dataclass

from sara.exceptions import ConfigurationError
from sara.types import RunMode, RunPhase

# Authoritative order for simulated cadence and display
AGENT_ORDER: tuple[str, ...] = ("researcher", "analyst", "critic", "synthesizer")

# The single-stage path reports under the synthesizer id
SINGLE_AGENT = "synthesizer"


@dataclass(frozen=True)
class AgentMeta:
    """Display metadata for an agent id."""

    label: str
    icon: str
    role: str


AGENT_META: dict[str, AgentMeta] = {
    "researcher": AgentMeta("Researcher", "🔍", "Finds the real need and the context that grounds it"),
    "analyst": AgentMeta("Analyst", "🏗", "Designs the technical approach"),
    "critic": AgentMeta("Critic", "⚡", "Looks for risks and wrong assumptions"),
    "synthesizer": AgentMeta("Synthesizer", "✦", "Writes the final answer"),
}


def label_for(agent_id: str) -> str:
    """Display label for ``agent_id``; unknown ids are shown as-is."""
    meta = AGENT_META.get(agent_id)
    return meta.label if meta else agent_id


class PhaseAnnouncer:
    """Declares the participating agents at run start."""

    def announce(self, mode: RunMode | str) -> RunPhase:
        """Return the fixed agent list for ``mode``.

        Args:
            mode: ``single`` or ``multi``.

        Returns:
            RunPhase with one agent for single-stage runs, four for multi-stage.

        Raises:
            ConfigurationError: If the mode is unknown.
        """
        try:
            mode = RunMode(mode)
        except ValueError as e:
            raise ConfigurationError(f"Unknown run mode: {mode!r}") from e

        if mode is RunMode.SINGLE:
            return RunPhase(name=mode.value, agents=(SINGLE_AGENT,))
        return RunPhase(name=mode.value, agents=AGENT_ORDER)
