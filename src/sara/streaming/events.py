"""
Event names understood by the agent state store.

The first six come from the backend stream. ``agent_thinking`` and
``agent_error`` are emitted locally by the progress simulator and the
orchestrator so that every state change goes through the same sink.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from sara.types import FrameEvent, RunPhase


class StreamEvent(str, Enum):
    """Recognized event names."""

    PHASE = "phase"
    AGENT_START = "agent_start"
    AGENT_TOKEN = "agent_token"
    AGENT_DONE = "agent_done"
    DONE = "done"
    ERROR = "error"

    # Local producers only
    AGENT_THINKING = "agent_thinking"
    AGENT_ERROR = "agent_error"

    @classmethod
    def lookup(cls, name: str) -> StreamEvent | None:
        """Return the member for ``name``, or None for unrecognized names."""
        try:
            return cls(name)
        except ValueError:
            return None

    @property
    def is_terminal(self) -> bool:
        """Whether this event ends the run."""
        return self in (StreamEvent.DONE, StreamEvent.ERROR)


def phase_event(phase: RunPhase) -> FrameEvent:
    """Build the ``phase`` event that seeds the store for ``phase``."""
    return FrameEvent(StreamEvent.PHASE.value, {"phase": phase.name, "agents": list(phase.agents)})


def agent_event(kind: StreamEvent, agent: str, **extra: Any) -> FrameEvent:
    """Build a per-agent event, e.g. ``agent_event(StreamEvent.AGENT_DONE, "critic")``."""
    return FrameEvent(kind.value, {"agent": agent, **extra})
