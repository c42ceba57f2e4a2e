"""
Core types for the orchestration client.

This module defines the data structures shared by every component:
- Enums for agent status, run mode, execution path and provider tier
- AgentStream, the per-agent progress record of one run
- Frozen dataclasses for immutable run data (RunPhase, RunToken, FrameEvent)
- RunRequest (the wire body) and ResultRecord (the merged run output)
- Helper functions for ID generation and timestamps
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from uuid6 import uuid7


def generate_id(prefix: str = "") -> str:
    """Generate a time-ordered unique ID using UUID7.

    Args:
        prefix: Optional prefix for the ID (e.g., "run").

    Returns:
        A unique ID string, optionally prefixed.
    """
    uid = str(uuid7())
    return f"{prefix}_{uid}" if prefix else uid


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class AgentStatus(str, Enum):
    """Status of one agent within a run."""

    IDLE = "idle"
    THINKING = "thinking"
    STREAMING = "streaming"
    DONE = "done"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (AgentStatus.DONE, AgentStatus.ERROR)

    @property
    def rank(self) -> int:
        """Position in the idle < thinking/streaming < done/error lattice."""
        if self is AgentStatus.IDLE:
            return 0
        if self.is_terminal:
            return 2
        return 1


class RunMode(str, Enum):
    """Which agents take part in a run."""

    SINGLE = "single"
    MULTI = "multi"


class ExecutionPath(str, Enum):
    """How progress is obtained while a run is in flight."""

    STREAMED = "streamed"  # live event feed from the backend
    SIMULATED = "simulated"  # one request/response call, progress synthesized locally


class ProviderTier(str, Enum):
    """Provider tier a run is routed to."""

    PRIMARY = "primary"
    SECONDARY = "secondary"


@dataclass
class AgentStream:
    """Progress of one agent for the lifetime of a run.

    Mutated only through AgentStateStore, which enforces the
    transition table and the append-only content rule.
    """

    id: str
    label: str = ""
    status: AgentStatus = AgentStatus.IDLE
    content: str = ""
    started_at: float | None = None
    done_at: float | None = None

    @property
    def duration(self) -> float | None:
        """Seconds between start and completion (or now, while running)."""
        if self.started_at is None:
            return None
        end = self.done_at if self.done_at is not None else time.time()
        return end - self.started_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "status": self.status.value,
            "content": self.content,
            "started_at": self.started_at,
            "done_at": self.done_at,
        }


@dataclass(frozen=True)
class RunPhase:
    """Ordered set of agent ids expected to run together."""

    name: str
    agents: tuple[str, ...]

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self.agents

    def __len__(self) -> int:
        return len(self.agents)


@dataclass(frozen=True, order=True)
class RunToken:
    """Generation marker minted at run start.

    Every asynchronous callback of a run compares its token with the
    active one before touching shared state.
    """

    generation: int
    run_id: str = field(compare=False)


@dataclass(frozen=True)
class FrameEvent:
    """One progress event: a name and its JSON payload.

    Produced by both the stream decoder and the progress simulator.
    """

    name: str
    data: Any


@dataclass(frozen=True)
class HistoryTurn:
    """One prior conversation turn sent as context."""

    role: str  # "user" | "assistant"
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class RunRequest:
    """Body of one run request."""

    message: str
    session_id: str | None = None
    history: list[HistoryTurn] = field(default_factory=list)
    repos: list[str] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        """Wire body: ``{message, session_id, history, repos}``."""
        return {
            "message": self.message,
            "session_id": self.session_id,
            "history": [turn.to_dict() for turn in self.history],
            "repos": list(self.repos),
        }


@dataclass
class ResultRecord:
    """Canonical merged output of a completed run."""

    answer: str
    mode: RunMode
    path: ExecutionPath
    tier: ProviderTier
    run_id: str = ""
    agent_outputs: dict[str, str] | None = None  # multi-stage runs only
    session_id: str | None = None
    rag_used: bool = False
    web_used: bool = False
    duration_ms: int = 0
    error: bool = False

    # Failure details (error=True only)
    failure: Exception | None = None
    fallback_tier: ProviderTier | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "answer": self.answer,
            "mode": self.mode.value,
            "path": self.path.value,
            "tier": self.tier.value,
            "agent_outputs": self.agent_outputs,
            "session_id": self.session_id,
            "rag_used": self.rag_used,
            "web_used": self.web_used,
            "duration_ms": self.duration_ms,
            "error": self.error,
            "failure": type(self.failure).__name__ if self.failure else None,
            "fallback_tier": self.fallback_tier.value if self.fallback_tier else None,
        }
