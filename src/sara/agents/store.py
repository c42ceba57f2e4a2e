"""
Agent state store.

Holds one AgentStream per participating agent for the current run and
applies progress events to them. Both producers (the stream decoder and
the progress simulator) go through ``apply``, which first checks the
caller's RunToken so that callbacks from an abandoned run are no-ops.
"""

from __future__ import annotations

import dataclasses
import time
from typing import Any, Callable, Protocol

from sara.agents.phases import label_for
from sara.exceptions import InvalidTransitionError, StaleCallbackError
from sara.logging import get_logger
from sara.streaming.events import StreamEvent, phase_event
from sara.types import AgentStatus, AgentStream, FrameEvent, RunPhase, RunToken

logger = get_logger(__name__)

# Allowed status changes; anything else is rejected
TRANSITIONS: dict[AgentStatus, frozenset[AgentStatus]] = {
    AgentStatus.IDLE: frozenset(
        {AgentStatus.THINKING, AgentStatus.STREAMING, AgentStatus.DONE, AgentStatus.ERROR}
    ),
    AgentStatus.THINKING: frozenset({AgentStatus.STREAMING, AgentStatus.DONE, AgentStatus.ERROR}),
    AgentStatus.STREAMING: frozenset({AgentStatus.DONE, AgentStatus.ERROR}),
    AgentStatus.DONE: frozenset(),
    AgentStatus.ERROR: frozenset(),
}

_EVENT_TARGETS: dict[StreamEvent, AgentStatus] = {
    StreamEvent.AGENT_THINKING: AgentStatus.THINKING,
    StreamEvent.AGENT_START: AgentStatus.STREAMING,
    StreamEvent.AGENT_DONE: AgentStatus.DONE,
    StreamEvent.AGENT_ERROR: AgentStatus.ERROR,
}

Listener = Callable[[FrameEvent, "AgentStateStore"], None]


class ProgressSink(Protocol):
    """Anything that applies one progress event under a RunToken."""

    def __call__(self, event: FrameEvent, token: RunToken) -> bool: ...


class AgentStateStore:
    """Per-run agent state machines.

    The store is owned by one orchestrator. ``begin`` starts a new run
    and makes its token the only one accepted by ``apply``.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._agents: dict[str, AgentStream] = {}
        self._token: RunToken | None = None
        self._listeners: list[Listener] = []

        self.phase_name: str | None = None
        self.result: dict[str, Any] | None = None
        self.error: str | None = None

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    def begin(self, token: RunToken) -> None:
        """Discard the previous run's state and accept only ``token``."""
        self._agents = {}
        self._token = token
        self.phase_name = None
        self.result = None
        self.error = None

    def invalidate(self) -> None:
        """Stop accepting events from any run."""
        self._token = None

    @property
    def token(self) -> RunToken | None:
        return self._token

    def is_current(self, token: RunToken) -> bool:
        return self._token is not None and token == self._token

    def check(self, token: RunToken) -> None:
        """Raise StaleCallbackError unless ``token`` is the active one."""
        if not self.is_current(token):
            raise StaleCallbackError(
                "Callback belongs to an abandoned run",
                context={
                    "token": token.generation,
                    "current": self._token.generation if self._token else None,
                },
            )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, agent_id: str) -> AgentStream | None:
        return self._agents.get(agent_id)

    @property
    def agents(self) -> list[AgentStream]:
        """Agent streams in announcement order."""
        return list(self._agents.values())

    def snapshot(self) -> list[AgentStream]:
        """Copies of the agent streams, safe to keep after the run moves on."""
        return [dataclasses.replace(agent) for agent in self._agents.values()]

    def statuses(self) -> dict[str, AgentStatus]:
        return {agent_id: agent.status for agent_id, agent in self._agents.items()}

    def thinking_count(self) -> int:
        return sum(1 for agent in self._agents.values() if agent.status is AgentStatus.THINKING)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for every applied event.

        Returns:
            A callable that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def seed(self, phase: RunPhase, token: RunToken) -> bool:
        """Create one idle AgentStream per agent in ``phase``."""
        return self.apply(phase_event(phase), token)

    def apply(self, event: FrameEvent, token: RunToken) -> bool:
        """Apply one progress event.

        Args:
            event: Decoded or locally produced event.
            token: Token of the run the event belongs to.

        Returns:
            True if the event changed the store.

        Raises:
            StaleCallbackError: If ``token`` is not the active run's token.
        """
        self.check(token)

        kind = StreamEvent.lookup(event.name)
        if kind is None:
            return False

        data = event.data if isinstance(event.data, dict) else {}

        if kind is StreamEvent.PHASE:
            changed = self._apply_phase(data)
        elif kind is StreamEvent.AGENT_TOKEN:
            changed = self._apply_token(data)
        elif kind is StreamEvent.DONE:
            self.result = data
            changed = True
        elif kind is StreamEvent.ERROR:
            self.error = str(data.get("error") or "Backend reported an error")
            changed = True
        else:
            changed = self._apply_status(data, _EVENT_TARGETS[kind])

        if changed:
            self._notify(event)
        return changed

    def force_terminal(self, status: AgentStatus, token: RunToken) -> list[str]:
        """Move every non-terminal agent to ``status`` (``done`` or ``error``).

        Returns:
            Ids of the agents that changed.
        """
        if not status.is_terminal:
            raise ValueError(f"force_terminal needs a terminal status, got {status.value}")

        kind = StreamEvent.AGENT_DONE if status is AgentStatus.DONE else StreamEvent.AGENT_ERROR
        changed: list[str] = []
        for agent in list(self._agents.values()):
            if agent.status.is_terminal:
                continue
            if self.apply(FrameEvent(kind.value, {"agent": agent.id}), token):
                changed.append(agent.id)
        return changed

    def _ensure(self, agent_id: str) -> AgentStream:
        agent = self._agents.get(agent_id)
        if agent is None:
            agent = AgentStream(id=agent_id, label=label_for(agent_id))
            self._agents[agent_id] = agent
        return agent

    def _apply_phase(self, data: dict[str, Any]) -> bool:
        agents = data.get("agents")
        if not isinstance(agents, list):
            return False

        self.phase_name = str(data.get("phase") or self.phase_name or "")
        created = False
        for agent_id in agents:
            if isinstance(agent_id, str) and agent_id not in self._agents:
                self._ensure(agent_id)
                created = True
        return created

    def _apply_token(self, data: dict[str, Any]) -> bool:
        agent_id = data.get("agent")
        token = data.get("token")
        if not isinstance(agent_id, str) or not isinstance(token, str) or not token:
            return False

        agent = self._ensure(agent_id)
        if agent.status.is_terminal:
            logger.debug("Token after terminal status ignored", agent=agent_id)
            return False
        agent.content += token
        return True

    def _apply_status(self, data: dict[str, Any], target: AgentStatus) -> bool:
        agent_id = data.get("agent")
        if not isinstance(agent_id, str):
            return False

        agent = self._ensure(agent_id)
        try:
            return self._transition(agent, target)
        except InvalidTransitionError as e:
            logger.debug("Rejected agent transition", **e.context)
            return False

    def _transition(self, agent: AgentStream, target: AgentStatus) -> bool:
        if agent.status is target:
            return False
        if target not in TRANSITIONS[agent.status]:
            raise InvalidTransitionError(
                "Agent status transition not allowed",
                context={
                    "agent": agent.id,
                    "current": agent.status.value,
                    "requested": target.value,
                },
            )

        now = self._clock()
        if target in (AgentStatus.THINKING, AgentStatus.STREAMING) and agent.started_at is None:
            agent.started_at = now
        if target.is_terminal and agent.done_at is None:
            agent.done_at = now
        agent.status = target
        return True

    def _notify(self, event: FrameEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, self)
            except Exception:
                logger.exception("Agent listener failed", event_name=event.name)
