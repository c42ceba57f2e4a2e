"""
Simulated agent progress.

Used on the request/response path, where the backend reports nothing
until the whole pipeline has finished. The simulator walks the phase's
agents on a fixed cadence purely as user feedback; the real outcome is
decided by the response, and the orchestrator cancels the simulator as
soon as that response (or the deadline) arrives.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from sara.agents.store import ProgressSink
from sara.exceptions import StaleCallbackError
from sara.logging import get_logger
from sara.streaming.events import StreamEvent, agent_event
from sara.types import RunPhase, RunToken

logger = get_logger(__name__)

DEFAULT_INTERVAL_SECONDS = 2.1


class ProgressSimulator:
    """Sequential hand-off of the ``thinking`` status between agents.

    Tick 0 fires immediately and moves the first agent to ``thinking``.
    Each later tick marks the previous agent ``done`` and then moves the
    next one to ``thinking``, so at most one agent is thinking at any
    instant. Once the last agent is thinking there is nothing left to
    advance and the simulator returns.
    """

    def __init__(
        self,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.interval_seconds = interval_seconds
        self._sleep = sleep
        self.ticks = 0

    async def run(self, phase: RunPhase, token: RunToken, sink: ProgressSink) -> int:
        """Advance ``phase``'s agents until the last one is thinking.

        Args:
            phase: Agents to walk, in order.
            token: Token of the run being simulated.
            sink: Where the progress events go (normally ``AgentStateStore.apply``).

        Returns:
            Number of ticks applied.
        """
        self.ticks = 0
        previous: str | None = None

        try:
            for index, agent_id in enumerate(phase.agents):
                if index:
                    await self._sleep(self.interval_seconds)
                if previous is not None:
                    sink(agent_event(StreamEvent.AGENT_DONE, previous), token)
                sink(agent_event(StreamEvent.AGENT_THINKING, agent_id), token)
                previous = agent_id
                self.ticks += 1
        except StaleCallbackError:
            logger.debug("Simulator stopped for abandoned run", run_id=token.run_id, ticks=self.ticks)

        return self.ticks
