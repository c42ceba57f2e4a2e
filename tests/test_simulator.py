"""
Tests for the progress simulator.
"""

from __future__ import annotations

import asyncio

import pytest

from sara.agents.phases import AGENT_ORDER
from sara.agents.simulator import ProgressSimulator
from sara.agents.store import AgentStateStore
from sara.types import AgentStatus, FrameEvent, RunPhase, RunToken

MULTI = RunPhase("multi", AGENT_ORDER)
SINGLE = RunPhase("single", ("synthesizer",))


class RecordingSleep:
    """Sleep replacement that records intervals without waiting."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def _started_store(phase: RunPhase) -> tuple[AgentStateStore, RunToken]:
    token = RunToken(1, "run_sim")
    store = AgentStateStore()
    store.begin(token)
    store.seed(phase, token)
    return store, token


class TestSimulatorCadence:
    """Tests for tick ordering."""

    @pytest.mark.asyncio
    async def test_walks_agents_in_order(self) -> None:
        store, token = _started_store(MULTI)
        events: list[tuple[str, str]] = []
        store.subscribe(lambda event, _: events.append((event.name, event.data.get("agent", ""))))
        sleep = RecordingSleep()

        ticks = await ProgressSimulator(2.1, sleep=sleep).run(MULTI, token, store.apply)

        assert ticks == 4
        assert sleep.calls == [2.1, 2.1, 2.1]
        assert events == [
            ("agent_thinking", "researcher"),
            ("agent_done", "researcher"),
            ("agent_thinking", "analyst"),
            ("agent_done", "analyst"),
            ("agent_thinking", "critic"),
            ("agent_done", "critic"),
            ("agent_thinking", "synthesizer"),
        ]
        assert store.get("synthesizer").status is AgentStatus.THINKING

    @pytest.mark.asyncio
    async def test_at_most_one_agent_thinking(self) -> None:
        store, token = _started_store(MULTI)
        samples: list[int] = []
        store.subscribe(lambda _event, s: samples.append(s.thinking_count()))

        await ProgressSimulator(1.0, sleep=RecordingSleep()).run(MULTI, token, store.apply)

        assert samples
        assert max(samples) == 1

    @pytest.mark.asyncio
    async def test_single_agent_ticks_once_without_sleeping(self) -> None:
        store, token = _started_store(SINGLE)
        sleep = RecordingSleep()

        ticks = await ProgressSimulator(sleep=sleep).run(SINGLE, token, store.apply)

        assert ticks == 1
        assert sleep.calls == []
        assert store.get("synthesizer").status is AgentStatus.THINKING

    def test_interval_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            ProgressSimulator(0)


class TestSimulatorStopping:
    """Tests for stale runs and cancellation."""

    @pytest.mark.asyncio
    async def test_stops_when_run_is_abandoned(self) -> None:
        store, token = _started_store(MULTI)

        async def sleep_then_abandon(_seconds: float) -> None:
            store.invalidate()

        simulator = ProgressSimulator(sleep=sleep_then_abandon)
        ticks = await simulator.run(MULTI, token, store.apply)

        assert ticks == 1
        assert store.get("researcher").status is AgentStatus.THINKING
        assert store.get("analyst").status is AgentStatus.IDLE

    @pytest.mark.asyncio
    async def test_cancel_stops_ticking(self) -> None:
        store, token = _started_store(MULTI)
        simulator = ProgressSimulator(interval_seconds=10.0)

        task = asyncio.create_task(simulator.run(MULTI, token, store.apply))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert simulator.ticks == 1
        assert store.statuses()["analyst"] is AgentStatus.IDLE

    @pytest.mark.asyncio
    async def test_sink_receives_frame_events(self) -> None:
        received: list[tuple[FrameEvent, RunToken]] = []
        token = RunToken(5, "run_sink")

        def sink(event: FrameEvent, tok: RunToken) -> bool:
            received.append((event, tok))
            return True

        await ProgressSimulator(sleep=RecordingSleep()).run(SINGLE, token, sink)

        assert received == [(FrameEvent("agent_thinking", {"agent": "synthesizer"}), token)]
