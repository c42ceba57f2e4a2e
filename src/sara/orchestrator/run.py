"""
Run Orchestrator.

Drives one run end to end:
1. Mint a RunToken and seed the agent store with the announced phase
2. Either apply the backend's event stream to the store (streamed path),
   or send one request and simulate progress while racing it against
   the deadline (simulated path)
3. Force the remaining agents to done or error
4. Assemble the ResultRecord, switching the default tier to primary
   when the secondary tier failed

The raced request is never aborted. If the deadline wins, the request
task is parked in a discard set and its eventual outcome is only
logged; the RunToken guard keeps it away from the store.
"""

from __future__ import annotations

import asyncio
import dataclasses
import time
from contextlib import aclosing
from typing import Any, Callable

from sara.agents.phases import PhaseAnnouncer
from sara.agents.simulator import ProgressSimulator
from sara.agents.store import AgentStateStore, Listener
from sara.config import Settings, get_settings
from sara.exceptions import (
    BackendReportedError,
    ConfigurationError,
    ProviderTimeoutError,
    SaraError,
    StaleCallbackError,
    TransportError,
)
from sara.logging import get_logger, log_context
from sara.orchestrator.assembler import ResultAssembler
from sara.streaming.decoder import EventFrameDecoder
from sara.streaming.events import StreamEvent
from sara.transport.client import BackendClient
from sara.transport.routing import ProviderRoute, RouteTable
from sara.types import (
    AgentStatus,
    AgentStream,
    ExecutionPath,
    FrameEvent,
    ProviderTier,
    ResultRecord,
    RunMode,
    RunPhase,
    RunRequest,
    RunToken,
    generate_id,
)

logger = get_logger(__name__)


@dataclasses.dataclass(frozen=True)
class RunPlan:
    """Everything resolved before a run starts."""

    mode: RunMode
    path: ExecutionPath
    route: ProviderRoute
    phase: RunPhase
    request: RunRequest

    @property
    def tier(self) -> ProviderTier:
        return self.route.tier


class RunHandle:
    """Caller's view of one started run."""

    def __init__(self, token: RunToken, plan: RunPlan, task: asyncio.Task[ResultRecord | None]) -> None:
        self.token = token
        self.plan = plan
        self._task = task

    @property
    def run_id(self) -> str:
        return self.token.run_id

    def done(self) -> bool:
        return self._task.done()

    def abandon(self) -> None:
        self._task.cancel()

    async def result(self) -> ResultRecord | None:
        """Wait for the run's record.

        Returns:
            The ResultRecord, or None if the run was abandoned.
        """
        try:
            return await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if self._task.cancelled():
                return None
            raise


class RunOrchestrator:
    """Runs requests against the backend and keeps the agent store current.

    One orchestrator serves one conversation: it owns the agent store,
    the cached continuation id and the default provider tier. Only one
    run is current at a time; starting a run abandons the previous one.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        client: BackendClient | None = None,
        store: AgentStateStore | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            settings: Application settings. Loaded from the environment if omitted.
            client: Backend client. Built from ``settings`` if omitted.
            store: Agent state store. A fresh one if omitted.
            clock: Monotonic clock used to measure run duration.
        """
        self.settings = settings or get_settings()
        self._client = client or BackendClient.from_settings(self.settings)
        self._store = store or AgentStateStore()
        self._clock = clock

        self._routes = RouteTable(self.settings)
        self._announcer = PhaseAnnouncer()
        self._assembler = ResultAssembler(self.settings.PREVIEW_CHARS)

        self.timeout_seconds = self.settings.REQUEST_TIMEOUT_SECONDS
        self.interval_seconds = self.settings.simulation_interval_seconds

        self._default_tier = ProviderTier(self.settings.DEFAULT_TIER)
        self._session_id: str | None = None
        self._generation = 0
        self._current: RunHandle | None = None
        self._discarded: set[asyncio.Task[Any]] = set()

    # ------------------------------------------------------------------
    # Caller surface
    # ------------------------------------------------------------------

    @property
    def store(self) -> AgentStateStore:
        return self._store

    @property
    def assembler(self) -> ResultAssembler:
        return self._assembler

    @property
    def agents(self) -> list[AgentStream]:
        """Snapshot of the current run's agent streams."""
        return self._store.snapshot()

    @property
    def default_tier(self) -> ProviderTier:
        return self._default_tier

    @default_tier.setter
    def default_tier(self, tier: ProviderTier | str) -> None:
        self._default_tier = ProviderTier(tier)

    @property
    def session_id(self) -> str | None:
        """Continuation id from the last successful run."""
        return self._session_id

    @session_id.setter
    def session_id(self, value: str | None) -> None:
        self._session_id = value or None

    @property
    def current(self) -> RunHandle | None:
        return self._current

    @property
    def discarded_count(self) -> int:
        """Raced requests that lost to the deadline and are still outstanding."""
        return len(self._discarded)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for every event applied to the store."""
        return self._store.subscribe(listener)

    def start_run(
        self,
        mode: RunMode | str,
        path: ExecutionPath | str,
        request: RunRequest,
        tier: ProviderTier | str | None = None,
    ) -> RunHandle:
        """Start a run and return immediately.

        Any run still in flight is abandoned first.

        Args:
            mode: ``single`` or ``multi``.
            path: ``streamed`` or ``simulated``.
            request: Request body.
            tier: Provider tier; the current default if omitted.

        Returns:
            Handle to await the result on.

        Raises:
            ConfigurationError: If the mode, path or tier is unknown.
        """
        plan = self._plan(mode, path, request, tier)

        previous = self._current
        token = self._next_token()
        self._store.begin(token)
        if previous is not None and not previous.done():
            logger.info("Previous run abandoned", run_id=previous.run_id)
            previous.abandon()

        task = asyncio.create_task(self._run(token, plan), name=token.run_id)
        handle = RunHandle(token, plan, task)
        self._current = handle
        return handle

    async def execute(
        self,
        request: RunRequest,
        path: ExecutionPath | str | None = None,
        mode: RunMode | str | None = None,
        tier: ProviderTier | str | None = None,
    ) -> ResultRecord | None:
        """Run ``request`` to completion.

        Args:
            request: Request body.
            path: Execution path; ``DEFAULT_PATH`` if omitted.
            mode: Run mode; ``DEFAULT_MODE`` if omitted.
            tier: Provider tier; the current default if omitted.

        Returns:
            The ResultRecord (``error=True`` for failures), or None if the
            run was abandoned by a newer run or ``cancel_run()``.
        """
        handle = self.start_run(
            mode or self.settings.DEFAULT_MODE,
            path or self.settings.DEFAULT_PATH,
            request,
            tier=tier,
        )
        return await handle.result()

    def cancel_run(self) -> bool:
        """Abandon the current run.

        The run's token stops being accepted, so nothing it does later
        reaches the store. A request already sent is not aborted.

        Returns:
            True if a run was in flight.
        """
        self._store.invalidate()
        handle, self._current = self._current, None
        if handle is None or handle.done():
            return False

        logger.info("Run cancelled", run_id=handle.run_id)
        handle.abandon()
        return True

    async def aclose(self) -> None:
        """Abandon the current run, drop discarded requests and close the client."""
        handle = self._current
        self.cancel_run()
        if handle is not None:
            await handle.result()

        for task in list(self._discarded):
            task.cancel()
        if self._discarded:
            await asyncio.gather(*self._discarded, return_exceptions=True)
        self._discarded.clear()

        await self._client.close()

    async def __aenter__(self) -> RunOrchestrator:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def _plan(
        self,
        mode: RunMode | str,
        path: ExecutionPath | str,
        request: RunRequest,
        tier: ProviderTier | str | None,
    ) -> RunPlan:
        phase = self._announcer.announce(mode)
        run_mode = RunMode(mode)
        try:
            run_path = ExecutionPath(path)
        except ValueError as e:
            raise ConfigurationError(f"Unknown execution path: {path!r}") from e
        try:
            run_tier = ProviderTier(tier) if tier else self._default_tier
        except ValueError as e:
            raise ConfigurationError(f"Unknown provider tier: {tier!r}") from e
        route = self._routes.get(run_mode, run_tier)

        if request.session_id is None and self._session_id:
            request = dataclasses.replace(request, session_id=self._session_id)

        return RunPlan(
            mode=run_mode,
            path=run_path,
            route=route,
            phase=phase,
            request=request,
        )

    def _next_token(self) -> RunToken:
        self._generation += 1
        return RunToken(self._generation, generate_id("run"))

    async def _run(self, token: RunToken, plan: RunPlan) -> ResultRecord | None:
        started = self._clock()

        with log_context(run_id=token.run_id, tier=plan.tier.value):
            logger.info(
                "Run started",
                mode=plan.mode.value,
                path=plan.path.value,
                function=plan.route.function,
                agents=len(plan.phase),
            )

            try:
                self._store.seed(plan.phase, token)
                if plan.path is ExecutionPath.SIMULATED:
                    payload = await self._run_simulated(token, plan)
                else:
                    payload = await self._run_streamed(token, plan)
            except StaleCallbackError:
                logger.debug("Run abandoned mid-flight")
                return None
            except SaraError as e:
                if not self._store.is_current(token):
                    return None
                return self._fail(e, token, plan, self._elapsed_ms(started))

            if not self._store.is_current(token):
                return None
            return self._succeed(payload, token, plan, self._elapsed_ms(started))

    async def _run_simulated(self, token: RunToken, plan: RunPlan) -> dict[str, Any]:
        """One request/response call raced against the deadline."""
        request_task = asyncio.create_task(
            self._client.invoke(plan.route.function, plan.request.to_payload()),
            name=f"{token.run_id}:request",
        )
        simulator = ProgressSimulator(self.interval_seconds)
        simulator_task = asyncio.create_task(
            simulator.run(plan.phase, token, self._store.apply),
            name=f"{token.run_id}:simulator",
        )

        try:
            done, _ = await asyncio.wait({request_task}, timeout=self.timeout_seconds)
        finally:
            simulator_task.cancel()
            if not request_task.done():
                self._discard(request_task)

        if not done:
            raise ProviderTimeoutError(
                f"{plan.route.provider} too slow: no answer within {self.timeout_seconds:g}s",
                context={"provider": plan.route.provider, "timeout_seconds": self.timeout_seconds},
            )

        logger.debug("Response arrived", simulated_ticks=simulator.ticks)
        return self._checked(request_task.result(), plan.route, require_success=True)

    async def _run_streamed(self, token: RunToken, plan: RunPlan) -> dict[str, Any]:
        """Apply the backend's event stream until a terminal event."""
        decoder = EventFrameDecoder()
        stream = self._client.stream(plan.route.function, plan.request.to_payload())

        async with aclosing(stream) as fragments:
            async for fragment in fragments:
                for event in decoder.feed(fragment):
                    payload = self._apply_streamed(event, token, plan.route)
                    if payload is not None:
                        return payload

        for event in decoder.flush():
            payload = self._apply_streamed(event, token, plan.route)
            if payload is not None:
                return payload

        if decoder.malformed_count:
            logger.debug("Malformed frames skipped", count=decoder.malformed_count)
        raise TransportError(
            "Stream ended before the run finished",
            context={"function": plan.route.function},
        )

    def _apply_streamed(self, event: FrameEvent, token: RunToken, route: ProviderRoute) -> dict[str, Any] | None:
        """Apply one streamed event; return the payload once the run is done."""
        self._store.apply(event, token)

        kind = StreamEvent.lookup(event.name)
        if kind is None or not kind.is_terminal:
            return None
        if kind is StreamEvent.ERROR:
            raise BackendReportedError(
                self._store.error or "Backend reported an error",
                context={"function": route.function},
            )

        payload = event.data if isinstance(event.data, dict) else {}
        return self._checked(payload, route, require_success=False)

    @staticmethod
    def _checked(payload: dict[str, Any], route: ProviderRoute, require_success: bool) -> dict[str, Any]:
        success = payload.get("success")
        if success is False or (require_success and not success):
            raise BackendReportedError(
                str(payload.get("error") or f"Function {route.function!r} failed"),
                context={"function": route.function},
            )
        return payload

    # ------------------------------------------------------------------
    # Outcome
    # ------------------------------------------------------------------

    def _succeed(self, payload: dict[str, Any], token: RunToken, plan: RunPlan, duration_ms: int) -> ResultRecord:
        self._store.force_terminal(AgentStatus.DONE, token)

        streamed_outputs = {agent.id: agent.content for agent in self._store.agents if agent.content}
        record = self._assembler.build(
            payload,
            mode=plan.mode,
            path=plan.path,
            tier=plan.tier,
            duration_ms=duration_ms,
            run_id=token.run_id,
            caller_session_id=plan.request.session_id,
            streamed_outputs=streamed_outputs,
        )
        if record.session_id:
            self._session_id = record.session_id

        logger.info("Run finished", duration_ms=duration_ms, rag_used=record.rag_used, web_used=record.web_used)
        return record

    def _fail(self, error: SaraError, token: RunToken, plan: RunPlan, duration_ms: int) -> ResultRecord:
        self._store.force_terminal(AgentStatus.ERROR, token)

        fallback_tier = None
        if plan.tier is ProviderTier.SECONDARY and self._default_tier is not ProviderTier.PRIMARY:
            fallback_tier = ProviderTier.PRIMARY
            self._default_tier = fallback_tier
            logger.warning(
                "Default provider tier switched",
                previous=plan.tier.value,
                current=fallback_tier.value,
                provider=self._routes.provider_label(fallback_tier),
            )

        logger.warning(
            "Run failed",
            error_type=type(error).__name__,
            error=error.message,
            duration_ms=duration_ms,
        )

        return self._assembler.failure(
            error,
            mode=plan.mode,
            path=plan.path,
            tier=plan.tier,
            duration_ms=duration_ms,
            run_id=token.run_id,
            caller_session_id=plan.request.session_id,
            fallback_tier=fallback_tier,
            fallback_provider=self._routes.provider_label(fallback_tier) if fallback_tier else None,
        )

    def _elapsed_ms(self, started: float) -> int:
        return int((self._clock() - started) * 1000)

    # ------------------------------------------------------------------
    # Discard sink
    # ------------------------------------------------------------------

    def _discard(self, task: asyncio.Task[Any]) -> None:
        self._discarded.add(task)
        task.add_done_callback(self._reap)

    def _reap(self, task: asyncio.Task[Any]) -> None:
        self._discarded.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.debug("Discarded request failed", task=task.get_name(), error=str(error))
        else:
            logger.debug("Discarded response ignored", task=task.get_name())
