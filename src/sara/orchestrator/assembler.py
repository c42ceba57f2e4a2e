"""
Result assembly.

Turns a backend payload (or a failure) into the ResultRecord handed to
the caller. Durations are always the orchestrator's own measurement;
``duration_seconds`` from the backend is ignored.
"""

from __future__ import annotations

from typing import Any

from sara.agents.phases import AGENT_ORDER
from sara.orchestrator.diagnostics import diagnostic_answer
from sara.types import ExecutionPath, ProviderTier, ResultRecord, RunMode

DEFAULT_PREVIEW_CHARS = 220
NO_ANSWER = "No answer returned."
ELLIPSIS = "…"

# Payload field holding each agent's output
OUTPUT_FIELDS: dict[str, str] = {
    "researcher": "researcher_findings",
    "analyst": "analyst_analysis",
    "critic": "critic_critique",
    "synthesizer": "answer",
}


class ResultAssembler:
    """Builds ResultRecords. Stateless apart from the preview cap."""

    def __init__(self, preview_chars: int = DEFAULT_PREVIEW_CHARS) -> None:
        self.preview_chars = preview_chars

    def build(
        self,
        payload: dict[str, Any],
        *,
        mode: RunMode,
        path: ExecutionPath,
        tier: ProviderTier,
        duration_ms: int,
        run_id: str = "",
        caller_session_id: str | None = None,
        streamed_outputs: dict[str, str] | None = None,
    ) -> ResultRecord:
        """Merge a successful payload into a ResultRecord.

        Args:
            payload: Response body, or the ``done`` event data.
            mode: Run mode; agent outputs are only kept for multi-stage runs.
            path: Execution path the run took.
            tier: Provider tier the run went to.
            duration_ms: Wall-clock duration measured by the orchestrator.
            run_id: Run identifier.
            caller_session_id: Continuation id sent with the request.
            streamed_outputs: Agent content accumulated from the stream, used
                where the payload has no output for an agent.

        Returns:
            The assembled record.
        """
        answer = _text(payload.get("answer")) or NO_ANSWER

        agent_outputs = None
        if mode is RunMode.MULTI:
            agent_outputs = self._agent_outputs(payload, streamed_outputs or {})

        web_used = payload.get("web_used", payload.get("live_web_used", False))

        return ResultRecord(
            answer=answer,
            mode=mode,
            path=path,
            tier=tier,
            run_id=run_id,
            agent_outputs=agent_outputs,
            session_id=self.continuation_id(payload.get("session_id"), caller_session_id),
            rag_used=bool(payload.get("rag_used", False)),
            web_used=bool(web_used),
            duration_ms=duration_ms,
        )

    def failure(
        self,
        error: BaseException,
        *,
        mode: RunMode,
        path: ExecutionPath,
        tier: ProviderTier,
        duration_ms: int,
        run_id: str = "",
        caller_session_id: str | None = None,
        fallback_tier: ProviderTier | None = None,
        fallback_provider: str | None = None,
    ) -> ResultRecord:
        """Build the diagnostic record for a failed run."""
        return ResultRecord(
            answer=diagnostic_answer(error, fallback_tier, fallback_provider),
            mode=mode,
            path=path,
            tier=tier,
            run_id=run_id,
            session_id=caller_session_id,
            duration_ms=duration_ms,
            error=True,
            failure=error if isinstance(error, Exception) else None,
            fallback_tier=fallback_tier,
        )

    def preview(self, text: str | None, limit: int | None = None) -> str:
        """Cap ``text`` at ``limit`` characters (default ``preview_chars``)."""
        limit = self.preview_chars if limit is None else limit
        text = text or ""
        if len(text) <= limit:
            return text
        return text[:limit].rstrip() + ELLIPSIS

    def previews(self, record: ResultRecord) -> dict[str, str]:
        """Capped agent outputs of ``record`` in display order."""
        outputs = record.agent_outputs or {}
        return {agent_id: self.preview(outputs[agent_id]) for agent_id in AGENT_ORDER if agent_id in outputs}

    @staticmethod
    def continuation_id(returned: Any, caller: str | None) -> str | None:
        """The backend's id if it sent a new non-empty one, else the caller's."""
        if isinstance(returned, str) and returned and returned != caller:
            return returned
        return caller

    @staticmethod
    def _agent_outputs(payload: dict[str, Any], streamed: dict[str, str]) -> dict[str, str]:
        outputs: dict[str, str] = {}
        for agent_id in AGENT_ORDER:
            value = _text(payload.get(OUTPUT_FIELDS[agent_id])) or streamed.get(agent_id, "")
            if value:
                outputs[agent_id] = value
        return outputs


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)
