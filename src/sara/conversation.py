"""
In-memory conversation transcript.

The orchestrator never stores history; the caller keeps the transcript
and sends the last few turns with each request. Diagnostic answers of
failed runs are kept as ordinary assistant turns so the user sees them
in place.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from sara.types import HistoryTurn, ResultRecord, RunRequest, generate_id, utc_now

USER = "user"
ASSISTANT = "assistant"


@dataclass
class Message:
    """One turn of the transcript."""

    role: str
    content: str
    id: str = field(default_factory=lambda: generate_id("msg"))
    created_at: datetime = field(default_factory=utc_now)
    error: bool = False
    record: ResultRecord | None = None


class Conversation:
    """Caller-owned transcript with a bounded history window."""

    def __init__(self, history_window: int = 8) -> None:
        self.history_window = history_window
        self.messages: list[Message] = []

    def __len__(self) -> int:
        return len(self.messages)

    def add_user(self, text: str) -> Message:
        message = Message(role=USER, content=text)
        self.messages.append(message)
        return message

    def add_result(self, record: ResultRecord) -> Message:
        """Append the answer of a finished run, failures included."""
        message = Message(role=ASSISTANT, content=record.answer, error=record.error, record=record)
        self.messages.append(message)
        return message

    def history(self, window: int | None = None) -> list[HistoryTurn]:
        """The last ``window`` turns as request history.

        Args:
            window: Number of turns; ``history_window`` if omitted.

        Returns:
            Oldest first.
        """
        window = self.history_window if window is None else window
        if window <= 0:
            return []
        return [HistoryTurn(role=m.role, content=m.content) for m in self.messages[-window:]]

    def request(
        self,
        message: str,
        session_id: str | None = None,
        repos: list[str] | None = None,
    ) -> RunRequest:
        """Build the request for ``message`` with history taken before it is added."""
        return RunRequest(
            message=message,
            session_id=session_id,
            history=self.history(),
            repos=list(repos or []),
        )

    def clear(self) -> None:
        self.messages.clear()
