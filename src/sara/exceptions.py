"""
Custom exception hierarchy for the Sara orchestration client.

All exceptions inherit from SaraError, which provides optional context
for structured error handling and logging.
"""

from __future__ import annotations

from typing import Any


class SaraError(Exception):
    """Base exception for all Sara errors.

    Attributes:
        message: Human-readable error message.
        context: Optional structured context for logging/debugging.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class ConfigurationError(SaraError):
    """Raised when configuration is invalid or missing.

    Examples:
        - Missing BACKEND_URL or BACKEND_API_KEY
        - Unknown provider tier or execution mode
    """

    pass


class TransportError(SaraError):
    """Raised when the backend cannot be reached or answers with a non-success status.

    Context should include:
        - function: The backend function that was called
        - status_code: HTTP status code if applicable
    """

    pass


class ProviderTimeoutError(SaraError):
    """Raised when the client deadline elapses before the backend answers.

    Context should include:
        - provider: Provider label of the tier that was too slow
        - timeout_seconds: The deadline that elapsed
    """

    pass


class BackendReportedError(SaraError):
    """Raised when the backend answers with ``success: false``.

    The backend's ``error`` string is the message, surfaced verbatim.
    """

    pass


class MalformedFrameError(SaraError):
    """Raised when a ``data:`` line does not parse as JSON.

    Recovered inside the decoder; never reaches the user.
    """

    pass


class StaleCallbackError(SaraError):
    """Raised when a callback carries a RunToken that is no longer current.

    Context should include:
        - token: The stale token generation
        - current: The active token generation
    """

    pass


class InvalidTransitionError(SaraError):
    """Raised when an agent status transition is not in the transition table.

    Context should include:
        - agent: The agent id
        - current: The current status
        - requested: The requested status
    """

    pass
