"""
Diagnostic answers for failed runs.

A failed run still produces an answer: the failure message as the
backend or transport reported it, and a note when the default provider
tier was switched as a consequence.
"""

from __future__ import annotations

from sara.exceptions import (
    BackendReportedError,
    ProviderTimeoutError,
    SaraError,
    TransportError,
)
from sara.types import ProviderTier

_TITLES: dict[type[SaraError], str] = {
    ProviderTimeoutError: "Provider timeout",
    TransportError: "Connection error",
    BackendReportedError: "Backend error",
}


def failure_message(error: BaseException) -> str:
    """Message to show for ``error``, without the logging context."""
    if isinstance(error, SaraError):
        return error.message
    return str(error) or type(error).__name__


def failure_title(error: BaseException) -> str:
    for error_type, title in _TITLES.items():
        if isinstance(error, error_type):
            return title
    return "Error"


def diagnostic_answer(
    error: BaseException,
    fallback_tier: ProviderTier | None = None,
    fallback_provider: str | None = None,
) -> str:
    """Build the markdown answer appended to the conversation for a failed run.

    Args:
        error: The classified failure.
        fallback_tier: Tier the default was switched to, if any.
        fallback_provider: Provider label of ``fallback_tier``.

    Returns:
        Markdown text.
    """
    lines = [f"**{failure_title(error)}**", "", failure_message(error)]

    if fallback_tier is not None:
        provider = fallback_provider or fallback_tier.value
        lines += [
            "",
            f"Falling back to the {fallback_tier.value} tier ({provider}) for the next request. "
            "Send the message again to retry.",
        ]

    return "\n".join(lines)
