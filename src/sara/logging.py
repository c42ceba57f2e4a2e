"""
Structured logging for the orchestration client.

Provides:
- Context variables for run_id, agent and tier (using contextvars)
- JSONFormatter writing JSON Lines to an optional log file
- ContextRichHandler for console output that shows the active run
- ContextLogger that turns keyword arguments into structured fields
- setup_logging() / get_logger() under the ``sara`` namespace
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator

import orjson
from rich.console import Console
from rich.logging import RichHandler
from rich.text import Text

_run_id_var: ContextVar[str | None] = ContextVar("run_id", default=None)
_agent_var: ContextVar[str | None] = ContextVar("agent", default=None)
_tier_var: ContextVar[str | None] = ContextVar("tier", default=None)


def get_run_id() -> str | None:
    """Get the current run ID from context."""
    return _run_id_var.get()


def get_agent() -> str | None:
    """Get the current agent id from context."""
    return _agent_var.get()


def get_tier() -> str | None:
    """Get the current provider tier from context."""
    return _tier_var.get()


def _context_fields() -> dict[str, str]:
    fields: dict[str, str] = {}
    for key, var in (("run_id", _run_id_var), ("agent", _agent_var), ("tier", _tier_var)):
        value = var.get()
        if value:
            fields[key] = value
    return fields


@contextmanager
def log_context(
    run_id: str | None = None,
    agent: str | None = None,
    tier: str | None = None,
) -> Generator[None, None, None]:
    """Scope logging context to a block.

    Args:
        run_id: Run ID to set in context.
        agent: Agent id to set in context.
        tier: Provider tier to set in context.

    Yields:
        None. Context variables are restored on exit.
    """
    tokens = []
    if run_id is not None:
        tokens.append((_run_id_var, _run_id_var.set(run_id)))
    if agent is not None:
        tokens.append((_agent_var, _agent_var.set(agent)))
    if tier is not None:
        tokens.append((_tier_var, _tier_var.set(tier)))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


class JSONFormatter(logging.Formatter):
    """JSON Lines formatter for machine-readable log files."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_obj.update(_context_fields())

        if hasattr(record, "extra"):
            log_obj["extra"] = record.extra

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return orjson.dumps(log_obj, default=str).decode("utf-8")


class ContextRichHandler(RichHandler):
    """Rich handler that prefixes the level with the active run and tier."""

    def get_level_text(self, record: logging.LogRecord) -> Text:
        level_text = super().get_level_text(record)

        parts: list[str] = []
        run_id = get_run_id()
        tier = get_tier()
        agent = get_agent()

        if run_id:
            parts.append(f"[dim]{run_id.split('_')[-1][:8]}[/dim]")
        if tier:
            parts.append(f"[cyan]{tier}[/cyan]")
        if agent:
            parts.append(f"[magenta]{agent}[/magenta]")

        if parts:
            return Text.from_markup(f"{level_text} {' '.join(parts)}")
        return level_text


class ContextLogger:
    """Logger wrapper that attaches context and keyword fields to each call.

    ``logger.info("Run finished", duration_ms=812)`` stores
    ``duration_ms`` together with the active run context.
    """

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    @property
    def name(self) -> str:
        return self._logger.name

    def _log(
        self,
        level: int,
        msg: str,
        *args: Any,
        exc_info: bool = False,
        **kwargs: Any,
    ) -> None:
        if not self._logger.isEnabledFor(level):
            return

        extra: dict[str, Any] = dict(kwargs.pop("extra", {}))
        extra.update(_context_fields())

        for key in list(kwargs.keys()):
            if key not in ("stack_info", "stacklevel"):
                extra[key] = kwargs.pop(key)

        self._logger.log(level, msg, *args, exc_info=exc_info, extra={"extra": extra})

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args: Any, exc_info: bool = False, **kwargs: Any) -> None:
        self._log(logging.ERROR, msg, *args, exc_info=exc_info, **kwargs)

    def exception(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log an error with the active traceback."""
        self._log(logging.ERROR, msg, *args, exc_info=True, **kwargs)


_console: Console | None = None
_setup_done: bool = False


def get_console() -> Console:
    """Get the shared stderr console used for log output."""
    global _console
    if _console is None:
        _console = Console(stderr=True)
    return _console


def setup_logging(
    log_level: str = "INFO",
    log_file: Path | None = None,
    console_output: bool = True,
) -> None:
    """Configure the ``sara`` logger tree.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional JSON Lines log file. Receives DEBUG and above.
        console_output: Whether to attach the rich console handler.
    """
    global _setup_done

    root_logger = logging.getLogger("sara")
    root_logger.setLevel(logging.DEBUG if log_file else getattr(logging, log_level.upper()))
    root_logger.handlers.clear()

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(JSONFormatter())
        file_handler.setLevel(logging.DEBUG)
        root_logger.addHandler(file_handler)

    if console_output:
        rich_handler = ContextRichHandler(
            console=get_console(),
            show_time=True,
            show_path=False,
            rich_tracebacks=True,
            markup=True,
        )
        rich_handler.setLevel(getattr(logging, log_level.upper()))
        root_logger.addHandler(rich_handler)

    root_logger.propagate = False

    # httpx logs every request at INFO
    for noisy_logger in ["httpx", "httpcore", "asyncio"]:
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    _setup_done = True


def get_logger(name: str) -> ContextLogger:
    """Get a context-aware logger under the ``sara`` namespace.

    Args:
        name: Logger name (usually __name__).

    Returns:
        ContextLogger wrapping the standard logger.
    """
    if not _setup_done:
        setup_logging()

    if not name.startswith("sara"):
        name = f"sara.{name}"

    return ContextLogger(logging.getLogger(name))
