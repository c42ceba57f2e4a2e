"""
Pytest configuration and fixtures for Sara tests.
"""

from __future__ import annotations

import asyncio
import os
from typing import Any, AsyncIterator, Callable, Generator
from unittest.mock import patch

import httpx
import orjson
import pytest

from sara.config import Settings, clear_settings_cache
from sara.orchestrator.run import RunOrchestrator
from sara.transport.client import BackendClient

Handler = Callable[[httpx.Request], Any]


@pytest.fixture
def mock_env_vars() -> Generator[dict[str, str], None, None]:
    """Provide mock environment variables for testing."""
    env_vars = {
        "BACKEND_URL": "https://test-project.supabase.co/",
        "BACKEND_API_KEY": "anon-test-key-1234567890",
        "LOG_LEVEL": "DEBUG",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        clear_settings_cache()
        yield env_vars


@pytest.fixture
def mock_settings(mock_env_vars: dict[str, str]) -> Generator[Settings, None, None]:
    """Provide a Settings instance with mock configuration."""
    from sara.config import get_settings

    clear_settings_cache()
    yield get_settings()
    clear_settings_cache()


@pytest.fixture
def fast_settings(mock_env_vars: dict[str, str]) -> Settings:
    """Settings with timings scaled down for tests."""
    return Settings(_env_file=None, REQUEST_TIMEOUT_SECONDS=2.0, SIMULATION_INTERVAL_MS=50)


@pytest.fixture
def backend_requests() -> list[httpx.Request]:
    """Requests seen by the fake backend, in order."""
    return []


@pytest.fixture
def json_backend(backend_requests: list[httpx.Request]) -> Callable[..., Handler]:
    """Build a request/response backend handler.

    ``payloads`` is either one payload for every call or a list with one
    per call; ``delays`` likewise.
    """

    def build(
        payloads: dict[str, Any] | list[dict[str, Any]],
        delays: float | list[float] = 0.0,
        status_code: int = 200,
    ) -> Handler:
        async def handler(request: httpx.Request) -> httpx.Response:
            index = len(backend_requests)
            backend_requests.append(request)

            delay = delays[min(index, len(delays) - 1)] if isinstance(delays, list) else delays
            if delay:
                await asyncio.sleep(delay)

            payload = payloads[min(index, len(payloads) - 1)] if isinstance(payloads, list) else payloads
            return httpx.Response(status_code, content=orjson.dumps(payload))

        return handler

    return build


@pytest.fixture
def stream_backend(backend_requests: list[httpx.Request]) -> Callable[..., Handler]:
    """Build an event-stream backend handler.

    Chunks are sent as given; ``fail_with`` is raised after the last chunk
    to simulate a dropped connection.
    """

    def build(
        chunks: list[str | bytes],
        fail_with: Exception | None = None,
        chunk_delay: float = 0.0,
    ) -> Handler:
        async def body() -> AsyncIterator[bytes]:
            for chunk in chunks:
                if chunk_delay:
                    await asyncio.sleep(chunk_delay)
                yield chunk.encode("utf-8") if isinstance(chunk, str) else chunk
            if fail_with is not None:
                raise fail_with

        async def handler(request: httpx.Request) -> httpx.Response:
            backend_requests.append(request)
            return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=body())

        return handler

    return build


@pytest.fixture
async def make_orchestrator(fast_settings: Settings) -> AsyncIterator[Callable[..., RunOrchestrator]]:
    """Build orchestrators on a mock transport; all are closed after the test."""
    created: list[RunOrchestrator] = []

    def build(handler: Handler, settings: Settings | None = None, **kwargs: Any) -> RunOrchestrator:
        settings = settings or fast_settings
        client = BackendClient.from_settings(settings, transport=httpx.MockTransport(handler))
        orchestrator = RunOrchestrator(settings, client=client, **kwargs)
        created.append(orchestrator)
        return orchestrator

    yield build

    for orchestrator in created:
        await orchestrator.aclose()


def sse(event: str, data: Any) -> str:
    """One event-stream frame."""
    payload = data if isinstance(data, str) else orjson.dumps(data).decode("utf-8")
    return f"event: {event}\ndata: {payload}\n\n"


@pytest.fixture
def frame() -> Callable[[str, Any], str]:
    """Expose the frame builder to tests."""
    return sse


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Automatically reset settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()
