"""
HTTP client for the backend functions.

Functions are called as ``POST {base_url}/functions/v1/{function}`` with
the anonymous key sent both as bearer token and ``apikey`` header.
"""

from __future__ import annotations

from typing import Any, AsyncIterator

import httpx
import orjson

from sara.config import Settings
from sara.exceptions import ConfigurationError, TransportError
from sara.logging import get_logger

logger = get_logger(__name__)

CONNECT_TIMEOUT = 10.0
DEFAULT_READ_TIMEOUT = 120.0


class BackendClient:
    """Calls backend functions, either once or as an event stream.

    There is no retry here: a failed run is reported to the user, who
    decides whether to resend.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Function host, without trailing slash.
            api_key: Anonymous key for the function host.
            read_timeout: Maximum wait between two reads, in seconds.
            transport: Optional httpx transport (tests use httpx.MockTransport).
        """
        if not base_url or not api_key:
            raise ConfigurationError("Backend URL and API key are both required")

        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self.read_timeout = read_timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> BackendClient:
        return cls(
            base_url=settings.BACKEND_URL,
            api_key=settings.BACKEND_API_KEY,
            read_timeout=settings.STREAM_READ_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client with auth headers."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "apikey": self._api_key,
                    "Content-Type": "application/json",
                },
                timeout=httpx.Timeout(self.read_timeout, connect=CONNECT_TIMEOUT),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def function_url(self, function: str) -> str:
        return f"{self.base_url}/functions/v1/{function}"

    async def invoke(self, function: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Call ``function`` once and return its JSON body.

        Args:
            function: Backend function name.
            payload: Request body.

        Returns:
            Decoded JSON object.

        Raises:
            TransportError: On connection failure, non-2xx status or a
                body that is not a JSON object.
        """
        client = await self._get_client()
        url = self.function_url(function)

        try:
            response = await client.post(url, content=orjson.dumps(payload))
        except httpx.HTTPError as e:
            raise TransportError(
                f"Function {function!r} unreachable: {e}",
                context={"function": function},
            ) from e

        if response.is_error:
            raise TransportError(
                f"HTTP {response.status_code}: {response.text}",
                context={"function": function, "status_code": response.status_code},
            )

        try:
            data = orjson.loads(response.content)
        except orjson.JSONDecodeError as e:
            raise TransportError(
                f"Function {function!r} returned invalid JSON",
                context={"function": function, "status_code": response.status_code},
            ) from e

        if not isinstance(data, dict):
            raise TransportError(
                f"Function {function!r} returned {type(data).__name__}, expected an object",
                context={"function": function},
            )

        logger.debug("Function call completed", function=function, status_code=response.status_code)
        return data

    async def stream(self, function: str, payload: dict[str, Any]) -> AsyncIterator[str]:
        """Call ``function`` and yield its event stream as text fragments.

        Fragments arrive at whatever boundaries the network delivers;
        framing is the decoder's job.

        Raises:
            TransportError: On connection failure, non-2xx status or a
                read failure mid-stream.
        """
        client = await self._get_client()
        url = self.function_url(function)

        try:
            async with client.stream(
                "POST",
                url,
                content=orjson.dumps(payload),
                headers={"Accept": "text/event-stream"},
            ) as response:
                if response.is_error:
                    body = await response.aread()
                    raise TransportError(
                        f"HTTP {response.status_code}: {body.decode('utf-8', errors='replace')}",
                        context={"function": function, "status_code": response.status_code},
                    )

                async for fragment in response.aiter_text():
                    yield fragment
        except httpx.HTTPError as e:
            raise TransportError(
                f"Stream from {function!r} failed: {e}",
                context={"function": function},
            ) from e
