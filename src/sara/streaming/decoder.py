"""
Incremental decoder for the backend event stream.

The stream is line oriented:

    event: agent_token
    data: {"agent": "critic", "token": "Hid"}

An ``event:`` line names the frame until the next blank line; every
``data:`` line under it is parsed as JSON and emitted with that name.
Fragments may split lines (or UTF-8 sequences) anywhere, so the
incomplete trailing line is kept in a buffer until the next fragment.
"""

from __future__ import annotations

import codecs
from typing import Any, Iterable

import orjson

from sara.exceptions import MalformedFrameError
from sara.logging import get_logger
from sara.types import FrameEvent

logger = get_logger(__name__)


class EventFrameDecoder:
    """Turns text fragments delivered at arbitrary boundaries into FrameEvents.

    Decoding is chunk-boundary invariant: feeding a stream in any number
    of pieces yields the same events as feeding it whole, provided
    ``flush()`` is called at end of stream in both cases.
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._event: str | None = None
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self.malformed_count = 0

    def feed(self, fragment: str | bytes) -> list[FrameEvent]:
        """Consume one fragment and return the events it completes.

        Args:
            fragment: Text, or raw UTF-8 bytes.

        Returns:
            Events completed by this fragment, in stream order.
        """
        if isinstance(fragment, (bytes, bytearray)):
            fragment = self._utf8.decode(bytes(fragment))
        if not fragment:
            return []

        self._buffer += fragment
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()

        return self._process(lines)

    def flush(self) -> list[FrameEvent]:
        """Process whatever is left in the buffer at end of stream."""
        self._buffer += self._utf8.decode(b"", final=True)
        if not self._buffer:
            return []
        line, self._buffer = self._buffer, ""
        return self._process([line])

    def reset(self) -> None:
        """Drop buffered text and the current event name."""
        self._buffer = ""
        self._event = None
        self._utf8.reset()

    def _process(self, lines: list[str]) -> list[FrameEvent]:
        events: list[FrameEvent] = []
        for line in lines:
            event = self._process_line(line.removesuffix("\r"))
            if event is not None:
                events.append(event)
        return events

    def _process_line(self, line: str) -> FrameEvent | None:
        if line == "":
            # Frame terminator
            self._event = None
            return None
        if line.startswith(":"):
            return None

        field, sep, value = line.partition(":")
        if not sep:
            return None
        if value.startswith(" "):
            value = value[1:]

        if field == "event":
            self._event = value.strip() or None
            return None

        if field == "data":
            if self._event is None:
                return None
            try:
                return FrameEvent(self._event, self._parse_data(value))
            except MalformedFrameError as e:
                self.malformed_count += 1
                logger.debug("Dropped malformed frame", event_name=self._event, error=str(e))
                return None

        return None

    @staticmethod
    def _parse_data(value: str) -> Any:
        try:
            return orjson.loads(value)
        except orjson.JSONDecodeError as e:
            raise MalformedFrameError(
                "data line is not valid JSON",
                context={"data": value[:80], "reason": str(e)},
            ) from e


def decode_all(fragments: Iterable[str | bytes]) -> list[FrameEvent]:
    """Decode a complete stream given as fragments.

    Args:
        fragments: Stream pieces in arrival order.

    Returns:
        Every event in the stream, in order.
    """
    decoder = EventFrameDecoder()
    events: list[FrameEvent] = []
    for fragment in fragments:
        events.extend(decoder.feed(fragment))
    events.extend(decoder.flush())
    return events
