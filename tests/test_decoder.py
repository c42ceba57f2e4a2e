"""
Tests for the event frame decoder.
"""

from __future__ import annotations

from sara.streaming.decoder import EventFrameDecoder, decode_all
from sara.streaming.events import StreamEvent
from sara.types import FrameEvent

STREAM = (
    'event: phase\ndata: {"phase": "multi", "agents": ["researcher", "critic"]}\n\n'
    'event: agent_start\ndata: {"agent": "researcher"}\n\n'
    'event: agent_token\ndata: {"agent": "researcher", "token": "Bonjour, "}\n\n'
    'event: agent_token\ndata: {"agent": "researcher", "token": "café ☕"}\n\n'
    'event: agent_done\ndata: {"agent": "researcher"}\n\n'
    'event: done\ndata: {"success": true, "answer": "ok"}\n\n'
)


class TestFraming:
    """Tests for line framing."""

    def test_decodes_whole_stream(self) -> None:
        events = decode_all([STREAM])

        assert [e.name for e in events] == [
            "phase",
            "agent_start",
            "agent_token",
            "agent_token",
            "agent_done",
            "done",
        ]
        assert events[0].data == {"phase": "multi", "agents": ["researcher", "critic"]}
        assert events[3].data["token"] == "café ☕"

    def test_every_data_line_uses_current_event(self) -> None:
        """Test that several data lines under one event name all dispatch."""
        events = decode_all(['event: agent_token\ndata: {"token": "a"}\ndata: {"token": "b"}\n\n'])

        assert events == [
            FrameEvent("agent_token", {"token": "a"}),
            FrameEvent("agent_token", {"token": "b"}),
        ]

    def test_blank_line_resets_event_name(self) -> None:
        """Test that data after a blank line without a new event line is ignored."""
        events = decode_all(['event: done\ndata: {"n": 1}\n\ndata: {"n": 2}\n\n'])

        assert events == [FrameEvent("done", {"n": 1})]

    def test_data_without_event_is_ignored(self) -> None:
        assert decode_all(['data: {"n": 1}\n\n']) == []

    def test_comments_and_unknown_fields_skipped(self) -> None:
        events = decode_all([': keep-alive\nid: 7\nevent: done\nretry: 10\ndata: {}\n\n'])

        assert events == [FrameEvent("done", {})]

    def test_crlf_line_endings(self) -> None:
        events = decode_all(['event: agent_done\r\ndata: {"agent": "critic"}\r\n\r\n'])

        assert events == [FrameEvent("agent_done", {"agent": "critic"})]

    def test_data_without_space_after_colon(self) -> None:
        events = decode_all(['event:done\ndata:{"ok":true}\n\n'])

        assert events == [FrameEvent("done", {"ok": True})]

    def test_unknown_event_names_pass_through(self) -> None:
        """Test that filtering unknown names is left to the store."""
        events = decode_all(['event: heartbeat\ndata: {}\n\n'])

        assert events == [FrameEvent("heartbeat", {})]


class TestMalformedFrames:
    """Tests for invalid JSON payloads."""

    def test_malformed_data_is_dropped_and_stream_continues(self) -> None:
        decoder = EventFrameDecoder()
        events = decoder.feed(
            'event: agent_token\ndata: {"agent": "critic", "token": \n\n'
            'event: agent_token\ndata: {"agent": "critic", "token": "ok"}\n\n'
        )

        assert events == [FrameEvent("agent_token", {"agent": "critic", "token": "ok"})]
        assert decoder.malformed_count == 1

    def test_each_malformed_line_counted(self) -> None:
        decoder = EventFrameDecoder()
        decoder.feed("event: phase\ndata: nope\ndata: {bad}\n\n")

        assert decoder.malformed_count == 2


class TestChunkBoundaries:
    """Tests for chunk-boundary invariance."""

    def test_every_two_way_split(self) -> None:
        expected = decode_all([STREAM])

        for i in range(len(STREAM) + 1):
            assert decode_all([STREAM[:i], STREAM[i:]]) == expected, f"split at {i}"

    def test_one_character_at_a_time(self) -> None:
        assert decode_all(list(STREAM)) == decode_all([STREAM])

    def test_bytes_split_inside_utf8_sequences(self) -> None:
        """Test that multi-byte characters split across fragments decode intact."""
        raw = STREAM.encode("utf-8")
        expected = decode_all([STREAM])

        for i in range(len(raw) + 1):
            assert decode_all([raw[:i], raw[i:]]) == expected, f"split at byte {i}"

    def test_bytes_one_at_a_time(self) -> None:
        raw = STREAM.encode("utf-8")
        assert decode_all([raw[i : i + 1] for i in range(len(raw))]) == decode_all([STREAM])

    def test_incomplete_line_is_buffered(self) -> None:
        decoder = EventFrameDecoder()

        assert decoder.feed("event: done\ndata: {\"a\"") == []
        assert decoder.feed(": 1}\n") == [FrameEvent("done", {"a": 1})]


class TestFlushAndReset:
    """Tests for end-of-stream handling."""

    def test_flush_processes_unterminated_last_line(self) -> None:
        decoder = EventFrameDecoder()

        assert decoder.feed('event: done\ndata: {"answer": "x"}') == []
        assert decoder.flush() == [FrameEvent("done", {"answer": "x"})]
        assert decoder.flush() == []

    def test_reset_drops_buffer_and_event_name(self) -> None:
        decoder = EventFrameDecoder()
        decoder.feed("event: done\ndata: {\"par")
        decoder.reset()

        assert decoder.feed('data: {"n": 1}\n\n') == []

    def test_empty_fragments(self) -> None:
        decoder = EventFrameDecoder()

        assert decoder.feed("") == []
        assert decoder.feed(b"") == []
        assert decoder.flush() == []


class TestEventNames:
    """Tests for recognizing event names."""

    def test_only_done_and_error_end_the_run(self) -> None:
        assert {kind for kind in StreamEvent if kind.is_terminal} == {StreamEvent.DONE, StreamEvent.ERROR}

    def test_agent_done_does_not_end_the_run(self) -> None:
        assert StreamEvent.lookup("agent_done") is StreamEvent.AGENT_DONE
        assert not StreamEvent.AGENT_DONE.is_terminal

    def test_unknown_name(self) -> None:
        assert StreamEvent.lookup("heartbeat") is None
