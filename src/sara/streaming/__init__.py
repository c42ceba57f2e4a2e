"""
Streaming package.

Turns the backend's incremental ``event:``/``data:`` feed into FrameEvents:
- EventFrameDecoder: chunk-boundary-safe line framing and JSON decoding
- StreamEvent: recognized event names and payload helpers
"""

from sara.streaming.decoder import EventFrameDecoder, decode_all
from sara.streaming.events import StreamEvent, agent_event, phase_event

__all__ = [
    "EventFrameDecoder",
    "StreamEvent",
    "agent_event",
    "decode_all",
    "phase_event",
]
