"""Chat transport boundary: what the engine sends and how it is delivered."""

from formbot.transport.base import (
    MediaMessage,
    OutboundMessage,
    RecordingTransport,
    TextMessage,
    Transport,
)

__all__ = ["MediaMessage", "OutboundMessage", "RecordingTransport", "TextMessage", "Transport"]
